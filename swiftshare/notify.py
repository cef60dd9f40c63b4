"""
User Notifications

The transfer engine reports completions, rejections, cancellations and
errors through a Notifier. Front ends (CLI, REST API) decide how to show
them; the default just logs.
"""

import time
import logging
from collections import deque
from enum import Enum
from typing import Optional, List, Callable, Awaitable, Deque
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)


class NoticeLevel(Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


# Manual retry affordance attached to a notice
RetryAction = Callable[[], Awaitable[bool]]


@dataclass
class Notice:
    """A user-facing message."""
    level: NoticeLevel
    title: str
    message: str
    file_id: Optional[str] = None
    retry: Optional[RetryAction] = None
    created_at: float = field(default_factory=time.time)

    @property
    def can_retry(self) -> bool:
        return self.retry is not None

    def to_dict(self) -> dict:
        return {
            'level': self.level.value,
            'title': self.title,
            'message': self.message,
            'file_id': self.file_id,
            'can_retry': self.can_retry,
            'created_at': self.created_at,
        }


class Notifier:
    """Base notifier: writes notices to the log."""

    _LOG_LEVELS = {
        NoticeLevel.INFO: logging.INFO,
        NoticeLevel.WARNING: logging.WARNING,
        NoticeLevel.ERROR: logging.ERROR,
    }

    def notify(self, notice: Notice):
        logger.log(self._LOG_LEVELS[notice.level], f"{notice.title}: {notice.message}")

    # === Convenience ===

    def info(self, title: str, message: str, **kwargs):
        self.notify(Notice(NoticeLevel.INFO, title, message, **kwargs))

    def warning(self, title: str, message: str, **kwargs):
        self.notify(Notice(NoticeLevel.WARNING, title, message, **kwargs))

    def error(self, title: str, message: str, **kwargs):
        self.notify(Notice(NoticeLevel.ERROR, title, message, **kwargs))


class CollectingNotifier(Notifier):
    """Logs notices and keeps the most recent ones for polling."""

    def __init__(self, max_notices: int = 100):
        self.notices: Deque[Notice] = deque(maxlen=max_notices)

    def notify(self, notice: Notice):
        super().notify(notice)
        self.notices.append(notice)

    def recent(self, limit: int = 20) -> List[Notice]:
        return list(self.notices)[-limit:]

    def clear(self):
        self.notices.clear()
