"""Shared fakes for the transfer tests."""

import asyncio
import base64

from swiftshare.transfer import ControlMessage, MessageEvent


class FakeSession:
    """Stands in for ConnectionSession: records every message sent."""

    def __init__(self, connected: bool = True):
        self.is_connected = connected
        self.sent = []
        self.fail_sends = False

    async def send(self, message: ControlMessage):
        if self.fail_sends:
            raise ConnectionError("Connection closed")
        self.sent.append(message)

    def events(self):
        return [m.event for m in self.sent]

    def of(self, event: MessageEvent):
        return [m for m in self.sent if m.event == event]


def chunk_message(data: bytes, chunk_no: int) -> ControlMessage:
    return ControlMessage.receive_chunk_ack(base64.b64encode(data).decode('ascii'), chunk_no)


async def wait_until(predicate, timeout: float = 5.0, interval: float = 0.01):
    """Poll until predicate() is true."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(interval)
