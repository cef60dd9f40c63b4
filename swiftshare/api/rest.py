"""
REST API for a SwiftShare Node

Design Decision: API Framework
==============================

Decision: FastAPI
- Native async support (the node runs on the same event loop)
- Automatic OpenAPI documentation
- Pydantic integration for validation

API Design:
- Mirrors what a front end needs: connection status, the sent and
  received file lists, and the connect/send/cancel/disconnect actions
- Rejections (busy, not connected) return 409 with the latest notice
"""

import logging
from pathlib import Path
from typing import Optional, List
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from ..notify import CollectingNotifier

logger = logging.getLogger(__name__)

# Global reference to the node (set when app is created)
_node = None


# === Pydantic Models ===

class ConnectRequest(BaseModel):
    """Request to connect to a discovered peer."""
    host: str
    port: int
    peer_name: str = ""


class SendRequest(BaseModel):
    """Request to send a file to the connected peer."""
    file_path: str
    name: Optional[str] = None
    mime_type: str = ""


class NodeStatus(BaseModel):
    """Node status response."""
    device_name: str
    state: str
    is_connected: bool
    connected_device: Optional[str]
    listening_port: Optional[int]
    remote_address: Optional[str] = None
    is_transferring: bool
    transfer_progress: float
    total_sent_bytes: int
    total_received_bytes: int


class FileInfo(BaseModel):
    """A sent or received file."""
    id: str
    name: str
    size: int
    mime_type: str
    progress: float
    transferring: bool
    available: bool
    cancelled: bool
    path: Optional[str] = None
    error: Optional[str] = None


class NoticeInfo(BaseModel):
    level: str
    title: str
    message: str
    file_id: Optional[str] = None
    can_retry: bool = False


# === API Creation ===

def create_app(node=None) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
        node: SwiftShareNode instance to control

    Returns:
        FastAPI application
    """
    global _node
    _node = node

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Handle startup and shutdown."""
        logger.info("API server starting...")
        yield
        logger.info("API server stopping...")

    app = FastAPI(
        title="SwiftShare API",
        description="REST API for local-network peer-to-peer file transfers",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:3000", "http://127.0.0.1:3000"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    def require_node():
        if not _node:
            raise HTTPException(status_code=503, detail="Node not initialized")
        return _node

    def rejection_detail(default: str) -> str:
        """Text of the notice explaining the latest rejection."""
        notifier = _node.notifier
        if isinstance(notifier, CollectingNotifier) and notifier.notices:
            latest = notifier.notices[-1]
            return f"{latest.title}: {latest.message}"
        return default

    def to_file_info(record) -> FileInfo:
        return FileInfo(
            id=record.id,
            name=record.name,
            size=record.size,
            mime_type=record.mime_type,
            progress=record.progress,
            transferring=record.transferring,
            available=record.available,
            cancelled=record.cancelled,
            path=record.path,
            error=record.error,
        )

    # === Endpoints ===

    @app.get("/", tags=["General"])
    async def root():
        """API root - basic info."""
        return {
            "name": "SwiftShare",
            "version": "1.0.0",
            "status": "running" if _node else "not running"
        }

    @app.get("/status", response_model=NodeStatus, tags=["Node"])
    async def get_status():
        """Get connection and transfer status."""
        node = require_node()
        return NodeStatus(**{
            key: value for key, value in node.get_status().items()
            if key in NodeStatus.model_fields
        })

    @app.get("/stats", tags=["Node"])
    async def get_stats():
        """Get detailed node statistics."""
        return require_node().get_full_stats()

    # === Connection ===

    @app.post("/connect", tags=["Connection"])
    async def connect(request: ConnectRequest):
        """Connect to a peer."""
        node = require_node()
        logger.info(f"Connect request for {request.host}:{request.port}")

        if not await node.connect(request.host, request.port, request.peer_name):
            raise HTTPException(
                status_code=502,
                detail=f"Could not connect to {request.host}:{request.port}"
            )
        return {"success": True, "connected_device": node.connected_device}

    @app.post("/disconnect", tags=["Connection"])
    async def disconnect():
        """Disconnect from the peer."""
        node = require_node()
        await node.disconnect()
        return {"success": True}

    # === Transfers ===

    @app.post("/send", tags=["Files"])
    async def send_file(request: SendRequest):
        """Send a file to the connected peer."""
        node = require_node()

        file_path = Path(request.file_path)
        if not file_path.is_absolute():
            file_path = file_path.resolve()

        if not file_path.exists():
            raise HTTPException(status_code=404, detail=f"File not found: {file_path}")

        if not file_path.is_file():
            raise HTTPException(status_code=400, detail=f"Not a file: {file_path}")

        if not await node.send_file(file_path, request.name, request.mime_type):
            raise HTTPException(
                status_code=409,
                detail=rejection_detail("Transfer rejected")
            )
        return {"success": True, "name": request.name or file_path.name}

    @app.post("/cancel", tags=["Files"])
    async def cancel_transfer():
        """Cancel the active transfer."""
        node = require_node()
        cancelled = await node.cancel_transfer()
        return {"success": cancelled}

    @app.get("/files/sent", response_model=List[FileInfo], tags=["Files"])
    async def list_sent():
        """Files sent during this connection."""
        return [to_file_info(r) for r in require_node().sent_files]

    @app.get("/files/received", response_model=List[FileInfo], tags=["Files"])
    async def list_received():
        """Files received during this connection."""
        return [to_file_info(r) for r in require_node().received_files]

    @app.post("/files/received/{file_id}/retry", tags=["Files"])
    async def retry_save(file_id: str):
        """Retry saving a received file after a save error."""
        node = require_node()
        if file_id not in node.receiver.pending_saves:
            raise HTTPException(status_code=404, detail="No failed save for this file")

        if not await node.retry_save(file_id):
            raise HTTPException(status_code=500, detail=rejection_detail("Save failed"))
        return {"success": True}

    # === Notices ===

    @app.get("/notices", response_model=List[NoticeInfo], tags=["Notices"])
    async def list_notices(limit: int = 20):
        """Recent user-facing notices."""
        node = require_node()
        if not isinstance(node.notifier, CollectingNotifier):
            return []
        return [NoticeInfo(**n.to_dict()) for n in node.notifier.recent(limit)]

    return app


async def run_api_server(node, host: str = "0.0.0.0", port: int = 8080):
    """
    Run the API server.

    Args:
        node: SwiftShareNode instance
        host: Host to bind to
        port: Port to listen on
    """
    import uvicorn

    app = create_app(node)

    config = uvicorn.Config(
        app,
        host=host,
        port=port,
        log_level="info",
    )
    server = uvicorn.Server(config)
    await server.serve()
