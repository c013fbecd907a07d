# 业务逻辑服务包
from .election_service import ElectionService
from .scheduler_service import FinalizeScheduler
from .remote_finalize_service import RemoteFinalizeClient
from .websocket_service import WebSocketManager

__all__ = ["ElectionService", "FinalizeScheduler", "RemoteFinalizeClient", "WebSocketManager"]
