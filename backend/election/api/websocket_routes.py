"""
WebSocket API路由
"""

import json
import logging
from fastapi import APIRouter, WebSocket, WebSocketDisconnect, Depends
from sqlalchemy.orm import Session
from election.core.database import get_db
from election.core.errors import ElectionError
from election.services.election_service import ElectionService
from election.services.websocket_service import WebSocketManager

logger = logging.getLogger(__name__)

router = APIRouter()

# 使用全局WebSocket连接管理器
_manager = None

def get_websocket_manager():
    """获取全局WebSocket管理器实例"""
    global _manager
    if _manager is None:
        _manager = WebSocketManager()
    return _manager

@router.websocket("/election/{election_id}")
async def websocket_election_endpoint(
    websocket: WebSocket,
    election_id: int,
    db: Session = Depends(get_db),
    manager: WebSocketManager = Depends(get_websocket_manager)
):
    """选举事件WebSocket连接端点"""
    await manager.connect(websocket, election_id)

    try:
        # 发送欢迎消息
        await manager.send_personal_message({
            "type": "connected",
            "message": f"已连接到选举 {election_id}",
            "election_id": election_id
        }, websocket)

        # 监听消息
        while True:
            data = await websocket.receive_text()
            try:
                message_data = json.loads(data)
            except json.JSONDecodeError:
                logger.warning(f"收到无效JSON消息: {data}")
                continue

            # 处理不同类型的消息
            if message_data.get("type") == "ping":
                await manager.send_personal_message({
                    "type": "pong",
                    "timestamp": message_data.get("timestamp")
                }, websocket)

            elif message_data.get("type") == "get_status":
                # 请求当前轮次状态
                service = ElectionService(db)
                try:
                    status = await service.get_round_status(election_id)
                    await manager.send_personal_message({
                        "type": "round_status",
                        "status": status.model_dump(mode="json")
                    }, websocket)
                except ElectionError as e:
                    await manager.send_personal_message({
                        "type": "error",
                        "error": e.to_dict()
                    }, websocket)

    except WebSocketDisconnect:
        manager.disconnect(websocket, election_id)
