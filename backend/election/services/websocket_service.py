"""
WebSocket连接管理服务
"""

import json
import logging
from typing import Dict, List
from fastapi import WebSocket

logger = logging.getLogger(__name__)

class WebSocketManager:
    """WebSocket连接管理器"""

    def __init__(self):
        # 选举观察者连接
        self.election_connections: Dict[int, List[WebSocket]] = {}

    async def connect(self, websocket: WebSocket, election_id: int):
        """连接观察者WebSocket"""
        await websocket.accept()
        if election_id not in self.election_connections:
            self.election_connections[election_id] = []

        # 检查是否已存在，避免重复连接
        if websocket not in self.election_connections[election_id]:
            self.election_connections[election_id].append(websocket)
            logger.info(f"新连接加入选举 {election_id}，当前连接数: {len(self.election_connections[election_id])}")

    def disconnect(self, websocket: WebSocket, election_id: int):
        """断开观察者连接"""
        if election_id in self.election_connections:
            if websocket in self.election_connections[election_id]:
                self.election_connections[election_id].remove(websocket)
                logger.info(f"连接断开选举 {election_id}，当前连接数: {len(self.election_connections[election_id])}")

    def connection_count(self, election_id: int) -> int:
        return len(self.election_connections.get(election_id, []))

    async def send_personal_message(self, message: dict, websocket: WebSocket):
        """发送个人消息"""
        try:
            await websocket.send_text(json.dumps(message, ensure_ascii=False))
        except Exception as e:
            logger.warning(f"发送个人消息失败: {e}")

    async def broadcast_to_election(self, message: dict, election_id: int):
        """向选举的所有观察者广播事件"""
        connections = self.election_connections.get(election_id, []).copy()  # 创建副本进行迭代
        if not connections:
            logger.debug(f"选举 {election_id} 没有活跃连接，跳过广播")
            return

        message_text = json.dumps(message, ensure_ascii=False)
        failed_connections = []

        for connection in connections:
            try:
                await connection.send_text(message_text)
            except Exception as e:
                logger.warning(f"广播消息失败: {e}")
                failed_connections.append(connection)

        # 移除失败的连接
        for failed_connection in failed_connections:
            self.disconnect(failed_connection, election_id)

        logger.debug(f"📡 选举 {election_id} 广播 {message.get('type', 'unknown')}: "
                     f"{len(connections) - len(failed_connections)} 成功, {len(failed_connections)} 失败")
