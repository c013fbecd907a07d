"""
API路由模块
"""

from fastapi import APIRouter
from .election_routes import router as election_router
from .websocket_routes import router as ws_router

# 创建主路由器
api_router = APIRouter()

# 注册各个功能模块的路由
api_router.include_router(election_router, prefix="/election", tags=["选举管理"])
api_router.include_router(ws_router, prefix="/ws", tags=["WebSocket"])
