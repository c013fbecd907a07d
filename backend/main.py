#!/usr/bin/env python3
"""
轮次选举服务 - 后端主入口
"""

import logging
import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from election.core.config import settings
from election.api import api_router
from election.api.websocket_routes import get_websocket_manager
from election.core.database import init_db
from election.services.scheduler_service import FinalizeScheduler

logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s"
)
logger = logging.getLogger("election")

app = FastAPI(
    title=settings.APP_NAME,
    description="按轮次进行的选举后端API：候选人与选民注册、投票、定时结算与新一轮开启",
    version=settings.VERSION
)

# CORS设置
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# 注册API路由
app.include_router(api_router, prefix="/api")

scheduler = FinalizeScheduler(websocket_manager=get_websocket_manager())

@app.on_event("startup")
async def startup_event():
    """应用启动时的初始化"""
    logger.info("🚀 启动轮次选举后端服务...")
    init_db()

    if not settings.SCHEDULER_ENABLED:
        logger.info("⏸️ 结算调度器已禁用，需要外部触发结算")
        return

    # 服务停机期间到期的轮次先补做一次结算
    try:
        await scheduler.sweep()
    except Exception as e:
        logger.error(f"⚠️ 启动时结算扫描出错: {e}")
    scheduler.start()

@app.on_event("shutdown")
async def shutdown_event():
    """应用关闭时停止调度器"""
    await scheduler.stop()

@app.get("/")
async def root():
    """根路径健康检查"""
    return {"message": "轮次选举后端运行中", "status": "healthy"}

@app.get("/health")
async def health_check():
    """健康检查端点"""
    return {"status": "healthy", "service": "round-election"}

if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level="info"
    )
