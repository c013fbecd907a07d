"""
应用配置模块
"""

from typing import List
from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    """应用设置"""

    # 基础设置
    APP_NAME: str = "轮次选举服务"
    VERSION: str = "1.0.0"
    DEBUG: bool = True

    # 服务器设置
    HOST: str = "0.0.0.0"
    PORT: int = 8001
    CORS_ORIGINS: List[str] = ["http://localhost:3000"]

    # 数据库设置
    DATABASE_URL: str = "sqlite:///./election.db"

    # 选举设置
    DEFAULT_VOTING_DURATION: int = 500  # 默认投票窗口（秒）
    CALLER_HEADER: str = "X-Caller-Address"  # 调用者身份请求头

    # 定时结算设置
    SCHEDULER_ENABLED: bool = True
    FINALIZE_POLL_INTERVAL: float = 5.0  # 轮询间隔（秒）

    # 远程结算设置（调度器独立部署时使用）
    REMOTE_API_URL: str = "http://localhost:8001/api"
    REMOTE_TIMEOUT: float = 10.0

    class Config:
        env_file = ".env"
        case_sensitive = True

# 全局设置实例
settings = Settings()
