"""
数据库配置
"""
import logging
from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from election.core.config import settings

logger = logging.getLogger(__name__)

def _connect_args(database_url: str) -> dict:
    # SQLite连接默认只允许创建它的线程使用
    if database_url.startswith("sqlite"):
        return {"check_same_thread": False}
    return {}

engine = create_engine(
    settings.DATABASE_URL,
    connect_args=_connect_args(settings.DATABASE_URL),
    echo=False  # 设置为True可以看到SQL查询日志
)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()

def get_db():
    """获取数据库会话"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

def init_db(bind=None):
    """初始化数据库"""
    # 导入所有模型
    from election.models.election import Election
    from election.models.round_model import Round
    from election.models.candidate import Candidate
    from election.models.voter import Voter
    from election.models.event import ElectionEvent

    # 创建所有表
    Base.metadata.create_all(bind=bind or engine)

    logger.info("✅ 数据库初始化完成")
