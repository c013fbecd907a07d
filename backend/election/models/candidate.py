"""
候选人数据模型
"""

from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Text, UniqueConstraint
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from election.core.database import Base

class Candidate(Base):
    """候选人表"""
    __tablename__ = "candidates"
    __table_args__ = (
        UniqueConstraint("round_id", "candidate_id", name="uq_candidate_id"),
        UniqueConstraint("round_id", "wallet_address", name="uq_candidate_address"),
    )
    
    id = Column(Integer, primary_key=True, index=True)
    round_id = Column(Integer, ForeignKey("rounds.id"), nullable=False)
    candidate_id = Column(Integer, nullable=False)          # 轮内顺序编号，从1开始
    wallet_address = Column(String(100), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    image_ref = Column(Text, nullable=True)                 # 头像引用
    metadata_ref = Column(Text, nullable=True)              # 元数据引用
    vote_count = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    
    # 关系
    round = relationship("Round", back_populates="candidates")
