"""
选民数据模型
"""

from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Text, Boolean, UniqueConstraint
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from election.core.database import Base

class Voter(Base):
    """选民表"""
    __tablename__ = "voters"
    __table_args__ = (
        UniqueConstraint("round_id", "voter_id", name="uq_voter_id"),
        UniqueConstraint("round_id", "wallet_address", name="uq_voter_address"),
    )
    
    id = Column(Integer, primary_key=True, index=True)
    round_id = Column(Integer, ForeignKey("rounds.id"), nullable=False)
    voter_id = Column(Integer, nullable=False)              # 轮内顺序编号，从1开始
    wallet_address = Column(String(100), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    metadata_ref = Column(Text, nullable=True)
    has_voted = Column(Boolean, nullable=False, default=False)
    voted_candidate_id = Column(Integer, nullable=True)     # 首次投票后不可更改
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    
    # 关系
    round = relationship("Round", back_populates="voters")
