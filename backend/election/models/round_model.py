"""
轮次数据模型
"""

from sqlalchemy import Column, Integer, ForeignKey, DateTime, Boolean, UniqueConstraint
from sqlalchemy.orm import relationship
from election.core.database import Base

class Round(Base):
    """选举轮次表"""
    __tablename__ = "rounds"
    __table_args__ = (
        UniqueConstraint("election_id", "round_number", name="uq_round_number"),
    )
    
    id = Column(Integer, primary_key=True, index=True)
    election_id = Column(Integer, ForeignKey("elections.id"), nullable=False)
    round_number = Column(Integer, nullable=False)              # 轮次编号，从1开始
    start_time = Column(DateTime, nullable=False)               # 本轮开始时间（UTC）
    duration_seconds = Column(Integer, nullable=False)          # 投票窗口长度（秒）
    is_active = Column(Boolean, nullable=False, default=True)   # 是否接受注册和投票
    is_winner_picked = Column(Boolean, nullable=False, default=False)  # 是否已结算
    winner_candidate_id = Column(Integer, nullable=True)        # 获胜候选人的轮内编号
    end_time = Column(DateTime, nullable=True)                  # 结算时间
    
    # 关系
    election = relationship("Election", back_populates="rounds")
    candidates = relationship("Candidate", back_populates="round", order_by="Candidate.candidate_id")
    voters = relationship("Voter", back_populates="round", order_by="Voter.voter_id")
