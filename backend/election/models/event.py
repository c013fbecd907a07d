"""
选举事件数据模型
"""

from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Text
from sqlalchemy.orm import relationship
from election.core.database import Base

class ElectionEvent(Base):
    """选举事件日志表（只追加）"""
    __tablename__ = "election_events"
    
    id = Column(Integer, primary_key=True, index=True)
    election_id = Column(Integer, ForeignKey("elections.id"), nullable=False, index=True)
    round_number = Column(Integer, nullable=False)
    event_type = Column(String(40), nullable=False)   # ElectionCreated, CandidateRegistered, VoterRegistered, VoteCast, WinnerPicked, NewRoundStarted
    payload = Column(Text, nullable=False)            # JSON格式的事件数据
    created_at = Column(DateTime, nullable=False)
    
    # 关系
    election = relationship("Election")
