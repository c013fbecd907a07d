"""
选举数据模型
"""

from sqlalchemy import Column, Integer, String, DateTime
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from election.core.database import Base

class Election(Base):
    """选举表"""
    __tablename__ = "elections"
    
    id = Column(Integer, primary_key=True, index=True)
    organizer_address = Column(String(100), nullable=False)   # 组织者钱包地址
    current_round_number = Column(Integer, nullable=False, default=1)  # 当前轮次编号
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    
    # 关系
    rounds = relationship("Round", back_populates="election", order_by="Round.round_number")
