"""
选举相关的数据模式
"""

from pydantic import BaseModel, Field, field_serializer
from typing import Optional, List, Dict, Any
from datetime import datetime

from election.core.config import settings

class ElectionCreate(BaseModel):
    """创建选举的请求模式"""
    duration_seconds: int = Field(default=settings.DEFAULT_VOTING_DURATION, gt=0, description="第1轮投票窗口（秒）")
    organizer: Optional[str] = Field(default=None, min_length=1, max_length=100, pattern=r"\S", description="组织者地址，默认为调用者")

class CandidateCreate(BaseModel):
    """注册候选人的请求模式"""
    address: str = Field(..., min_length=1, max_length=100, description="候选人钱包地址")
    name: str = Field(..., min_length=1, max_length=100, description="候选人名称")
    image_ref: str = Field(default="", description="头像引用")
    metadata_ref: str = Field(default="", description="元数据引用")

class VoterCreate(BaseModel):
    """注册选民的请求模式"""
    address: str = Field(..., min_length=1, max_length=100, description="选民钱包地址")
    name: str = Field(..., min_length=1, max_length=100, description="选民名称")
    metadata_ref: str = Field(default="", description="元数据引用")

class VoteCreate(BaseModel):
    """投票请求"""
    candidate_id: int = Field(..., description="候选人轮内编号")

class FinalizeRequest(BaseModel):
    """结算请求"""
    trigger_data: Optional[str] = Field(default=None, description="触发方附带的数据")

class NewRoundCreate(BaseModel):
    """开启新一轮的请求"""
    duration_seconds: int = Field(default=settings.DEFAULT_VOTING_DURATION, gt=0, description="新一轮投票窗口（秒）")

class CandidateInfo(BaseModel):
    """候选人信息"""
    candidate_id: int
    wallet_address: str
    name: str
    image_ref: Optional[str] = None
    metadata_ref: Optional[str] = None
    vote_count: int

    class Config:
        from_attributes = True

class VoterInfo(BaseModel):
    """选民信息"""
    voter_id: int
    wallet_address: str
    name: str
    metadata_ref: Optional[str] = None
    has_voted: bool
    voted_candidate_id: Optional[int] = None

    class Config:
        from_attributes = True

class RoundStatus(BaseModel):
    """当前轮次状态"""
    election_id: int
    organizer: str
    round_number: int
    start_time: datetime
    deadline: datetime
    duration_seconds: int
    is_active: bool
    is_winner_picked: bool
    winner_candidate_id: Optional[int] = None
    candidate_count: int
    voter_count: int

    @field_serializer('start_time', 'deadline')
    def serialize_dt(self, dt: Optional[datetime]) -> Optional[str]:
        if dt is None:
            return None
        return dt.isoformat() + 'Z'

class VoteStatus(BaseModel):
    """选民投票状态"""
    address: str
    has_voted: bool
    voted_candidate_id: Optional[int] = None

class FinalizeReady(BaseModel):
    """结算就绪状态"""
    election_id: int
    round_number: int
    ready: bool

class RoundWinner(BaseModel):
    """轮次获胜者"""
    election_id: int
    round_number: int
    winner_candidate_id: Optional[int] = None

class EventInfo(BaseModel):
    """选举事件"""
    id: int
    election_id: int
    round_number: int
    event_type: str
    payload: Dict[str, Any]
    created_at: datetime

    @field_serializer('created_at')
    def serialize_dt(self, dt: Optional[datetime]) -> Optional[str]:
        if dt is None:
            return None
        return dt.isoformat() + 'Z'
