"""
选举管理API路由
"""

from typing import Callable, List, Optional
from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from election.core.config import settings
from election.core.database import get_db
from election.core.errors import ElectionError
from election.core.utils import utc_now
from election.api.websocket_routes import get_websocket_manager
from election.services.election_service import ElectionService
from election.services.websocket_service import WebSocketManager
from election.schemas.election_schemas import (
    CandidateCreate,
    CandidateInfo,
    ElectionCreate,
    EventInfo,
    FinalizeReady,
    FinalizeRequest,
    NewRoundCreate,
    RoundStatus,
    RoundWinner,
    VoteCreate,
    VoteStatus,
    VoterCreate,
    VoterInfo,
)

router = APIRouter()

def get_clock() -> Callable:
    """获取引擎使用的时钟"""
    return utc_now

def get_caller(request: Request) -> str:
    """从请求头读取调用者地址"""
    caller = request.headers.get(settings.CALLER_HEADER, "").strip()
    if not caller:
        raise HTTPException(status_code=401, detail=f"缺少调用者请求头 {settings.CALLER_HEADER}")
    return caller

def get_election_service(
    db: Session = Depends(get_db),
    manager: WebSocketManager = Depends(get_websocket_manager),
    clock: Callable = Depends(get_clock)
) -> ElectionService:
    return ElectionService(db, manager, clock)

@router.post("/create", response_model=RoundStatus)
async def create_election(
    election_data: ElectionCreate,
    caller: str = Depends(get_caller),
    service: ElectionService = Depends(get_election_service)
):
    """创建选举并开启第1轮"""
    try:
        return await service.create_election(caller, election_data.duration_seconds, election_data.organizer)
    except ElectionError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_dict())
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"创建选举失败: {str(e)}")

@router.get("/", response_model=List[RoundStatus])
async def list_elections(
    skip: int = 0,
    limit: int = 10,
    service: ElectionService = Depends(get_election_service)
):
    """获取选举列表"""
    return await service.list_elections(skip=skip, limit=limit)

@router.get("/{election_id}", response_model=RoundStatus)
async def get_round_status(
    election_id: int,
    service: ElectionService = Depends(get_election_service)
):
    """获取选举当前轮次状态"""
    try:
        return await service.get_round_status(election_id)
    except ElectionError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_dict())

@router.post("/{election_id}/candidates", response_model=CandidateInfo)
async def register_candidate(
    election_id: int,
    candidate_data: CandidateCreate,
    caller: str = Depends(get_caller),
    service: ElectionService = Depends(get_election_service)
):
    """注册候选人（仅组织者）"""
    try:
        return await service.register_candidate(
            election_id,
            caller,
            candidate_data.address,
            candidate_data.name,
            candidate_data.image_ref,
            candidate_data.metadata_ref
        )
    except ElectionError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_dict())
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"注册候选人失败: {str(e)}")

@router.post("/{election_id}/voters", response_model=VoterInfo)
async def register_voter(
    election_id: int,
    voter_data: VoterCreate,
    caller: str = Depends(get_caller),
    service: ElectionService = Depends(get_election_service)
):
    """注册选民"""
    try:
        return await service.register_voter(
            election_id,
            caller,
            voter_data.address,
            voter_data.name,
            voter_data.metadata_ref
        )
    except ElectionError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_dict())
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"注册选民失败: {str(e)}")

@router.post("/{election_id}/vote", response_model=VoterInfo)
async def cast_vote(
    election_id: int,
    vote_data: VoteCreate,
    caller: str = Depends(get_caller),
    service: ElectionService = Depends(get_election_service)
):
    """投票"""
    try:
        return await service.cast_vote(election_id, caller, vote_data.candidate_id)
    except ElectionError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_dict())
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"投票失败: {str(e)}")

@router.get("/{election_id}/finalize/ready", response_model=FinalizeReady)
async def check_finalize_ready(
    election_id: int,
    service: ElectionService = Depends(get_election_service)
):
    """检查当前轮是否可以结算"""
    try:
        ready = await service.check_finalize_ready(election_id)
        round_number = await service.get_current_round_number(election_id)
        return FinalizeReady(election_id=election_id, round_number=round_number, ready=ready)
    except ElectionError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_dict())

@router.post("/{election_id}/finalize", response_model=RoundWinner)
async def finalize(
    election_id: int,
    finalize_data: Optional[FinalizeRequest] = None,
    service: ElectionService = Depends(get_election_service)
):
    """结算当前轮并选出获胜者"""
    trigger_data = finalize_data.trigger_data if finalize_data else None
    try:
        return await service.finalize(election_id, trigger_data)
    except ElectionError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_dict())
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"结算失败: {str(e)}")

@router.post("/{election_id}/rounds", response_model=RoundStatus)
async def start_new_round(
    election_id: int,
    round_data: NewRoundCreate,
    caller: str = Depends(get_caller),
    service: ElectionService = Depends(get_election_service)
):
    """开启新一轮（仅组织者）"""
    try:
        return await service.start_new_round(election_id, caller, round_data.duration_seconds)
    except ElectionError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_dict())
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"开启新一轮失败: {str(e)}")

@router.get("/{election_id}/candidates", response_model=List[CandidateInfo])
async def get_all_candidates(
    election_id: int,
    service: ElectionService = Depends(get_election_service)
):
    """获取当前轮全部候选人"""
    try:
        return await service.get_all_candidates(election_id)
    except ElectionError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_dict())

@router.get("/{election_id}/voters", response_model=List[VoterInfo])
async def get_all_voters(
    election_id: int,
    service: ElectionService = Depends(get_election_service)
):
    """获取当前轮全部选民"""
    try:
        return await service.get_all_voters(election_id)
    except ElectionError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_dict())

@router.get("/{election_id}/voters/{address}/status", response_model=VoteStatus)
async def get_voter_vote_status(
    election_id: int,
    address: str,
    service: ElectionService = Depends(get_election_service)
):
    """获取当前轮选民的投票状态"""
    try:
        return await service.get_voter_vote_status(election_id, address)
    except ElectionError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_dict())

@router.get("/{election_id}/rounds/{round_number}/candidates/by-address/{address}", response_model=CandidateInfo)
async def get_candidate_by_address(
    election_id: int,
    round_number: int,
    address: str,
    service: ElectionService = Depends(get_election_service)
):
    """按地址查询某轮候选人"""
    try:
        return await service.get_candidate_by_address(election_id, round_number, address)
    except ElectionError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_dict())

@router.get("/{election_id}/rounds/{round_number}/candidates/{candidate_id}", response_model=CandidateInfo)
async def get_candidate_by_id(
    election_id: int,
    round_number: int,
    candidate_id: int,
    service: ElectionService = Depends(get_election_service)
):
    """按编号查询某轮候选人"""
    try:
        return await service.get_candidate_by_id(election_id, round_number, candidate_id)
    except ElectionError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_dict())

@router.get("/{election_id}/rounds/{round_number}/voters/by-address/{address}", response_model=VoterInfo)
async def get_voter_by_address(
    election_id: int,
    round_number: int,
    address: str,
    service: ElectionService = Depends(get_election_service)
):
    """按地址查询某轮选民"""
    try:
        return await service.get_voter_by_address(election_id, round_number, address)
    except ElectionError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_dict())

@router.get("/{election_id}/rounds/{round_number}/voters/{voter_id}", response_model=VoterInfo)
async def get_voter_by_id(
    election_id: int,
    round_number: int,
    voter_id: int,
    service: ElectionService = Depends(get_election_service)
):
    """按编号查询某轮选民"""
    try:
        return await service.get_voter_by_id(election_id, round_number, voter_id)
    except ElectionError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_dict())

@router.get("/{election_id}/rounds/{round_number}/winner", response_model=RoundWinner)
async def get_round_winner_by_id(
    election_id: int,
    round_number: int,
    service: ElectionService = Depends(get_election_service)
):
    """获取某轮获胜者"""
    try:
        return await service.get_round_winner_by_id(election_id, round_number)
    except ElectionError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_dict())

@router.get("/{election_id}/events", response_model=List[EventInfo])
async def get_events(
    election_id: int,
    round_number: Optional[int] = None,
    service: ElectionService = Depends(get_election_service)
):
    """获取选举事件日志"""
    try:
        return await service.get_events(election_id, round_number)
    except ElectionError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_dict())
