"""
选举引擎服务

按轮次运行的选举状态机：组织者注册候选人、选民注册并在投票窗口内投票，
窗口结束后由外部调度器触发结算，选出获胜者后组织者才能开启新一轮。
"""

import json
import logging
import threading
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Sequence

from sqlalchemy import and_, func
from sqlalchemy.orm import Session

from election.core import errors
from election.core.utils import format_timestamp_with_timezone, normalize_address, utc_now
from election.models.candidate import Candidate
from election.models.election import Election
from election.models.event import ElectionEvent
from election.models.round_model import Round
from election.models.voter import Voter
from election.schemas.election_schemas import (
    CandidateInfo,
    EventInfo,
    RoundStatus,
    RoundWinner,
    VoteStatus,
    VoterInfo,
)

logger = logging.getLogger(__name__)

# 所有写操作共用一把锁，保证整个选举状态按顺序变更。
# 该锁只在单个进程内有效；多个worker共用数据库时，投票依赖行锁（with_for_update）、
# 数据库端累加票数以及唯一约束来保证一致
_mutation_lock = threading.RLock()


def pick_winner(candidates: Sequence[Candidate]) -> Optional[Candidate]:
    """按编号升序扫描，返回最先达到最高票数的候选人（平票时编号小者胜）"""
    winner = None
    for candidate in sorted(candidates, key=lambda c: c.candidate_id):
        if winner is None or candidate.vote_count > winner.vote_count:
            winner = candidate
    return winner


def round_deadline(round_obj: Round) -> datetime:
    """投票窗口的截止时间"""
    return round_obj.start_time + timedelta(seconds=round_obj.duration_seconds)


class ElectionService:
    """选举引擎服务"""

    def __init__(self, db: Session, websocket_manager=None, clock: Callable[[], datetime] = utc_now):
        self.db = db
        self.websocket_manager = websocket_manager
        self.clock = clock
        self._pending_events: List[dict] = []

    # ------------------------------------------------------------------
    # 写操作
    # ------------------------------------------------------------------

    async def create_election(self, caller: str, duration_seconds: int,
                              organizer: Optional[str] = None) -> RoundStatus:
        """创建选举并开启第1轮，组织者默认为调用者"""
        def operation():
            self._validate_duration(duration_seconds)
            now = self.clock()
            # 空白的组织者地址按未指定处理
            election = Election(
                organizer_address=normalize_address(organizer or "") or normalize_address(caller),
                current_round_number=1
            )
            self.db.add(election)
            self.db.flush()

            round_obj = self._open_round(election, 1, duration_seconds, now)
            self._record_event(election.id, 1, "ElectionCreated", {
                "organizer": election.organizer_address,
                "duration_seconds": duration_seconds
            }, now)
            return election, round_obj

        election, round_obj = await self._mutate(operation)
        logger.info(f"🚀 选举 {election.id} 已创建，组织者 {election.organizer_address}，"
                    f"第1轮时长 {duration_seconds} 秒")
        return self._build_round_status(election, round_obj)

    async def register_candidate(self, election_id: int, caller: str, address: str, name: str,
                                 image_ref: str = "", metadata_ref: str = "") -> CandidateInfo:
        """注册候选人（仅组织者）"""
        def operation():
            now = self.clock()
            election = self._get_election(election_id)
            self._require_organizer(election, caller)
            round_obj = self._get_current_round(election)
            self._require_window_open(round_obj, now)

            wallet_address = normalize_address(address)
            if self._find_candidate_by_address(round_obj, wallet_address):
                raise errors.CandidateAlreadyExists(wallet_address)

            next_id = (self.db.query(func.max(Candidate.candidate_id)).filter(
                Candidate.round_id == round_obj.id
            ).scalar() or 0) + 1
            candidate = Candidate(
                round_id=round_obj.id,
                candidate_id=next_id,
                wallet_address=wallet_address,
                name=name,
                image_ref=image_ref,
                metadata_ref=metadata_ref,
                vote_count=0
            )
            self.db.add(candidate)
            self._record_event(election.id, round_obj.round_number, "CandidateRegistered", {
                "candidate_id": next_id,
                "wallet_address": wallet_address,
                "name": name
            }, now)
            return candidate

        candidate = await self._mutate(operation)
        logger.info(f"✅ 选举 {election_id} 注册候选人 #{candidate.candidate_id} {candidate.wallet_address}")
        return CandidateInfo.model_validate(candidate)

    async def register_voter(self, election_id: int, caller: str, address: str, name: str,
                             metadata_ref: str = "") -> VoterInfo:
        """注册选民（任何调用者都可以注册）"""
        def operation():
            now = self.clock()
            election = self._get_election(election_id)
            round_obj = self._get_current_round(election)
            self._require_window_open(round_obj, now)

            wallet_address = normalize_address(address)
            if self._find_voter_by_address(round_obj, wallet_address):
                raise errors.VoterAlreadyExists(wallet_address)

            next_id = (self.db.query(func.max(Voter.voter_id)).filter(
                Voter.round_id == round_obj.id
            ).scalar() or 0) + 1
            voter = Voter(
                round_id=round_obj.id,
                voter_id=next_id,
                wallet_address=wallet_address,
                name=name,
                metadata_ref=metadata_ref,
                has_voted=False
            )
            self.db.add(voter)
            self._record_event(election.id, round_obj.round_number, "VoterRegistered", {
                "voter_id": next_id,
                "wallet_address": wallet_address,
                "registered_by": normalize_address(caller)
            }, now)
            return voter

        voter = await self._mutate(operation)
        logger.info(f"✅ 选举 {election_id} 注册选民 #{voter.voter_id} {voter.wallet_address}")
        return VoterInfo.model_validate(voter)

    async def cast_vote(self, election_id: int, caller: str, candidate_id: int) -> VoterInfo:
        """投票：每个选民每轮只能投一票"""
        def operation():
            now = self.clock()
            election = self._get_election(election_id)
            round_obj = self._get_current_round(election)

            if round_obj.is_winner_picked:
                raise errors.VotingClosed(round_obj.round_number)
            self._require_window_open(round_obj, now)

            voter_address = normalize_address(caller)
            voter = self._find_voter_by_address(round_obj, voter_address, for_update=True)
            if not voter:
                raise errors.NotRegistered(voter_address)
            if voter.has_voted:
                raise errors.AlreadyVoted(voter_address, voter.voted_candidate_id)

            candidate = self._find_candidate_by_id(round_obj, candidate_id, for_update=True)
            if not candidate:
                raise errors.CandidateNotFound(candidate_id=candidate_id)

            # 计票和投票标记在同一事务中提交，票数在数据库端累加
            candidate.vote_count = Candidate.vote_count + 1
            voter.has_voted = True
            voter.voted_candidate_id = candidate.candidate_id
            self._record_event(election.id, round_obj.round_number, "VoteCast", {
                "candidate_id": candidate.candidate_id,
                "voter_address": voter_address
            }, now)
            return voter

        voter = await self._mutate(operation)
        logger.info(f"🗳️ 选举 {election_id}: {voter.wallet_address} 投票给候选人 #{candidate_id}")
        return VoterInfo.model_validate(voter)

    async def check_finalize_ready(self, election_id: int) -> bool:
        """结算就绪判断：当前轮仍在进行且投票窗口已过"""
        election = self._get_election(election_id)
        round_obj = self._get_current_round(election)
        return self._is_finalize_ready(round_obj, self.clock())

    async def finalize(self, election_id: int, trigger_data: Optional[str] = None) -> RoundWinner:
        """结算当前轮：统计票数、选出获胜者并关闭本轮"""
        def operation():
            now = self.clock()
            election = self._get_election(election_id)
            round_obj = self._get_current_round(election)
            if not self._is_finalize_ready(round_obj, now):
                raise errors.FinalizeNotNeeded(
                    round_obj.round_number, bool(round_obj.is_active), round_deadline(round_obj)
                )

            winner = pick_winner(round_obj.candidates)
            winner_id = winner.candidate_id if winner else None
            round_obj.winner_candidate_id = winner_id
            round_obj.is_winner_picked = True
            round_obj.is_active = False
            round_obj.end_time = now

            self._record_event(election.id, round_obj.round_number, "WinnerPicked", {
                "round_number": round_obj.round_number,
                "winner_candidate_id": winner_id,
                "vote_count": winner.vote_count if winner else 0,
                "trigger_data": trigger_data
            }, now)
            return RoundWinner(
                election_id=election.id,
                round_number=round_obj.round_number,
                winner_candidate_id=winner_id
            )

        result = await self._mutate(operation)
        if result.winner_candidate_id is None:
            logger.info(f"⚠️ 选举 {election_id} 第{result.round_number}轮没有候选人，已结算但无获胜者")
        else:
            logger.info(f"🏆 选举 {election_id} 第{result.round_number}轮获胜者: 候选人 #{result.winner_candidate_id}")
        return result

    async def start_new_round(self, election_id: int, caller: str, duration_seconds: int) -> RoundStatus:
        """开启新一轮（仅组织者，且上一轮已选出获胜者）"""
        def operation():
            now = self.clock()
            election = self._get_election(election_id)
            self._require_organizer(election, caller)
            current = self._get_current_round(election)
            if not current.is_winner_picked:
                raise errors.WinnerNotYetPicked(current.round_number)
            self._validate_duration(duration_seconds)

            round_number = current.round_number + 1
            round_obj = self._open_round(election, round_number, duration_seconds, now)
            election.current_round_number = round_number
            self._record_event(election.id, round_number, "NewRoundStarted", {
                "round_number": round_number,
                "duration_seconds": duration_seconds
            }, now)
            return election, round_obj

        election, round_obj = await self._mutate(operation)
        logger.info(f"🔄 选举 {election_id} 开启第{round_obj.round_number}轮，时长 {duration_seconds} 秒")
        return self._build_round_status(election, round_obj)

    # ------------------------------------------------------------------
    # 查询
    # ------------------------------------------------------------------

    async def list_elections(self, skip: int = 0, limit: int = 10) -> List[RoundStatus]:
        """获取选举列表"""
        elections = self.db.query(Election).order_by(Election.id).offset(skip).limit(limit).all()
        return [self._build_round_status(e, self._get_current_round(e)) for e in elections]

    async def get_round_status(self, election_id: int) -> RoundStatus:
        election = self._get_election(election_id)
        return self._build_round_status(election, self._get_current_round(election))

    async def get_organizer(self, election_id: int) -> str:
        return self._get_election(election_id).organizer_address

    async def get_current_round_number(self, election_id: int) -> int:
        return self._get_election(election_id).current_round_number

    async def get_current_duration(self, election_id: int) -> int:
        election = self._get_election(election_id)
        return self._get_current_round(election).duration_seconds

    async def get_is_voting_active(self, election_id: int) -> bool:
        election = self._get_election(election_id)
        return bool(self._get_current_round(election).is_active)

    async def get_is_winner_picked(self, election_id: int) -> bool:
        election = self._get_election(election_id)
        return bool(self._get_current_round(election).is_winner_picked)

    async def get_candidate_count(self, election_id: int) -> int:
        election = self._get_election(election_id)
        round_obj = self._get_current_round(election)
        return self.db.query(Candidate).filter(Candidate.round_id == round_obj.id).count()

    async def get_voter_count(self, election_id: int) -> int:
        election = self._get_election(election_id)
        round_obj = self._get_current_round(election)
        return self.db.query(Voter).filter(Voter.round_id == round_obj.id).count()

    async def get_all_candidates(self, election_id: int) -> List[CandidateInfo]:
        """当前轮全部候选人，按注册编号排序"""
        election = self._get_election(election_id)
        round_obj = self._get_current_round(election)
        candidates = self.db.query(Candidate).filter(
            Candidate.round_id == round_obj.id
        ).order_by(Candidate.candidate_id).all()
        return [CandidateInfo.model_validate(c) for c in candidates]

    async def get_all_voters(self, election_id: int) -> List[VoterInfo]:
        """当前轮全部选民，按注册编号排序"""
        election = self._get_election(election_id)
        round_obj = self._get_current_round(election)
        voters = self.db.query(Voter).filter(
            Voter.round_id == round_obj.id
        ).order_by(Voter.voter_id).all()
        return [VoterInfo.model_validate(v) for v in voters]

    async def get_candidate_by_id(self, election_id: int, round_number: int, candidate_id: int) -> CandidateInfo:
        round_obj = self._get_round(election_id, round_number)
        candidate = self._find_candidate_by_id(round_obj, candidate_id)
        if not candidate:
            raise errors.CandidateNotFound(candidate_id=candidate_id)
        return CandidateInfo.model_validate(candidate)

    async def get_candidate_by_address(self, election_id: int, round_number: int, address: str) -> CandidateInfo:
        round_obj = self._get_round(election_id, round_number)
        wallet_address = normalize_address(address)
        candidate = self._find_candidate_by_address(round_obj, wallet_address)
        if not candidate:
            raise errors.CandidateNotFound(address=wallet_address)
        return CandidateInfo.model_validate(candidate)

    async def get_voter_by_id(self, election_id: int, round_number: int, voter_id: int) -> VoterInfo:
        round_obj = self._get_round(election_id, round_number)
        voter = self.db.query(Voter).filter(
            Voter.round_id == round_obj.id,
            Voter.voter_id == voter_id
        ).first()
        if not voter:
            raise errors.VoterNotFound(voter_id)
        return VoterInfo.model_validate(voter)

    async def get_voter_by_address(self, election_id: int, round_number: int, address: str) -> VoterInfo:
        round_obj = self._get_round(election_id, round_number)
        wallet_address = normalize_address(address)
        voter = self._find_voter_by_address(round_obj, wallet_address)
        if not voter:
            raise errors.VoterAddressNotFound(wallet_address)
        return VoterInfo.model_validate(voter)

    async def get_voter_vote_status(self, election_id: int, address: str) -> VoteStatus:
        """当前轮中某地址的投票状态"""
        election = self._get_election(election_id)
        round_obj = self._get_current_round(election)
        wallet_address = normalize_address(address)
        voter = self._find_voter_by_address(round_obj, wallet_address)
        if not voter:
            raise errors.VoterAddressNotFound(wallet_address)
        return VoteStatus(
            address=wallet_address,
            has_voted=bool(voter.has_voted),
            voted_candidate_id=voter.voted_candidate_id
        )

    async def get_round_winner_by_id(self, election_id: int, round_number: int) -> RoundWinner:
        round_obj = self._get_round(election_id, round_number)
        if not round_obj.is_winner_picked:
            raise errors.WinnerNotYetPicked(round_number)
        return RoundWinner(
            election_id=election_id,
            round_number=round_number,
            winner_candidate_id=round_obj.winner_candidate_id
        )

    async def get_events(self, election_id: int, round_number: Optional[int] = None) -> List[EventInfo]:
        """获取选举事件日志，按发生顺序排列"""
        self._get_election(election_id)
        query = self.db.query(ElectionEvent).filter(ElectionEvent.election_id == election_id)
        if round_number is not None:
            query = query.filter(ElectionEvent.round_number == round_number)
        return [
            EventInfo(
                id=event.id,
                election_id=event.election_id,
                round_number=event.round_number,
                event_type=event.event_type,
                payload=json.loads(event.payload),
                created_at=event.created_at
            )
            for event in query.order_by(ElectionEvent.id).all()
        ]

    async def find_finalize_ready_elections(self) -> List[int]:
        """找出当前轮已到结算时间的选举"""
        now = self.clock()
        rows = self.db.query(Election, Round).join(
            Round,
            and_(Round.election_id == Election.id, Round.round_number == Election.current_round_number)
        ).filter(Round.is_active.is_(True)).order_by(Election.id).all()
        return [election.id for election, round_obj in rows if self._is_finalize_ready(round_obj, now)]

    # ------------------------------------------------------------------
    # 内部方法
    # ------------------------------------------------------------------

    async def _mutate(self, operation: Callable[[], Any]) -> Any:
        """串行执行写操作：先校验再修改，失败则整体回滚"""
        with _mutation_lock:
            self.db.expire_all()
            try:
                result = operation()
                self.db.commit()
            except errors.ElectionError as e:
                self.db.rollback()
                self._pending_events.clear()
                logger.info(f"⚠️ 操作被拒绝: {e.code} {e.context}")
                raise
            except Exception:
                self.db.rollback()
                self._pending_events.clear()
                raise
        await self._publish_events()
        return result

    async def _publish_events(self):
        """事务提交后向WebSocket观察者广播事件"""
        events, self._pending_events = self._pending_events, []
        if not self.websocket_manager:
            return
        for message in events:
            await self.websocket_manager.broadcast_to_election(message, message["election_id"])

    def _record_event(self, election_id: int, round_number: int, event_type: str,
                      payload: Dict[str, Any], now: datetime):
        self.db.add(ElectionEvent(
            election_id=election_id,
            round_number=round_number,
            event_type=event_type,
            payload=json.dumps(payload, ensure_ascii=False),
            created_at=now
        ))
        self._pending_events.append({
            "type": event_type,
            "election_id": election_id,
            "round_number": round_number,
            **payload,
            "timestamp": format_timestamp_with_timezone(now)
        })

    def _open_round(self, election: Election, round_number: int, duration_seconds: int, now: datetime) -> Round:
        round_obj = Round(
            election_id=election.id,
            round_number=round_number,
            start_time=now,
            duration_seconds=duration_seconds,
            is_active=True,
            is_winner_picked=False
        )
        self.db.add(round_obj)
        self.db.flush()
        return round_obj

    def _get_election(self, election_id: int) -> Election:
        election = self.db.query(Election).filter(Election.id == election_id).first()
        if not election:
            raise errors.ElectionNotFound(election_id)
        return election

    def _get_current_round(self, election: Election) -> Round:
        round_obj = self.db.query(Round).filter(
            Round.election_id == election.id,
            Round.round_number == election.current_round_number
        ).first()
        if not round_obj:
            raise errors.RoundNotFound(election.current_round_number)
        return round_obj

    def _get_round(self, election_id: int, round_number: int) -> Round:
        self._get_election(election_id)
        round_obj = self.db.query(Round).filter(
            Round.election_id == election_id,
            Round.round_number == round_number
        ).first()
        if not round_obj:
            raise errors.RoundNotFound(round_number)
        return round_obj

    def _find_candidate_by_id(self, round_obj: Round, candidate_id: int,
                              for_update: bool = False) -> Optional[Candidate]:
        query = self.db.query(Candidate).filter(
            Candidate.round_id == round_obj.id,
            Candidate.candidate_id == candidate_id
        )
        if for_update:
            query = query.with_for_update()
        return query.first()

    def _find_candidate_by_address(self, round_obj: Round, wallet_address: str) -> Optional[Candidate]:
        return self.db.query(Candidate).filter(
            Candidate.round_id == round_obj.id,
            Candidate.wallet_address == wallet_address
        ).first()

    def _find_voter_by_address(self, round_obj: Round, wallet_address: str,
                               for_update: bool = False) -> Optional[Voter]:
        query = self.db.query(Voter).filter(
            Voter.round_id == round_obj.id,
            Voter.wallet_address == wallet_address
        )
        if for_update:
            query = query.with_for_update()
        return query.first()

    @staticmethod
    def _require_organizer(election: Election, caller: str):
        if normalize_address(caller) != election.organizer_address:
            raise errors.NotOrganizer(normalize_address(caller), election.organizer_address)

    @staticmethod
    def _require_window_open(round_obj: Round, now: datetime):
        deadline = round_deadline(round_obj)
        if not round_obj.is_active or now >= deadline:
            raise errors.VotingWindowClosed(round_obj.round_number, deadline)

    @staticmethod
    def _is_finalize_ready(round_obj: Round, now: datetime) -> bool:
        return bool(round_obj.is_active) and now >= round_deadline(round_obj)

    @staticmethod
    def _validate_duration(duration_seconds: Any):
        if isinstance(duration_seconds, bool) or not isinstance(duration_seconds, int) or duration_seconds <= 0:
            raise errors.InvalidDuration(duration_seconds)

    def _build_round_status(self, election: Election, round_obj: Round) -> RoundStatus:
        candidate_count = self.db.query(Candidate).filter(Candidate.round_id == round_obj.id).count()
        voter_count = self.db.query(Voter).filter(Voter.round_id == round_obj.id).count()
        return RoundStatus(
            election_id=election.id,
            organizer=election.organizer_address,
            round_number=round_obj.round_number,
            start_time=round_obj.start_time,
            deadline=round_deadline(round_obj),
            duration_seconds=round_obj.duration_seconds,
            is_active=bool(round_obj.is_active),
            is_winner_picked=bool(round_obj.is_winner_picked),
            winner_candidate_id=round_obj.winner_candidate_id,
            candidate_count=candidate_count,
            voter_count=voter_count
        )
