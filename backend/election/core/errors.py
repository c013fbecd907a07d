"""
选举引擎错误类型

每种失败都有独立的异常类，携带结构化的上下文字段，
调用方可以根据 code 和字段做出反应，而不必解析错误文本。
"""

from datetime import datetime
from typing import Any, Dict, Optional

from election.core.utils import format_timestamp_with_timezone


class ElectionError(Exception):
    """选举引擎错误基类"""

    code = "ElectionError"
    status_code = 400

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context = context

    def to_dict(self) -> Dict[str, Any]:
        """转换为可序列化的错误详情"""
        detail: Dict[str, Any] = {"code": self.code, "message": self.message}
        for key, value in self.context.items():
            if isinstance(value, datetime):
                value = format_timestamp_with_timezone(value)
            detail[key] = value
        return detail


class NotOrganizer(ElectionError):
    code = "NotOrganizer"
    status_code = 403

    def __init__(self, caller: str, organizer: str):
        super().__init__(f"只有组织者可以执行该操作: {caller} != {organizer}",
                         caller=caller, organizer=organizer)
        self.caller = caller
        self.organizer = organizer


class VotingWindowClosed(ElectionError):
    code = "VotingWindowClosed"
    status_code = 409

    def __init__(self, round_number: int, deadline: datetime):
        super().__init__(f"第{round_number}轮投票窗口已关闭",
                         round_number=round_number, deadline=deadline)
        self.round_number = round_number
        self.deadline = deadline


class VotingClosed(ElectionError):
    code = "VotingClosed"
    status_code = 409

    def __init__(self, round_number: int):
        super().__init__(f"第{round_number}轮已结算，不再接受投票", round_number=round_number)
        self.round_number = round_number


class CandidateAlreadyExists(ElectionError):
    code = "CandidateAlreadyExists"
    status_code = 409

    def __init__(self, address: str):
        super().__init__(f"候选人 {address} 已存在", address=address)
        self.address = address


class VoterAlreadyExists(ElectionError):
    code = "VoterAlreadyExists"
    status_code = 409

    def __init__(self, address: str):
        super().__init__(f"选民 {address} 已存在", address=address)
        self.address = address


class CandidateNotFound(ElectionError):
    code = "CandidateNotFound"
    status_code = 404

    def __init__(self, candidate_id: Optional[int] = None, address: Optional[str] = None):
        target = address if address is not None else candidate_id
        super().__init__(f"候选人 {target} 不存在", candidate_id=candidate_id, address=address)
        self.candidate_id = candidate_id
        self.address = address


class VoterNotFound(ElectionError):
    code = "VoterNotFound"
    status_code = 404

    def __init__(self, voter_id: int):
        super().__init__(f"选民 {voter_id} 不存在", voter_id=voter_id)
        self.voter_id = voter_id


class VoterAddressNotFound(ElectionError):
    code = "VoterAddressNotFound"
    status_code = 404

    def __init__(self, address: str):
        super().__init__(f"地址 {address} 没有注册为选民", address=address)
        self.address = address


class NotRegistered(ElectionError):
    code = "NotRegistered"
    status_code = 403

    def __init__(self, address: str):
        super().__init__(f"{address} 未注册，不能投票", address=address)
        self.address = address


class AlreadyVoted(ElectionError):
    code = "AlreadyVoted"
    status_code = 409

    def __init__(self, address: str, voted_candidate_id: Optional[int]):
        super().__init__(f"{address} 已经投过票", address=address,
                         voted_candidate_id=voted_candidate_id)
        self.address = address
        self.voted_candidate_id = voted_candidate_id


class FinalizeNotNeeded(ElectionError):
    code = "FinalizeNotNeeded"
    status_code = 409

    def __init__(self, round_number: int, is_active: bool, deadline: datetime):
        super().__init__(f"第{round_number}轮暂不需要结算", round_number=round_number,
                         is_active=is_active, deadline=deadline)
        self.round_number = round_number
        self.is_active = is_active
        self.deadline = deadline


class WinnerNotYetPicked(ElectionError):
    code = "WinnerNotYetPicked"
    status_code = 409

    def __init__(self, round_number: int):
        super().__init__(f"第{round_number}轮尚未选出获胜者", round_number=round_number)
        self.round_number = round_number


class ElectionNotFound(ElectionError):
    code = "ElectionNotFound"
    status_code = 404

    def __init__(self, election_id: int):
        super().__init__(f"选举 {election_id} 不存在", election_id=election_id)
        self.election_id = election_id


class RoundNotFound(ElectionError):
    code = "RoundNotFound"
    status_code = 404

    def __init__(self, round_number: int):
        super().__init__(f"第{round_number}轮不存在", round_number=round_number)
        self.round_number = round_number


class InvalidDuration(ElectionError):
    code = "InvalidDuration"
    status_code = 400

    def __init__(self, duration_seconds: Any):
        super().__init__(f"无效的投票时长: {duration_seconds}", duration_seconds=duration_seconds)
        self.duration_seconds = duration_seconds
