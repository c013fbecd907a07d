"""
远程结算客户端

通过HTTP API驱动结算：先查询就绪状态，就绪时再调用结算接口。
适用于调度器与选举服务不在同一进程的部署方式。
"""

import logging
from typing import List, Optional

import httpx

from election.core.config import settings
from election.schemas.election_schemas import FinalizeReady, RoundWinner

logger = logging.getLogger(__name__)

class RemoteFinalizeClient:
    """远程结算客户端"""

    PAGE_SIZE = 100

    def __init__(self, base_url: str = settings.REMOTE_API_URL, timeout: float = settings.REMOTE_TIMEOUT,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout, transport=self.transport)

    async def list_election_ids(self) -> List[int]:
        """分页获取全部选举编号"""
        election_ids = []
        skip = 0
        async with self._client() as client:
            while True:
                response = await client.get("/election/", params={"skip": skip, "limit": self.PAGE_SIZE})
                response.raise_for_status()
                page = response.json()
                election_ids.extend(item["election_id"] for item in page)
                if len(page) < self.PAGE_SIZE:
                    return election_ids
                skip += self.PAGE_SIZE

    async def check_finalize_ready(self, election_id: int) -> FinalizeReady:
        async with self._client() as client:
            response = await client.get(f"/election/{election_id}/finalize/ready")
            response.raise_for_status()
            return FinalizeReady(**response.json())

    async def finalize(self, election_id: int, trigger_data: Optional[str] = None) -> Optional[RoundWinner]:
        """请求结算；对方返回 FinalizeNotNeeded 时返回 None"""
        async with self._client() as client:
            response = await client.post(
                f"/election/{election_id}/finalize",
                json={"trigger_data": trigger_data}
            )
            if response.status_code == 409 and response.json().get("detail", {}).get("code") == "FinalizeNotNeeded":
                return None
            response.raise_for_status()
            return RoundWinner(**response.json())

    async def sweep(self) -> List[RoundWinner]:
        """对所有就绪的选举执行一次远程结算"""
        finalized = []
        for election_id in await self.list_election_ids():
            ready = await self.check_finalize_ready(election_id)
            if not ready.ready:
                continue
            result = await self.finalize(election_id, trigger_data="remote-scheduler")
            if result is None:
                logger.info(f"选举 {election_id} 已被其他触发方结算，跳过")
                continue
            logger.info(f"🏆 选举 {election_id} 第{result.round_number}轮获胜者: 候选人 #{result.winner_candidate_id}")
            finalized.append(result)
        return finalized
