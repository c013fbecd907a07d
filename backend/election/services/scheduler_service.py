"""
定时结算服务

选举引擎本身不带定时器。这里的调度器在引擎外部定期轮询，
对投票窗口已结束的选举调用 check_finalize_ready / finalize。
"""

import asyncio
import logging
from datetime import datetime
from typing import Callable, List, Optional

from election.core.config import settings
from election.core.database import SessionLocal
from election.core.errors import FinalizeNotNeeded
from election.core.utils import utc_now
from election.schemas.election_schemas import RoundWinner
from election.services.election_service import ElectionService

logger = logging.getLogger(__name__)

class FinalizeScheduler:
    """结算调度器"""

    def __init__(self, session_factory: Callable = SessionLocal, websocket_manager=None,
                 interval: float = settings.FINALIZE_POLL_INTERVAL,
                 clock: Callable[[], datetime] = utc_now):
        self.session_factory = session_factory
        self.websocket_manager = websocket_manager
        self.interval = interval
        self.clock = clock
        self._task: Optional[asyncio.Task] = None
        self._stop_event: Optional[asyncio.Event] = None

    async def sweep(self) -> List[RoundWinner]:
        """执行一次结算扫描，返回本次完成结算的轮次"""
        db = self.session_factory()
        try:
            service = ElectionService(db, self.websocket_manager, self.clock)
            finalized = []
            for election_id in await service.find_finalize_ready_elections():
                if not await service.check_finalize_ready(election_id):
                    continue
                try:
                    result = await service.finalize(election_id, trigger_data="scheduler")
                except FinalizeNotNeeded:
                    # 其他触发方已经完成结算
                    logger.info(f"选举 {election_id} 已被其他触发方结算，跳过")
                    continue
                finalized.append(result)
            if finalized:
                logger.info(f"✅ 本次扫描结算了 {len(finalized)} 个选举轮次")
            return finalized
        finally:
            db.close()

    async def run(self):
        """轮询循环，直到 stop() 被调用"""
        if self._stop_event is None:
            self._stop_event = asyncio.Event()
        logger.info(f"⏰ 结算调度器已启动，轮询间隔 {self.interval} 秒")
        while not self._stop_event.is_set():
            try:
                await self.sweep()
            except Exception:
                logger.exception("❌ 结算扫描失败")
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                pass
        logger.info("结算调度器已停止")

    def start(self) -> asyncio.Task:
        """在当前事件循环中启动后台轮询任务"""
        if self._task is None or self._task.done():
            self._stop_event = asyncio.Event()
            self._task = asyncio.create_task(self.run())
        return self._task

    async def stop(self):
        """停止后台轮询任务并等待其结束"""
        if self._stop_event is not None:
            self._stop_event.set()
        if self._task is not None:
            await self._task
            self._task = None
