#!/usr/bin/env python3
"""
结算到期选举的快捷脚本（供cron等外部定时器调用）

不带参数时直接连接本地数据库扫描；
传入 --api-url 时通过HTTP API驱动远程选举服务结算。
"""

import argparse
import asyncio
import logging
import os
import sys

# 添加项目根目录到Python路径
sys.path.append(os.path.dirname(os.path.abspath(__file__)))

from election.core.database import init_db
from election.services.remote_finalize_service import RemoteFinalizeClient
from election.services.scheduler_service import FinalizeScheduler

logger = logging.getLogger("election.finalize")

async def main(api_url=None) -> int:
    """执行一次结算扫描"""
    try:
        if api_url:
            finalized = await RemoteFinalizeClient(api_url).sweep()
        else:
            init_db()
            finalized = await FinalizeScheduler().sweep()
    except Exception as e:
        logger.error(f"❌ 结算扫描失败: {e}")
        return 1

    if not finalized:
        print("没有需要结算的选举")
    for result in finalized:
        print(f"🏆 选举 {result.election_id} 第{result.round_number}轮获胜者: 候选人 #{result.winner_candidate_id}")
    return 0

if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    parser = argparse.ArgumentParser(description="结算投票窗口已结束的选举轮次")
    parser.add_argument("--api-url", default=None, help="远程选举服务API地址，例如 http://localhost:8001/api")
    args = parser.parse_args()
    sys.exit(asyncio.run(main(args.api_url)))
