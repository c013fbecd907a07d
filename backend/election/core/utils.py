"""
工具函数模块
"""

from typing import Optional
from datetime import datetime, timezone


def utc_now() -> datetime:
    """当前UTC时间（不带时区信息，与数据库存储格式一致）"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def normalize_address(address: str) -> str:
    """规范化钱包地址：去除首尾空白并统一小写"""
    return address.strip().lower()


def format_timestamp_with_timezone(timestamp: Optional[datetime]) -> str:
    """格式化时间戳，确保包含UTC时区标识符"""
    if not timestamp:
        return ""
    # 确保发送给前端的时间戳包含'Z'后缀，表示这是UTC时间
    return timestamp.isoformat() + 'Z'
