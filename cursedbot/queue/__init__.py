"""
队列管理模块 - 歌曲模型、服务器队列状态机和队列注册表

该模块负责队列的所有变更和播放状态转换。
所有对某个服务器队列的操作都通过 QueueRegistry 的服务器级锁串行执行。
"""

from .track import Track
from .guild_queue import GuildQueue, validate_volume
from .registry import QueueRegistry

__all__ = [
    "Track",
    "GuildQueue",
    "QueueRegistry",
    "validate_volume"
]
