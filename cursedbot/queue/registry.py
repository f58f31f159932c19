"""
队列注册表 - 进程级的 服务器ID -> GuildQueue 映射

每个服务器拥有一把独立的 asyncio.Lock 作为串行执行上下文：
用户命令和会话事件都必须持有该锁才能查找、创建或修改队列。
不同服务器的锁互不相关，彼此不会阻塞。
"""

import asyncio
import logging
from typing import Callable, Dict, Iterator, List, Optional

from cursedbot.core.exceptions import EmptyQueueError
from .guild_queue import GuildQueue


QueueFactory = Callable[[int], GuildQueue]


class QueueRegistry:
    """
    队列注册表

    保证每个服务器最多只有一个 GuildQueue。
    """

    def __init__(self, queue_factory: QueueFactory):
        """
        初始化注册表

        Args:
            queue_factory: 为服务器创建新队列的工厂函数
        """
        self.logger = logging.getLogger("cursedbot.queue.registry")
        self._queue_factory = queue_factory
        self._queues: Dict[int, GuildQueue] = {}
        # 锁在服务器首次出现时创建且永不删除，
        # 否则等待旧锁的操作可能与持有新锁的操作并发执行
        self._locks: Dict[int, asyncio.Lock] = {}

    def lock(self, guild_id: int) -> asyncio.Lock:
        """
        获取服务器的串行执行锁

        Args:
            guild_id: 服务器ID

        Returns:
            该服务器专属的锁
        """
        lock = self._locks.get(guild_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[guild_id] = lock
        return lock

    def get(self, guild_id: int) -> Optional[GuildQueue]:
        """获取服务器的队列，不存在时返回 None"""
        return self._queues.get(guild_id)

    def get_or_create(self, guild_id: int) -> GuildQueue:
        """
        获取或创建服务器的队列

        Args:
            guild_id: 服务器ID

        Returns:
            队列实例（新建时使用默认设置）
        """
        queue = self._queues.get(guild_id)
        if queue is None:
            queue = self._queue_factory(guild_id)
            self._queues[guild_id] = queue
            self.logger.debug(f"为服务器 {guild_id} 创建队列")
        return queue

    def require(self, guild_id: int) -> GuildQueue:
        """
        获取已存在的队列

        Raises:
            EmptyQueueError: 服务器没有队列
        """
        queue = self._queues.get(guild_id)
        if queue is None:
            raise EmptyQueueError()
        return queue

    def remove(self, guild_id: int) -> Optional[GuildQueue]:
        """
        从注册表移除服务器的队列

        Args:
            guild_id: 服务器ID

        Returns:
            被移除的队列，不存在时返回 None
        """
        queue = self._queues.pop(guild_id, None)
        if queue is not None:
            self.logger.debug(f"移除服务器 {guild_id} 的队列 ({queue.state.value})")
        return queue

    def guild_ids(self) -> List[int]:
        """所有拥有队列的服务器ID"""
        return list(self._queues)

    async def close_all(self) -> int:
        """
        停止所有服务器的播放并清空注册表（关闭机器人时调用）

        Returns:
            被停止的队列数量
        """
        stopped = 0
        for guild_id in self.guild_ids():
            async with self.lock(guild_id):
                queue = self.get(guild_id)
                if queue is not None and queue.is_active:
                    try:
                        await queue.stop()
                        stopped += 1
                    except Exception as e:
                        self.logger.error(f"停止服务器 {guild_id} 的队列失败: {e}", exc_info=True)
                self.remove(guild_id)

        self.logger.info(f"已停止 {stopped} 个服务器的播放")
        return stopped

    def __contains__(self, guild_id: int) -> bool:
        return guild_id in self._queues

    def __len__(self) -> int:
        return len(self._queues)

    def __iter__(self) -> Iterator[GuildQueue]:
        return iter(list(self._queues.values()))
