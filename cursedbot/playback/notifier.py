"""
播放事件通知 - 将队列状态变化广播到文本频道

每次可观察的状态转换都会产生一个 QueueEvent：
- song_started: 开始播放一首歌曲
- song_added: 歌曲加入队列等待播放
- error: 播放会话出错

通知是尽力而为的：发送失败只记录日志，不会回滚队列操作。
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from cursedbot.core.exceptions import truncate_message
from cursedbot.core.interfaces import IEventNotifier
from cursedbot.utils.formatting import format_duration


class EventKind(Enum):
    """队列事件类型"""
    SONG_STARTED = "song_started"
    SONG_ADDED = "song_added"
    ERROR = "error"


@dataclass(frozen=True)
class QueueEvent:
    """队列事件"""
    kind: EventKind
    title: Optional[str] = None
    duration: Optional[int] = None
    message: Optional[str] = None

    @classmethod
    def song_started(cls, title: str, duration: int) -> 'QueueEvent':
        return cls(EventKind.SONG_STARTED, title=title, duration=duration)

    @classmethod
    def song_added(cls, title: str) -> 'QueueEvent':
        return cls(EventKind.SONG_ADDED, title=title)

    @classmethod
    def error(cls, message: str) -> 'QueueEvent':
        return cls(EventKind.ERROR, message=truncate_message(message))

    def render(self) -> str:
        """
        渲染为面向用户的消息文本

        Returns:
            消息文本
        """
        if self.kind is EventKind.SONG_STARTED:
            return f"▶️ 正在播放: **{self.title}** - {format_duration(self.duration or 0)}"
        if self.kind is EventKind.SONG_ADDED:
            return f"➕ 已添加: **{self.title}**"
        return f"⚠️ 错误: {self.message}"


class ChannelNotifier(IEventNotifier):
    """
    文本频道通知器

    使用 discord.py 的 Messageable.send 发送事件消息。
    """

    def __init__(self):
        self.logger = logging.getLogger("cursedbot.playback.notifier")

    async def notify(self, channel: Any, event: QueueEvent) -> None:
        """
        发送事件通知

        Args:
            channel: 文本频道（discord.abc.Messageable）
            event: 队列事件
        """
        if channel is None:
            self.logger.debug(f"没有回复频道，跳过通知: {event.kind.value}")
            return

        await channel.send(event.render())
        self.logger.debug(f"📨 已发送通知 {event.kind.value} 到频道 {getattr(channel, 'id', '?')}")
