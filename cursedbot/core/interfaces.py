"""
核心接口定义 - 定义队列状态机与外部协作者之间的抽象接口

队列状态机只依赖这里定义的抽象：播放会话、会话工厂、歌曲解析器和事件通知器。
具体实现（discord.py 语音、yt-dlp 解析、文本频道通知）位于各自的模块中，
测试中则替换为内存中的假实现。
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from cursedbot.queue.track import Track
    from cursedbot.playback.notifier import QueueEvent


class PlaybackState(Enum):
    """队列播放状态"""
    IDLE = "idle"        # 没有歌曲，没有会话
    PLAYING = "playing"  # 会话活跃，当前歌曲正在播放
    PAUSED = "paused"    # 会话挂起，保留当前歌曲
    STOPPED = "stopped"  # 已停止，队列已清空，等待从注册表移除


class IPlaybackSession(ABC):
    """播放会话接口 - 一次只播放一首歌曲的音频传输"""

    @abstractmethod
    async def pause(self) -> None:
        """挂起音频传输"""
        pass

    @abstractmethod
    async def resume(self) -> None:
        """恢复音频传输"""
        pass

    @abstractmethod
    async def set_volume(self, percent: int) -> None:
        """在不中断播放的情况下调整音量"""
        pass

    @abstractmethod
    async def close(self) -> None:
        """关闭会话；被关闭的会话不再发出 ended 事件"""
        pass


# 会话结束回调：(会话, 错误或None)
SessionFinishedCallback = Callable[[IPlaybackSession, Optional[BaseException]], Awaitable[None]]


class ISessionFactory(ABC):
    """会话工厂接口 - 为指定歌曲打开新的播放会话"""

    @abstractmethod
    async def open_session(
        self,
        guild_id: int,
        voice_channel: Any,
        track: 'Track',
        volume: int,
        on_finished: SessionFinishedCallback
    ) -> IPlaybackSession:
        """打开会话并开始播放"""
        pass

    @abstractmethod
    async def release(self, guild_id: int) -> None:
        """释放服务器的语音连接"""
        pass


class ITrackResolver(ABC):
    """歌曲解析器接口 - 将搜索词或链接解析为可播放的歌曲"""

    @abstractmethod
    async def resolve(self, query: str) -> 'Track':
        """解析歌曲，失败时抛出 InvalidTrackError"""
        pass


class IEventNotifier(ABC):
    """事件通知器接口 - 将队列事件发送到文本频道"""

    @abstractmethod
    async def notify(self, channel: Any, event: 'QueueEvent') -> None:
        """发送通知"""
        pass
