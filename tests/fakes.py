"""
测试用的协作者假实现

FakeSessionFactory 记录打开的会话，测试可以调用 FakeSession.finish()
模拟 discord.py 的 after 回调（播放结束或出错）。
"""

import asyncio
from typing import Any, List, Optional
from unittest.mock import Mock

from cursedbot.core.exceptions import InvalidTrackError
from cursedbot.core.interfaces import (
    IEventNotifier,
    IPlaybackSession,
    ISessionFactory,
    ITrackResolver,
    SessionFinishedCallback,
)
from cursedbot.playback.notifier import QueueEvent
from cursedbot.queue.track import Track


def make_track(title: str = "Song", duration: int = 180) -> Track:
    return Track(title=title, duration=duration, source_ref=f"https://cdn.example.com/{title}")


class FakeSession(IPlaybackSession):
    """记录所有调用的会话"""

    def __init__(self, track: Track, volume: int, on_finished: SessionFinishedCallback):
        self.track = track
        self.volume = volume
        self.on_finished = on_finished
        self.paused = False
        self.closed = False
        self.fail_on: Optional[str] = None

    def _maybe_fail(self, action: str) -> None:
        if self.fail_on == action:
            raise RuntimeError(f"{action} failed")

    async def pause(self) -> None:
        self._maybe_fail("pause")
        self.paused = True

    async def resume(self) -> None:
        self._maybe_fail("resume")
        self.paused = False

    async def set_volume(self, percent: int) -> None:
        self._maybe_fail("set_volume")
        self.volume = percent

    async def close(self) -> None:
        self._maybe_fail("close")
        self.closed = True

    async def finish(self, error: Optional[BaseException] = None) -> None:
        """模拟音频播放结束"""
        await self.on_finished(self, error)


class FakeSessionFactory(ISessionFactory):
    """按顺序记录打开的会话"""

    def __init__(self):
        self.sessions: List[FakeSession] = []
        self.voice_channels: List[Any] = []
        self.released: List[int] = []
        self.fail_open = False
        self.open_error_message = "voice connection refused"
        self.hang_open = False
        # 设置后 open_session 进入时通知 opening，并等待 gate 才完成
        self.opening: Optional[asyncio.Event] = None
        self.gate: Optional[asyncio.Event] = None

    @property
    def last(self) -> FakeSession:
        return self.sessions[-1]

    async def open_session(self, guild_id, voice_channel, track, volume, on_finished) -> FakeSession:
        if self.opening is not None:
            self.opening.set()
        if self.gate is not None:
            await self.gate.wait()
        if self.hang_open:
            await asyncio.sleep(3600)
        if self.fail_open:
            raise RuntimeError(self.open_error_message)
        await asyncio.sleep(0)
        session = FakeSession(track, volume, on_finished)
        self.sessions.append(session)
        self.voice_channels.append(voice_channel)
        return session

    async def release(self, guild_id: int) -> None:
        self.released.append(guild_id)


class RecordingNotifier(IEventNotifier):
    """记录发送的事件"""

    def __init__(self):
        self.events: List[QueueEvent] = []
        self.channels: List[Any] = []
        self.fail = False

    async def notify(self, channel: Any, event: QueueEvent) -> None:
        if self.fail:
            raise ConnectionError("discord unavailable")
        self.events.append(event)
        self.channels.append(channel)


class FakeResolver(ITrackResolver):
    """按标题生成歌曲；在 unknown 集合中的查询解析失败"""

    def __init__(self, durations: Optional[dict] = None):
        self.durations = durations or {}
        self.unknown = set()
        self.queries: List[str] = []

    async def resolve(self, query: str) -> Track:
        self.queries.append(query)
        if query in self.unknown:
            raise InvalidTrackError(query, "没有找到结果")
        return make_track(query, self.durations.get(query, 180))


def make_channel(channel_id: int) -> Mock:
    channel = Mock()
    channel.id = channel_id
    return channel
