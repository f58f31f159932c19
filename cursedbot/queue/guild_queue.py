"""
服务器队列 - 单个服务器的歌曲队列与播放状态机

状态转换:
    IDLE --enqueue--> PLAYING <--pause/resume--> PAUSED
    PLAYING/PAUSED --skip/会话结束(队列已空)--> IDLE
    PLAYING/PAUSED --stop--> STOPPED（随后从注册表移除）

GuildQueue 本身不加锁。所有方法都必须在 QueueRegistry 提供的
服务器级串行上下文中调用，每个操作完整地完成状态转换（包括打开/关闭会话）
之后下一个操作才会开始。
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, List, Optional

from cursedbot.core.exceptions import (
    AlreadyPausedError,
    EmptyQueueError,
    InvalidVolumeError,
    NotPausedError,
    SessionError,
    truncate_message,
)
from cursedbot.core.interfaces import IEventNotifier, IPlaybackSession, ISessionFactory, PlaybackState
from cursedbot.playback.notifier import QueueEvent
from .track import Track


MIN_VOLUME = 1
MAX_VOLUME = 100
DEFAULT_VOLUME = 100
DEFAULT_SESSION_TIMEOUT = 15.0

# 会话事件投递：(服务器ID, 会话, 错误或None)
SessionEventHandler = Callable[[int, IPlaybackSession, Optional[BaseException]], Awaitable[None]]

ACTIVE_STATES = (PlaybackState.PLAYING, PlaybackState.PAUSED)


def validate_volume(percent: Any) -> int:
    """
    校验音量

    Args:
        percent: 音量百分比

    Returns:
        合法的音量

    Raises:
        InvalidVolumeError: 不是 1-100 之间的整数
    """
    if isinstance(percent, bool) or not isinstance(percent, int):
        raise InvalidVolumeError(percent)
    if not MIN_VOLUME <= percent <= MAX_VOLUME:
        raise InvalidVolumeError(percent)
    return percent


class GuildQueue:
    """
    服务器队列状态机

    持有歌曲列表、播放状态、音量和唯一的播放会话。
    """

    def __init__(
        self,
        guild_id: int,
        session_factory: ISessionFactory,
        notifier: IEventNotifier,
        on_session_event: Optional[SessionEventHandler] = None,
        default_volume: int = DEFAULT_VOLUME,
        session_timeout: float = DEFAULT_SESSION_TIMEOUT
    ):
        """
        初始化服务器队列

        Args:
            guild_id: Discord服务器ID
            session_factory: 播放会话工厂
            notifier: 事件通知器
            on_session_event: 会话结束/出错事件的投递入口（应进入服务器串行上下文）
            default_volume: 初始音量
            session_timeout: 打开/关闭会话的超时时间（秒）
        """
        self.guild_id = guild_id
        self.logger = logging.getLogger(f"cursedbot.queue.guild.{guild_id}")

        self.tracks: List[Track] = []
        self.state = PlaybackState.IDLE
        self.session: Optional[IPlaybackSession] = None
        self.reply_channel: Any = None
        self.voice_channel: Any = None

        self._volume = validate_volume(default_volume)
        self._session_factory = session_factory
        self._notifier = notifier
        self._on_session_event = on_session_event
        self._session_timeout = session_timeout

        self.logger.debug(f"服务器队列初始化完成 - 服务器 {guild_id}")

    @property
    def volume(self) -> int:
        """当前音量（1-100）"""
        return self._volume

    @property
    def current_track(self) -> Optional[Track]:
        """正在播放（或暂停）的歌曲"""
        if self.state in ACTIVE_STATES and self.tracks:
            return self.tracks[0]
        return None

    @property
    def is_active(self) -> bool:
        """是否有活跃的播放会话"""
        return self.state in ACTIVE_STATES

    def update_channels(self, reply_channel: Any = None, voice_channel: Any = None) -> None:
        """
        更新通知频道和语音频道

        Args:
            reply_channel: 命令所在的文本频道
            voice_channel: 点歌用户所在的语音频道
        """
        if reply_channel is not None and reply_channel != self.reply_channel:
            self.reply_channel = reply_channel
            self.logger.debug(f"更新通知频道: {getattr(reply_channel, 'id', reply_channel)}")
        if voice_channel is not None:
            self.voice_channel = voice_channel

    async def enqueue(self, track: Track, reply_channel: Any = None, voice_channel: Any = None) -> int:
        """
        添加歌曲到队列

        空闲时立即开始播放并发送"正在播放"通知，否则只发送"已添加"通知。

        Args:
            track: 已解析的歌曲
            reply_channel: 命令所在的文本频道
            voice_channel: 点歌用户所在的语音频道

        Returns:
            歌曲在队列中的位置（0 表示正在播放）

        Raises:
            SessionError: 打开播放会话失败（队列已被重置为空闲）
        """
        self.update_channels(reply_channel, voice_channel)
        self.tracks.append(track)
        position = len(self.tracks) - 1

        if self.state in ACTIVE_STATES:
            self.logger.info(f"歌曲添加到队列: {track.title} (位置 {position})")
            await self._notify(QueueEvent.song_added(track.title))
            return position

        self.logger.info(f"队列空闲，开始播放: {track.title}")
        await self._start_current()
        return 0

    async def skip(self) -> Track:
        """
        跳过当前歌曲

        Returns:
            被跳过的歌曲

        Raises:
            EmptyQueueError: 当前没有歌曲在播放
            SessionError: 关闭或打开会话失败（队列已被重置为空闲）
        """
        if self.state not in ACTIVE_STATES:
            raise EmptyQueueError("没有可以跳过的歌曲")

        try:
            await self._close_session()
        except SessionError as e:
            await self._fail(e)
            raise

        skipped = self.tracks.pop(0)
        self.logger.info(f"⏭️ 跳过歌曲: {skipped.title} (剩余 {len(self.tracks)} 首)")

        if not self.tracks:
            self.state = PlaybackState.IDLE
            return skipped

        await self._start_current()
        return skipped

    async def stop(self) -> int:
        """
        停止播放并清空队列

        Returns:
            被清除的歌曲数量

        Raises:
            EmptyQueueError: 队列已经空闲（仍然会断开残留的语音连接）
        """
        if self.state not in ACTIVE_STATES:
            await self.release_voice()
            raise EmptyQueueError("当前没有正在播放的音乐")

        try:
            await self._close_session()
        except SessionError as e:
            self.logger.warning(f"停止时关闭会话失败: {e}")

        cleared = len(self.tracks)
        self.tracks.clear()
        self.state = PlaybackState.STOPPED

        await self.release_voice()

        self.logger.info(f"⏹️ 停止播放: 清空了 {cleared} 首歌曲")
        return cleared

    async def release_voice(self) -> None:
        """断开服务器的语音连接，失败只记录日志"""
        try:
            await self._call_session(self._session_factory.release(self.guild_id), "断开语音连接")
        except SessionError as e:
            self.logger.warning(f"断开语音连接失败: {e}")

    async def pause(self) -> None:
        """
        暂停播放

        Raises:
            EmptyQueueError: 当前没有歌曲在播放
            AlreadyPausedError: 已经暂停
            SessionError: 会话操作失败
        """
        if self.state is PlaybackState.PAUSED:
            raise AlreadyPausedError()
        if self.state is not PlaybackState.PLAYING:
            raise EmptyQueueError()

        try:
            await self._call_session(self.session.pause(), "暂停")
        except SessionError as e:
            await self._fail(e)
            raise

        self.state = PlaybackState.PAUSED
        self.logger.info(f"⏸️ 暂停播放: {self.tracks[0].title}")

    async def resume(self) -> None:
        """
        恢复播放

        Raises:
            EmptyQueueError: 当前没有歌曲在播放
            NotPausedError: 没有暂停
            SessionError: 会话操作失败
        """
        if self.state is PlaybackState.PLAYING:
            raise NotPausedError()
        if self.state is not PlaybackState.PAUSED:
            raise EmptyQueueError()

        try:
            await self._call_session(self.session.resume(), "恢复")
        except SessionError as e:
            await self._fail(e)
            raise

        self.state = PlaybackState.PLAYING
        self.logger.info(f"▶️ 恢复播放: {self.tracks[0].title}")

    async def set_volume(self, percent: int) -> int:
        """
        设置音量

        没有活跃会话时只记录音量，下一次打开会话时生效。

        Args:
            percent: 音量百分比（1-100）

        Returns:
            新的音量

        Raises:
            InvalidVolumeError: 音量超出范围（不修改任何状态）
            SessionError: 应用到会话失败
        """
        self._volume = validate_volume(percent)

        if self.session is not None:
            try:
                await self._call_session(self.session.set_volume(self._volume), "设置音量")
            except SessionError as e:
                await self._fail(e)
                raise

        self.logger.info(f"🔊 音量设置为 {self._volume}%")
        return self._volume

    async def on_session_ended(self, session: IPlaybackSession) -> bool:
        """
        处理播放会话的自然结束，推进到下一首歌曲

        Args:
            session: 发出结束事件的会话

        Returns:
            True 如果队列被推进；过期事件返回 False
        """
        if not self._is_current_session(session):
            self.logger.debug("忽略过期的会话结束事件")
            return False

        self.session = None
        finished = self.tracks.pop(0)
        self.logger.info(f"歌曲播放完成: {finished.title} (剩余 {len(self.tracks)} 首)")

        if not self.tracks:
            self.state = PlaybackState.IDLE
            self.logger.info("队列已播放完毕")
            return True

        try:
            await self._start_current()
        except SessionError as e:
            self.logger.warning(f"自动播放下一首失败: {e}")
        return True

    async def on_session_error(self, session: IPlaybackSession, error: BaseException) -> bool:
        """
        处理播放会话在播放过程中出现的错误

        Args:
            session: 出错的会话
            error: 协作者报告的错误

        Returns:
            True 如果队列被重置；过期事件返回 False
        """
        if not self._is_current_session(session):
            self.logger.debug(f"忽略过期的会话错误事件: {error}")
            return False

        await self._fail(SessionError(f"播放出错: {truncate_message(str(error))}"))
        return True

    def render(self, limit: int = 20) -> str:
        """
        渲染队列列表

        Args:
            limit: 最多显示的歌曲数量

        Returns:
            队列文本，当前歌曲以 ▶️ 标记
        """
        if not self.tracks:
            return "📜 队列是空的"

        lines = ["📜 **当前队列:**"]
        for index, track in enumerate(self.tracks[:limit]):
            if index == 0:
                paused = " (已暂停)" if self.state is PlaybackState.PAUSED else ""
                lines.append(f"▶️ {track.title} - {track.format_duration()}{paused}")
            else:
                lines.append(f"{index}. {track.title} - {track.format_duration()}")

        hidden = len(self.tracks) - limit
        if hidden > 0:
            lines.append(f"…还有 {hidden} 首")
        return "\n".join(lines)

    def _is_current_session(self, session: IPlaybackSession) -> bool:
        return self.state in ACTIVE_STATES and session is not None and session is self.session

    async def _start_current(self) -> None:
        """为队首歌曲打开会话，进入播放状态"""
        track = self.tracks[0]
        try:
            self.session = await self._call_session(
                self._session_factory.open_session(
                    self.guild_id,
                    self.voice_channel,
                    track,
                    self._volume,
                    self._deliver_session_event
                ),
                "打开会话"
            )
        except SessionError as e:
            await self._fail(e)
            raise

        self.state = PlaybackState.PLAYING
        self.logger.info(f"🎵 开始播放: {track.title} ({track.format_duration()})")
        await self._notify(QueueEvent.song_started(track.title, track.duration))

    async def _close_session(self) -> None:
        session, self.session = self.session, None
        if session is not None:
            await self._call_session(session.close(), "关闭会话")

    async def _deliver_session_event(self, session: IPlaybackSession, error: Optional[BaseException]) -> None:
        if self._on_session_event is None:
            self.logger.warning("没有会话事件处理器，丢弃会话事件")
            return
        await self._on_session_event(self.guild_id, session, error)

    async def _call_session(self, awaitable: Awaitable[Any], action: str) -> Any:
        """
        在超时限制下调用会话协作者，所有失败统一包装为 SessionError

        Args:
            awaitable: 协作者调用
            action: 操作名称（用于日志）
        """
        try:
            return await asyncio.wait_for(awaitable, timeout=self._session_timeout)
        except asyncio.TimeoutError as e:
            raise SessionError(f"{action}超时 ({self._session_timeout}s)") from e
        except SessionError:
            raise
        except Exception as e:
            raise SessionError(f"{action}失败: {truncate_message(str(e))}") from e

    async def _fail(self, error: SessionError) -> None:
        """会话失败后防御性地重置为空闲状态，关闭任何残留的会话"""
        self.logger.error(f"❌ 播放会话错误，重置队列: {error}")

        try:
            await self._close_session()
        except SessionError as e:
            self.logger.warning(f"关闭残留会话失败: {e}")

        self.tracks.clear()
        self.state = PlaybackState.IDLE
        await self._notify(QueueEvent.error(str(error)))

    async def _notify(self, event: QueueEvent) -> None:
        try:
            await self._notifier.notify(self.reply_channel, event)
        except Exception as e:
            self.logger.warning(f"发送通知失败 ({event.kind.value}): {e}")

    def __repr__(self) -> str:
        return (
            f"GuildQueue(guild_id={self.guild_id}, state={self.state.value}, "
            f"tracks={len(self.tracks)}, volume={self._volume})"
        )
