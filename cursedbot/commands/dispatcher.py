"""
命令分发器 - 将已校验的命令意图转换为对服务器队列的调用

支持七种命令: play, skip, stop, queue, pause, resume, volume。
每个命令在对应服务器的串行上下文（QueueRegistry.lock）中执行，
播放会话的结束/出错事件也通过同一个上下文投递。
"""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional

from cursedbot.core.exceptions import (
    EmptyQueueError,
    InvalidTrackError,
    MusicError,
    NoVoiceChannelError,
    truncate_message,
)
from cursedbot.core.interfaces import (
    IEventNotifier,
    IPlaybackSession,
    ISessionFactory,
    ITrackResolver,
    PlaybackState,
)
from cursedbot.queue import GuildQueue, QueueRegistry, validate_volume
from cursedbot.queue.guild_queue import DEFAULT_SESSION_TIMEOUT, DEFAULT_VOLUME


# Discord 单条消息上限为 2000 字符
REPLY_LIMIT = 1900


class CommandKind(Enum):
    """命令类型"""
    PLAY = "play"
    SKIP = "skip"
    STOP = "stop"
    QUEUE = "queue"
    PAUSE = "pause"
    RESUME = "resume"
    VOLUME = "volume"


@dataclass(frozen=True)
class CommandIntent:
    """
    已校验的命令意图

    Attributes:
        kind: 命令类型
        guild_id: 服务器ID
        invoker_voice_channel: 调用者所在的语音频道（不在语音频道时为 None）
        reply_channel: 命令所在的文本频道
        args: 命令参数（play: query, volume: percent）
    """
    kind: CommandKind
    guild_id: int
    invoker_voice_channel: Any = None
    reply_channel: Any = None
    args: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class CommandReply:
    """回复给命令调用者的确认消息"""
    content: str
    success: bool = True


class CommandDispatcher:
    """
    命令分发器

    拥有队列注册表，是命令层和会话回调访问 GuildQueue 的唯一入口。
    """

    def __init__(
        self,
        resolver: ITrackResolver,
        session_factory: ISessionFactory,
        notifier: IEventNotifier,
        default_volume: int = DEFAULT_VOLUME,
        session_timeout: float = DEFAULT_SESSION_TIMEOUT
    ):
        """
        初始化命令分发器

        Args:
            resolver: 歌曲解析器
            session_factory: 播放会话工厂
            notifier: 事件通知器
            default_volume: 新队列的默认音量
            session_timeout: 会话操作超时时间（秒）
        """
        self.logger = logging.getLogger("cursedbot.commands.dispatcher")
        self._resolver = resolver
        self._session_factory = session_factory
        self._notifier = notifier
        self._default_volume = validate_volume(default_volume)
        self._session_timeout = session_timeout

        self.registry = QueueRegistry(self._create_queue)

        self._handlers: Dict[CommandKind, Callable[[CommandIntent], Awaitable[str]]] = {
            CommandKind.PLAY: self._handle_play,
            CommandKind.SKIP: self._handle_skip,
            CommandKind.STOP: self._handle_stop,
            CommandKind.QUEUE: self._handle_queue,
            CommandKind.PAUSE: self._handle_pause,
            CommandKind.RESUME: self._handle_resume,
            CommandKind.VOLUME: self._handle_volume,
        }

    def _create_queue(self, guild_id: int) -> GuildQueue:
        return GuildQueue(
            guild_id,
            self._session_factory,
            self._notifier,
            on_session_event=self.handle_session_finished,
            default_volume=self._default_volume,
            session_timeout=self._session_timeout
        )

    async def execute(self, intent: CommandIntent) -> CommandReply:
        """
        执行命令并生成回复，从不抛出异常

        Args:
            intent: 命令意图

        Returns:
            回复给调用者的消息
        """
        try:
            content = await self.dispatch(intent)
            return CommandReply(content)
        except MusicError as e:
            self.logger.info(f"命令 {intent.kind.value} 失败 - 服务器 {intent.guild_id}: {e}")
            return CommandReply(f"❌ {truncate_message(e.user_message, REPLY_LIMIT)}", success=False)
        except Exception as e:
            self.logger.error(
                f"命令 {intent.kind.value} 发生意外错误 - 服务器 {intent.guild_id}: {e}",
                exc_info=True
            )
            return CommandReply(f"❌ 执行命令时出错: {truncate_message(str(e))}", success=False)

    async def dispatch(self, intent: CommandIntent) -> str:
        """
        分发命令

        Args:
            intent: 命令意图

        Returns:
            确认消息

        Raises:
            MusicError: 可预期的命令失败
        """
        handler = self._handlers.get(intent.kind)
        if handler is None:
            raise ValueError(f"未知命令: {intent.kind}")

        self.logger.debug(f"分发命令 {intent.kind.value} - 服务器 {intent.guild_id}")
        return await handler(intent)

    async def handle_session_finished(
        self,
        guild_id: int,
        session: IPlaybackSession,
        error: Optional[BaseException] = None
    ) -> None:
        """
        播放会话结束/出错事件的投递入口

        与用户命令在同一个服务器串行上下文中执行；
        已被跳过或停止的会话发出的过期事件会被忽略。

        Args:
            guild_id: 服务器ID
            session: 发出事件的会话
            error: 会话错误，正常结束时为 None
        """
        async with self.registry.lock(guild_id):
            queue = self.registry.get(guild_id)
            if queue is None:
                self.logger.debug(f"服务器 {guild_id} 没有队列，忽略会话事件")
                return

            if error is None:
                changed = await queue.on_session_ended(session)
            else:
                changed = await queue.on_session_error(session, error)

            if changed:
                await self._discard_if_finished(guild_id, queue, drop_idle=True)

    async def _handle_play(self, intent: CommandIntent) -> str:
        if intent.invoker_voice_channel is None:
            raise NoVoiceChannelError()

        query = str(intent.args.get("query") or "").strip()
        if not query:
            raise InvalidTrackError(query, "搜索内容为空")

        # 解析在串行上下文之外进行，不阻塞同一服务器的其他命令
        track = await self._resolver.resolve(query)

        async with self.registry.lock(intent.guild_id):
            created = intent.guild_id not in self.registry
            queue = self.registry.get_or_create(intent.guild_id)
            try:
                position = await queue.enqueue(track, intent.reply_channel, intent.invoker_voice_channel)
            finally:
                await self._discard_if_finished(intent.guild_id, queue, drop_idle=created)

        if position == 0:
            return f"🎶 开始播放: **{track.title}** - {track.format_duration()}"
        return f"➕ 已加入队列第 {position} 位: **{track.title}**"

    async def _handle_skip(self, intent: CommandIntent) -> str:
        async with self.registry.lock(intent.guild_id):
            queue = self._require_queue(intent)
            skipped = await queue.skip()
        return f"⏭️ 已跳过: **{skipped.title}**"

    async def _handle_stop(self, intent: CommandIntent) -> str:
        async with self.registry.lock(intent.guild_id):
            queue = self.registry.get(intent.guild_id)
            if queue is None:
                # 没有队列时也断开残留的语音连接
                await self._release_voice(intent.guild_id)
                raise EmptyQueueError()

            queue.update_channels(reply_channel=intent.reply_channel)
            try:
                await queue.stop()
            finally:
                await self._discard_if_finished(intent.guild_id, queue)
        return "⏹️ 已停止播放并清空队列！"

    async def _handle_queue(self, intent: CommandIntent) -> str:
        async with self.registry.lock(intent.guild_id):
            queue = self._require_queue(intent)
            return queue.render()

    async def _handle_pause(self, intent: CommandIntent) -> str:
        async with self.registry.lock(intent.guild_id):
            queue = self._require_queue(intent)
            await queue.pause()
        return "⏸️ 已暂停播放！"

    async def _handle_resume(self, intent: CommandIntent) -> str:
        async with self.registry.lock(intent.guild_id):
            queue = self._require_queue(intent)
            await queue.resume()
        return "▶️ 继续播放！"

    async def _handle_volume(self, intent: CommandIntent) -> str:
        # 范围校验先于队列查找
        percent = validate_volume(intent.args.get("percent"))

        async with self.registry.lock(intent.guild_id):
            queue = self._require_queue(intent)
            await queue.set_volume(percent)
        return f"🔊 音量已设置为 **{percent}%**"

    def _require_queue(self, intent: CommandIntent) -> GuildQueue:
        queue = self.registry.require(intent.guild_id)
        queue.update_channels(reply_channel=intent.reply_channel)
        return queue

    async def _discard_if_finished(self, guild_id: int, queue: GuildQueue, drop_idle: bool = False) -> None:
        """
        已停止的队列（以及需要时空闲的队列）从注册表移除

        被移除的空闲队列同时断开语音连接；已停止的队列在 stop() 中已经断开。
        """
        if self.registry.get(guild_id) is not queue:
            return

        if queue.state is PlaybackState.STOPPED:
            self.registry.remove(guild_id)
        elif drop_idle and queue.state is PlaybackState.IDLE:
            self.registry.remove(guild_id)
            await queue.release_voice()
        else:
            return
        self.logger.info(f"服务器 {guild_id} 的队列已释放 ({queue.state.value})")

    async def _release_voice(self, guild_id: int) -> None:
        try:
            await asyncio.wait_for(self._session_factory.release(guild_id), timeout=self._session_timeout)
        except Exception as e:
            self.logger.warning(f"断开语音连接失败 - 服务器 {guild_id}: {e}")
