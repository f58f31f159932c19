"""
语音会话 - 基于 discord.py VoiceClient 的播放会话实现

负责Discord语音频道的连接、移动和断开，以及单首歌曲的音频播放控制。
discord.py 在音频线程中调用 after 回调，这里将其转交回事件循环，
使"播放结束/出错"成为投递到服务器串行上下文中的消息，而不是直接重入队列。
"""

import asyncio
import logging
from typing import Any, Dict, Optional, TYPE_CHECKING

import discord
from discord.ext import commands

from cursedbot.core.exceptions import SessionError, truncate_message
from cursedbot.core.interfaces import IPlaybackSession, ISessionFactory, SessionFinishedCallback

if TYPE_CHECKING:
    from cursedbot.queue.track import Track


FFMPEG_OPTIONS = {
    "before_options": "-reconnect 1 -reconnect_streamed 1 -reconnect_delay_max 5",
    "options": "-vn",
}


class VoiceSession(IPlaybackSession):
    """
    单首歌曲的语音播放会话

    被 close() 关闭的会话不会再发出结束事件。
    """

    def __init__(
        self,
        guild_id: int,
        voice_client: discord.VoiceClient,
        source: discord.PCMVolumeTransformer,
        loop: asyncio.AbstractEventLoop,
        on_finished: SessionFinishedCallback
    ):
        self.guild_id = guild_id
        self.logger = logging.getLogger("cursedbot.playback.session")
        self._voice_client = voice_client
        self._source = source
        self._loop = loop
        self._on_finished = on_finished
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def start(self) -> None:
        """开始播放"""
        self._voice_client.play(self._source, after=self._after_playing)
        self.logger.debug(f"开始播放音频 - 服务器 {self.guild_id}")

    def _after_playing(self, error: Optional[Exception]) -> None:
        # 在音频线程中运行
        if self._closed:
            return
        self._closed = True

        if error:
            self.logger.error(f"播放过程中出错 - 服务器 {self.guild_id}: {error}")

        if self._loop.is_closed():
            self.logger.debug(f"事件循环已关闭，丢弃会话结束事件 - 服务器 {self.guild_id}")
            return

        future = asyncio.run_coroutine_threadsafe(self._on_finished(self, error), self._loop)
        future.add_done_callback(self._log_delivery_failure)

    def _log_delivery_failure(self, future) -> None:
        if future.cancelled():
            return
        exc = future.exception()
        if exc is not None:
            self.logger.error(f"处理会话结束事件失败 - 服务器 {self.guild_id}: {exc}", exc_info=exc)

    def _require_connected(self) -> None:
        if self._closed or not self._voice_client.is_connected():
            raise SessionError("语音连接已断开")

    async def pause(self) -> None:
        self._require_connected()
        self._voice_client.pause()

    async def resume(self) -> None:
        self._require_connected()
        self._voice_client.resume()

    async def set_volume(self, percent: int) -> None:
        self._source.volume = percent / 100

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._voice_client.is_playing() or self._voice_client.is_paused():
            self._voice_client.stop()
        self.logger.debug(f"关闭播放会话 - 服务器 {self.guild_id}")


class VoiceSessionFactory(ISessionFactory):
    """
    语音会话工厂

    管理Discord语音连接，支持多服务器同时连接和播放。
    """

    def __init__(self, bot: commands.Bot, ffmpeg_path: str = "ffmpeg"):
        """
        初始化语音会话工厂

        Args:
            bot: Discord机器人实例
            ffmpeg_path: ffmpeg 可执行文件路径
        """
        self.bot = bot
        self.ffmpeg_path = ffmpeg_path
        self.logger = logging.getLogger("cursedbot.playback.voice")
        self._voice_clients: Dict[int, discord.VoiceClient] = {}

    def get_voice_client(self, guild_id: int) -> Optional[discord.VoiceClient]:
        """
        获取指定服务器的语音客户端

        Args:
            guild_id: 服务器ID

        Returns:
            已连接的语音客户端，如果不存在则返回None
        """
        voice_client = self._voice_clients.get(guild_id)
        if voice_client is not None:
            if voice_client.is_connected():
                return voice_client
            del self._voice_clients[guild_id]

        guild = self.bot.get_guild(guild_id)
        if guild and guild.voice_client and guild.voice_client.is_connected():
            self._voice_clients[guild_id] = guild.voice_client
            return guild.voice_client
        return None

    async def connect(self, guild_id: int, channel: Any) -> discord.VoiceClient:
        """
        连接（或移动）到语音频道

        Args:
            guild_id: 服务器ID
            channel: 目标语音频道

        Returns:
            语音客户端

        Raises:
            SessionError: 没有可用的语音频道或连接失败
        """
        existing = self.get_voice_client(guild_id)
        if channel is None:
            if existing is None:
                raise SessionError("没有可连接的语音频道")
            return existing

        try:
            if existing is not None:
                if existing.channel != channel:
                    await existing.move_to(channel)
                    self.logger.info(f"移动到频道: {channel.name}")
                return existing

            voice_client = await channel.connect()
        except discord.ClientException as e:
            raise SessionError(f"Discord客户端错误: {truncate_message(str(e))}") from e

        self._voice_clients[guild_id] = voice_client
        self.logger.info(f"成功连接到语音频道: {channel.name} (服务器: {channel.guild.name})")
        return voice_client

    async def open_session(
        self,
        guild_id: int,
        voice_channel: Any,
        track: 'Track',
        volume: int,
        on_finished: SessionFinishedCallback
    ) -> VoiceSession:
        """
        为歌曲打开播放会话

        Args:
            guild_id: 服务器ID
            voice_channel: 语音频道
            track: 要播放的歌曲
            volume: 音量（1-100）
            on_finished: 播放结束回调

        Returns:
            已开始播放的会话
        """
        voice_client = await self.connect(guild_id, voice_channel)

        if voice_client.is_playing() or voice_client.is_paused():
            voice_client.stop()

        audio = discord.FFmpegPCMAudio(track.source_ref, executable=self.ffmpeg_path, **FFMPEG_OPTIONS)
        source = discord.PCMVolumeTransformer(audio, volume=volume / 100)

        session = VoiceSession(guild_id, voice_client, source, asyncio.get_running_loop(), on_finished)
        session.start()
        return session

    async def release(self, guild_id: int) -> None:
        """
        断开服务器的语音连接

        Args:
            guild_id: 服务器ID
        """
        voice_client = self.get_voice_client(guild_id)
        self._voice_clients.pop(guild_id, None)
        if voice_client is None:
            self.logger.debug(f"服务器 {guild_id} 没有语音连接")
            return

        await voice_client.disconnect()
        self.logger.info(f"已断开语音连接 - 服务器 {guild_id}")

    async def release_all(self) -> None:
        """断开所有语音连接"""
        for guild_id in list(self._voice_clients):
            try:
                await self.release(guild_id)
            except Exception as e:
                self.logger.error(f"断开语音连接失败 - 服务器 {guild_id}: {e}")
