"""Cursed Brothers 音乐机器人主实现"""
import asyncio
import logging
from typing import Optional

import discord
from discord.ext import commands

from cursedbot.app_commands import MusicSlashCommands
from cursedbot.commands import CommandDispatcher
from cursedbot.core.dependency_container import DependencyContainer
from cursedbot.playback import ChannelNotifier, VoiceSessionFactory
from cursedbot.provider import YtDlpResolver
from cursedbot.utils.config_manager import ConfigManager


class CursedBot:
    """
    Cursed Brothers 音乐机器人主实现类

    - 每个服务器独立的歌曲队列
    - 播放 / 跳过 / 停止 / 暂停 / 继续 / 音量 控制
    - 播放状态变化通知到命令所在的文本频道
    """

    def __init__(self, config: ConfigManager):
        """
        初始化机器人

        Args:
            config: 配置管理器
        """
        self.logger = logging.getLogger("cursedbot.bot")
        self.config = config
        self.container = DependencyContainer()

        intents = discord.Intents.none()
        intents.guilds = True
        intents.voice_states = True
        intents.guild_messages = True

        self.bot = commands.Bot(
            command_prefix=commands.when_mentioned,
            intents=intents,
            help_command=None
        )

        self._commands_synced = False

        self._register_dependencies()
        self._init_core_modules()

        self.bot.add_listener(self._on_ready, 'on_ready')

        self.logger.info("🎵 音乐机器人初始化成功")

    def _register_dependencies(self) -> None:
        """注册依赖项到依赖注入容器"""
        def create_resolver(config: ConfigManager) -> YtDlpResolver:
            return YtDlpResolver(timeout=config.get_resolve_timeout())

        def create_session_factory(config: ConfigManager) -> VoiceSessionFactory:
            return VoiceSessionFactory(self.bot, ffmpeg_path=config.get_ffmpeg_path())

        def create_dispatcher(
            config: ConfigManager,
            resolver: YtDlpResolver,
            session_factory: VoiceSessionFactory,
            notifier: ChannelNotifier
        ) -> CommandDispatcher:
            return CommandDispatcher(
                resolver,
                session_factory,
                notifier,
                default_volume=config.get_default_volume(),
                session_timeout=config.get_session_timeout()
            )

        def create_music_commands(dispatcher: CommandDispatcher) -> MusicSlashCommands:
            return MusicSlashCommands(self.bot, dispatcher)

        self.container.register_instance("config", self.config)
        self.container.register_singleton("resolver", create_resolver, ["config"])
        self.container.register_singleton("session_factory", create_session_factory, ["config"])
        self.container.register_singleton("notifier", ChannelNotifier)
        self.container.register_singleton(
            "dispatcher",
            create_dispatcher,
            ["config", "resolver", "session_factory", "notifier"]
        )
        self.container.register_singleton("music_commands", create_music_commands, ["dispatcher"])

        self.container.validate_dependencies()
        self.logger.debug("📝 依赖项注册完成")

    def _init_core_modules(self) -> None:
        """解析核心组件并注册 Slash 命令"""
        try:
            self.dispatcher: CommandDispatcher = self.container.resolve("dispatcher")
            self.session_factory: VoiceSessionFactory = self.container.resolve("session_factory")
            self.music_commands: MusicSlashCommands = self.container.resolve("music_commands")

            self.music_commands.register()
            self.bot.tree.error(self.music_commands.on_error)

            self.logger.info("✅ 核心模块初始化完成")
        except Exception as e:
            self.logger.error(f"❌ 核心模块初始化失败: {e}", exc_info=True)
            raise RuntimeError(f"核心模块初始化失败: {e}") from e

    async def _on_ready(self) -> None:
        """机器人就绪时的初始化任务"""
        self.logger.info(f"🤖 机器人已就绪: {self.bot.user}")

        activity = discord.Activity(type=discord.ActivityType.listening, name=self.config.get_presence_text())
        await self.bot.change_presence(activity=activity, status=discord.Status.online)

        if self._commands_synced:
            return

        try:
            await self.sync_commands()
            self._commands_synced = True
        except discord.HTTPException as e:
            self.logger.error(f"❌ Slash Commands 同步失败: {e}", exc_info=True)

    async def sync_commands(self) -> None:
        """同步 Slash 命令到 Discord（配置了服务器时只同步到该服务器，立即生效）"""
        guild_id = self.config.get_guild_id()
        if guild_id is not None:
            guild = discord.Object(id=guild_id)
            self.bot.tree.copy_global_to(guild=guild)
            synced = await self.bot.tree.sync(guild=guild)
            self.logger.info(f"✅ 已同步 {len(synced)} 个命令到服务器 {guild_id}")
        else:
            synced = await self.bot.tree.sync()
            self.logger.info(f"✅ 已全局同步 {len(synced)} 个命令")

    async def close(self) -> None:
        """关闭 Discord 机器人并清理资源"""
        self.logger.info("🛑 正在关闭音乐机器人...")
        try:
            await self.dispatcher.registry.close_all()
            await self.session_factory.release_all()
        except Exception as e:
            self.logger.error(f"关闭过程中发生错误: {e}", exc_info=True)
        if not self.bot.is_closed():
            await self.bot.close()
        self.logger.info("✅ 音乐机器人关闭成功")

    def run(self, token: str) -> None:
        """
        运行 Discord 机器人（阻塞式）

        Args:
            token: Discord 机器人令牌
        """
        try:
            asyncio.run(self._run(token))
        except KeyboardInterrupt:
            self.logger.info("用户停止了机器人")

    async def _run(self, token: str) -> None:
        async with self.bot:
            try:
                await self.bot.start(token)
            finally:
                await self.close()

    @property
    def user(self) -> Optional[discord.ClientUser]:
        """获取机器人用户"""
        return self.bot.user
