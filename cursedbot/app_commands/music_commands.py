"""
音乐 Slash 命令

将 Discord 交互转换为命令意图并交给命令分发器：
- /play 搜索并播放歌曲
- /skip /stop /pause /resume 播放控制
- /queue 显示队列
- /volume 设置音量
"""

import logging
from typing import Any, Optional

import discord
from discord import app_commands
from discord.ext import commands

from cursedbot.commands.dispatcher import CommandDispatcher, CommandIntent, CommandKind, CommandReply


class MusicSlashCommands:
    """
    音乐命令注册器

    把七个音乐命令注册到机器人的命令树上。
    """

    def __init__(self, bot: commands.Bot, dispatcher: CommandDispatcher):
        """
        初始化音乐命令

        Args:
            bot: Discord机器人实例
            dispatcher: 命令分发器
        """
        self.bot = bot
        self.dispatcher = dispatcher
        self.logger = logging.getLogger("cursedbot.app_commands.music")

    def register(self) -> None:
        """注册所有音乐命令"""
        tree = self.bot.tree

        @tree.command(name="play", description="通过名字或链接播放歌曲")
        @app_commands.describe(query="歌曲名字或链接")
        async def play(interaction: discord.Interaction, query: str):
            await self.run(interaction, CommandKind.PLAY, defer=True, query=query)

        @tree.command(name="skip", description="跳过当前歌曲")
        async def skip(interaction: discord.Interaction):
            await self.run(interaction, CommandKind.SKIP)

        @tree.command(name="stop", description="停止播放并清空队列")
        async def stop(interaction: discord.Interaction):
            await self.run(interaction, CommandKind.STOP)

        @tree.command(name="queue", description="显示当前队列")
        async def queue(interaction: discord.Interaction):
            await self.run(interaction, CommandKind.QUEUE)

        @tree.command(name="pause", description="暂停当前歌曲")
        async def pause(interaction: discord.Interaction):
            await self.run(interaction, CommandKind.PAUSE)

        @tree.command(name="resume", description="继续播放暂停的歌曲")
        async def resume(interaction: discord.Interaction):
            await self.run(interaction, CommandKind.RESUME)

        @tree.command(name="volume", description="设置音量")
        @app_commands.describe(percent="音量 (1-100)")
        async def volume(interaction: discord.Interaction, percent: int):
            await self.run(interaction, CommandKind.VOLUME, percent=percent)

        self.logger.info("音乐命令已注册")

    def build_intent(self, interaction: discord.Interaction, kind: CommandKind, **args: Any) -> CommandIntent:
        """
        从交互构建命令意图

        Args:
            interaction: Discord交互对象
            kind: 命令类型
            **args: 命令参数

        Returns:
            命令意图
        """
        voice_state = getattr(interaction.user, "voice", None)
        voice_channel = voice_state.channel if voice_state else None
        return CommandIntent(
            kind=kind,
            guild_id=interaction.guild.id,
            invoker_voice_channel=voice_channel,
            reply_channel=interaction.channel,
            args=args
        )

    async def run(self, interaction: discord.Interaction, kind: CommandKind, defer: bool = False, **args: Any) -> None:
        """
        执行音乐命令

        Args:
            interaction: Discord交互对象
            kind: 命令类型
            defer: 是否先延迟响应（解析歌曲需要时间）
            **args: 命令参数
        """
        if interaction.guild is None:
            await interaction.response.send_message("❌ 此命令只能在服务器中使用", ephemeral=True)
            return

        self.logger.debug(
            f"命令开始 - {kind.value} | 用户: {interaction.user.display_name} | 服务器: {interaction.guild.name}"
        )

        intent = self.build_intent(interaction, kind, **args)
        if defer:
            await interaction.response.defer(thinking=True)

        reply = await self.dispatcher.execute(intent)
        await self.send_reply(interaction, reply)

    async def send_reply(self, interaction: discord.Interaction, reply: CommandReply) -> None:
        """
        发送命令确认消息，失败的命令只对调用者可见

        Args:
            interaction: Discord交互对象
            reply: 命令回复
        """
        if interaction.response.is_done():
            await interaction.followup.send(reply.content)
        else:
            await interaction.response.send_message(reply.content, ephemeral=not reply.success)

    async def on_error(self, interaction: discord.Interaction, error: app_commands.AppCommandError) -> None:
        """
        命令树的全局错误处理器

        Args:
            interaction: Discord交互对象
            error: 命令错误
        """
        command_name: Optional[str] = interaction.command.name if interaction.command else None
        self.logger.error(f"命令错误 - {command_name}: {type(error).__name__}: {error}", exc_info=error)

        embed = discord.Embed(
            title="❌ 错误",
            description="执行命令时发生错误，请稍后重试",
            color=discord.Color.red()
        )
        try:
            if interaction.response.is_done():
                await interaction.followup.send(embed=embed, ephemeral=True)
            else:
                await interaction.response.send_message(embed=embed, ephemeral=True)
        except discord.HTTPException as e:
            self.logger.error(f"发送错误响应失败: {e}")
