"""
App Commands测试配置

提供测试所需的fixtures
"""

import logging
from unittest.mock import AsyncMock, Mock

import discord
import pytest

from cursedbot.commands.dispatcher import CommandDispatcher, CommandReply


@pytest.fixture
def mock_dispatcher():
    """创建模拟命令分发器"""
    dispatcher = Mock(spec=CommandDispatcher)
    dispatcher.execute = AsyncMock(return_value=CommandReply("⏭️ 已跳过: **Test Song**"))
    return dispatcher


@pytest.fixture
def mock_interaction():
    """创建模拟Discord交互对象"""
    interaction = Mock(spec=discord.Interaction)
    interaction.guild = Mock()
    interaction.guild.id = 12345
    interaction.guild.name = "Test Guild"
    interaction.user = Mock()
    interaction.user.id = 67890
    interaction.user.display_name = "TestUser"
    interaction.user.voice = Mock()
    interaction.user.voice.channel = Mock()
    interaction.channel = Mock()
    interaction.channel.id = 11111
    interaction.command = Mock()
    interaction.command.name = "play"
    interaction.response = Mock()
    interaction.response.is_done = Mock(return_value=False)
    interaction.response.send_message = AsyncMock()
    interaction.response.defer = AsyncMock()
    interaction.followup = Mock()
    interaction.followup.send = AsyncMock()
    return interaction


@pytest.fixture
def mock_bot():
    """创建模拟Discord机器人"""
    bot = Mock()
    bot.tree = Mock()
    return bot


@pytest.fixture(autouse=True)
def setup_logging():
    """设置测试日志"""
    # 禁用日志输出以保持测试输出清洁
    logging.getLogger("cursedbot.app_commands").setLevel(logging.CRITICAL)
    yield
    logging.getLogger("cursedbot.app_commands").setLevel(logging.DEBUG)
