#!/usr/bin/env python3
"""
Cursed Brothers 音乐机器人 - 每个服务器独立队列的 Discord 音乐机器人

主程序入口点，负责配置加载、日志设置、机器人初始化和启动。
"""
import logging
import sys

from cursedbot.bot import CursedBot
from cursedbot.utils.config_manager import ConfigManager
from cursedbot.utils.logger import setup_logger


def main() -> int:
    """
    音乐机器人主入口函数

    Returns:
        int: 退出代码（0表示成功，1表示错误）
    """
    try:
        config = ConfigManager()
    except FileNotFoundError as e:
        setup_logger()
        logging.getLogger("cursedbot").error(f"❌ 配置文件错误: {e}")
        return 1

    setup_logger(
        log_level=config.get_log_level(),
        log_file=config.get_log_file(),
        max_size=config.get_log_max_size(),
        backup_count=config.get_log_backup_count()
    )
    logger = logging.getLogger("cursedbot")

    logger.info("=" * 60)
    logger.info("🎵 Cursed Brothers 音乐机器人启动中...")
    logger.info("=" * 60)

    try:
        discord_token = config.get_discord_token()
    except ValueError as e:
        logger.error(f"❌ Discord 令牌配置错误: {e}")
        logger.error("请设置 DISCORD_TOKEN 环境变量，或在 config/config.yaml 中设置 discord.token")
        return 1

    try:
        bot = CursedBot(config)
        _log_bot_configuration(logger, config)
        logger.info("🚀 启动音乐机器人... 按 Ctrl+C 停止")
        bot.run(discord_token)
    except Exception as e:
        logger.error(f"❌ 启动音乐机器人时发生意外错误: {e}", exc_info=True)
        return 1

    return 0


def _log_bot_configuration(logger: logging.Logger, config: ConfigManager) -> None:
    """
    记录机器人配置摘要

    Args:
        logger: 日志记录器实例
        config: 配置管理器
    """
    guild_id = config.get_guild_id()
    logger.info("📋 机器人配置摘要:")
    logger.info(f"   命令同步: {f'服务器 {guild_id}' if guild_id else '全局'}")
    logger.info(f"   默认音量: {config.get_default_volume()}%")
    logger.info(f"   会话超时: {config.get_session_timeout()} 秒")
    logger.info(f"   解析超时: {config.get_resolve_timeout()} 秒")
    logger.info(f"   ffmpeg: {config.get_ffmpeg_path()}")
    logger.info("=" * 60)


if __name__ == "__main__":
    sys.exit(main())
