"""
Slash Commands 模块

把 Discord 交互映射为平台无关的命令意图，交给命令分发器处理。
"""

from .music_commands import MusicSlashCommands

__all__ = [
    "MusicSlashCommands"
]
