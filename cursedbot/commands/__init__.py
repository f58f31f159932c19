"""命令模块 - 命令意图与分发"""

from .dispatcher import CommandDispatcher, CommandIntent, CommandKind, CommandReply

__all__ = [
    "CommandDispatcher",
    "CommandIntent",
    "CommandKind",
    "CommandReply"
]
