"""
播放模块 - 语音播放会话和事件通知

该模块提供队列状态机使用的外部协作者实现：
基于 discord.py 的语音会话工厂，以及发送到文本频道的事件通知器。
"""

from .notifier import ChannelNotifier, EventKind, QueueEvent
from .voice_session import VoiceSession, VoiceSessionFactory

__all__ = [
    "ChannelNotifier",
    "EventKind",
    "QueueEvent",
    "VoiceSession",
    "VoiceSessionFactory"
]
