"""
音乐队列异常定义

所有异常都是可预期、可恢复的情况，在命令分发边界被捕获，
并以 user_message 的形式直接回复给调用命令的用户。
"""

from typing import Optional


ERROR_EXCERPT_LIMIT = 200


def truncate_message(message: str, limit: int = ERROR_EXCERPT_LIMIT) -> str:
    """
    截断错误消息，避免向用户暴露过长的内部细节

    Args:
        message: 原始消息
        limit: 最大字符数

    Returns:
        截断后的消息
    """
    text = str(message)
    return text if len(text) <= limit else text[:limit]


class MusicError(Exception):
    """音乐队列异常基类"""

    default_message = "音乐操作失败"

    def __init__(self, message: Optional[str] = None, user_message: Optional[str] = None):
        """
        初始化异常

        Args:
            message: 日志用的错误消息
            user_message: 回复给用户的友好消息
        """
        super().__init__(message or self.default_message)
        self.user_message = user_message or message or self.default_message


class NoVoiceChannelError(MusicError):
    """点歌用户不在任何语音频道中"""

    default_message = "请先加入一个语音频道"


class EmptyQueueError(MusicError):
    """服务器没有队列，或队列当前没有歌曲"""

    default_message = "队列是空的，当前没有正在播放的歌曲"


class InvalidVolumeError(MusicError):
    """音量超出 1-100 范围"""

    default_message = "音量必须在 1 到 100 之间"

    def __init__(self, percent: Optional[int] = None):
        super().__init__(f"无效的音量: {percent}", self.default_message)
        self.percent = percent


class AlreadyPausedError(MusicError):
    """歌曲已经处于暂停状态"""

    default_message = "歌曲已经暂停了"


class NotPausedError(MusicError):
    """歌曲没有暂停，无法继续"""

    default_message = "歌曲没有暂停"


class InvalidTrackError(MusicError):
    """搜索或链接解析失败"""

    default_message = "无法找到或解析这首歌曲"

    def __init__(self, query: str, reason: Optional[str] = None):
        detail = f": {truncate_message(reason)}" if reason else ""
        super().__init__(
            f"解析歌曲失败 '{query}'{detail}",
            f"无法播放 **{truncate_message(query, 100)}**{detail}"
        )
        self.query = query
        self.reason = reason


class SessionError(MusicError):
    """播放会话（语音传输）失败或超时"""

    default_message = "播放会话出现错误"
