"""
音频提供者模块 - 将用户输入解析为可播放的歌曲
"""

from .ytdlp_resolver import YtDlpResolver

__all__ = [
    "YtDlpResolver"
]
