"""
歌曲数据模型 - 队列中的一个可播放条目

Track 一经创建即不可变。source_ref 是解析器给出的不透明引用，
队列状态机从不检查它的内容，只把它交给播放会话。
"""

from dataclasses import dataclass, field
from typing import Any, Optional

from cursedbot.utils.formatting import format_duration


@dataclass(frozen=True)
class Track:
    """
    歌曲数据类

    Attributes:
        title: 歌曲标题
        duration: 时长（秒），直播为 0
        source_ref: 不透明的音源引用（通常是直链）
        webpage_url: 原始页面链接（仅用于显示）
        uploader: 上传者（仅用于显示）
    """
    title: str
    duration: int
    source_ref: Any = field(repr=False, compare=False)
    webpage_url: Optional[str] = None
    uploader: Optional[str] = None

    def __post_init__(self):
        """校验字段"""
        if not isinstance(self.title, str) or not self.title.strip():
            raise ValueError("歌曲标题不能为空")
        if isinstance(self.duration, bool) or not isinstance(self.duration, int):
            raise ValueError(f"歌曲时长必须是整数: {self.duration!r}")
        if self.duration < 0:
            raise ValueError(f"歌曲时长不能为负数: {self.duration}")

    def format_duration(self) -> str:
        """获取格式化时长"""
        return format_duration(self.duration)

    def __str__(self) -> str:
        return f"{self.title} ({self.format_duration()})"
