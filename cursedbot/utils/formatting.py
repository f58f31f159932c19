"""显示格式化工具"""


def format_duration(seconds: int) -> str:
    """
    格式化时长为可读字符串

    Args:
        seconds: 时长（秒）

    Returns:
        格式化的时长字符串 (例: "3:45" 或 "1:23:45")
    """
    if seconds < 3600:
        minutes, secs = divmod(seconds, 60)
        return f"{minutes}:{secs:02d}"
    hours, rem = divmod(seconds, 3600)
    minutes, secs = divmod(rem, 60)
    return f"{hours}:{minutes:02d}:{secs:02d}"
