"""
yt-dlp 歌曲解析器 - 将链接或搜索关键词解析为可播放的歌曲

链接直接交给 yt-dlp 提取；其他输入视为 YouTube 搜索关键词，取第一个结果。
解析在线程池中执行，避免阻塞事件循环。
"""

import asyncio
import logging
import re
from typing import Any, Dict, Optional

import yt_dlp

from cursedbot.core.exceptions import InvalidTrackError
from cursedbot.core.interfaces import ITrackResolver
from cursedbot.queue.track import Track


URL_PATTERN = re.compile(r'^https?://', re.IGNORECASE)

YTDL_OPTIONS: Dict[str, Any] = {
    "format": "bestaudio/best",
    "noplaylist": True,
    "quiet": True,
    "no_warnings": True,
    "default_search": "ytsearch",
    "source_address": "0.0.0.0",
}


class YtDlpResolver(ITrackResolver):
    """
    yt-dlp 解析器

    支持 yt-dlp 能处理的所有站点链接，以及 YouTube 关键词搜索。
    """

    def __init__(self, timeout: float = 30.0, ytdl_options: Optional[Dict[str, Any]] = None):
        """
        初始化解析器

        Args:
            timeout: 单次解析的超时时间（秒）
            ytdl_options: 覆盖默认的 yt-dlp 选项
        """
        self.timeout = timeout
        self.ytdl_options = {**YTDL_OPTIONS, **(ytdl_options or {})}
        self.logger = logging.getLogger("cursedbot.provider.ytdlp")

    @staticmethod
    def is_url(query: str) -> bool:
        """检查输入是否为链接"""
        return bool(URL_PATTERN.match(query.strip()))

    async def resolve(self, query: str) -> Track:
        """
        解析歌曲

        Args:
            query: 链接或搜索关键词

        Returns:
            可播放的歌曲

        Raises:
            InvalidTrackError: 没有结果、超时或 yt-dlp 出错
        """
        query = query.strip()
        if not query:
            raise InvalidTrackError(query, "搜索内容为空")

        self.logger.debug(f"开始解析: {query}")
        loop = asyncio.get_running_loop()
        try:
            info = await asyncio.wait_for(
                loop.run_in_executor(None, self._extract_info, query),
                timeout=self.timeout
            )
        except asyncio.TimeoutError as e:
            self.logger.warning(f"解析超时 ({self.timeout}s): {query}")
            raise InvalidTrackError(query, "解析超时") from e
        except yt_dlp.utils.DownloadError as e:
            self.logger.warning(f"yt-dlp 解析失败 - {query}: {e}")
            raise InvalidTrackError(query, str(e)) from e
        except Exception as e:
            self.logger.error(f"解析时发生未知错误 - {query}: {e}", exc_info=True)
            raise InvalidTrackError(query, str(e)) from e

        track = self.build_track(query, info)
        self.logger.info(f"解析成功: {track.title} ({track.duration}s)")
        return track

    def _extract_info(self, query: str) -> Optional[Dict[str, Any]]:
        target = query if self.is_url(query) else f"ytsearch1:{query}"
        with yt_dlp.YoutubeDL(self.ytdl_options) as ydl:
            info = ydl.extract_info(target, download=False)

        if info and "entries" in info:
            entries = [entry for entry in info["entries"] or [] if entry]
            return entries[0] if entries else None
        return info

    @staticmethod
    def build_track(query: str, info: Optional[Dict[str, Any]]) -> Track:
        """
        从 yt-dlp 信息字典构建歌曲

        Args:
            query: 原始输入
            info: yt-dlp 返回的信息

        Returns:
            歌曲对象

        Raises:
            InvalidTrackError: 没有结果或没有可播放的音频流
        """
        if not info:
            raise InvalidTrackError(query, "没有找到结果")

        stream_url = info.get("url")
        if not stream_url:
            raise InvalidTrackError(query, "没有可用的音频流")

        return Track(
            title=info.get("title") or query,
            duration=int(info.get("duration") or 0),
            source_ref=stream_url,
            webpage_url=info.get("webpage_url") or info.get("original_url"),
            uploader=info.get("uploader")
        )
