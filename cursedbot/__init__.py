"""Cursed Brothers 音乐机器人 - 每个服务器独立的语音频道音乐队列"""

__version__ = "1.0.0"
