"""Configuration manager for the Cursed Brothers music bot."""
import logging
import os
from typing import Any, Dict, Optional

import yaml

TOKEN_PLACEHOLDER = "YOUR_DISCORD_BOT_TOKEN_HERE"


class ConfigManager:
    """
    Configuration manager for the music bot.

    Handles loading and accessing configuration values from the YAML config file.
    """

    def __init__(self, config_path: str = "config/config.yaml"):
        """
        Initialize the ConfigManager.

        Args:
            config_path: Path to the configuration file

        Raises:
            FileNotFoundError: If the configuration file does not exist
            yaml.YAMLError: If the configuration file is not valid YAML
        """
        self.logger = logging.getLogger("cursedbot.config")
        self.config_path = config_path
        self.config: Dict[str, Any] = {}

        self._load_config()

    def _load_config(self) -> None:
        """
        Load the configuration from the config file.

        Raises:
            FileNotFoundError: If the configuration file does not exist
            yaml.YAMLError: If the configuration file is not valid YAML
        """
        if not os.path.exists(self.config_path):
            example_path = f"{self.config_path}.example"
            if os.path.exists(example_path):
                self.logger.error(
                    f"Configuration file {self.config_path} not found. "
                    f"Please copy {example_path} to {self.config_path} and update it."
                )
            else:
                self.logger.error(f"Configuration file {self.config_path} not found.")
            raise FileNotFoundError(f"Configuration file {self.config_path} not found")

        try:
            with open(self.config_path, 'r', encoding='utf-8') as config_file:
                self.config = yaml.safe_load(config_file) or {}
                self.logger.debug(f"Loaded configuration from {self.config_path}")
        except yaml.YAMLError as e:
            self.logger.error(f"Error parsing configuration file: {e}")
            raise

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get a configuration value.

        Args:
            key: The configuration key (dot notation for nested keys)
            default: Default value to return if the key is not found

        Returns:
            The configuration value or the default value if not found
        """
        value = self.config

        for k in key.split('.'):
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                self.logger.debug(f"Configuration key '{key}' not found, using default: {default}")
                return default

        return value

    def get_discord_token(self) -> str:
        """
        Get the Discord bot token.

        The DISCORD_TOKEN environment variable takes precedence over the file.

        Returns:
            The Discord bot token

        Raises:
            ValueError: If the Discord bot token is not set
        """
        token = os.getenv("DISCORD_TOKEN") or self.get('discord.token')
        if not token or token == TOKEN_PLACEHOLDER:
            self.logger.error("Discord bot token not set in configuration")
            raise ValueError("Discord bot token not set in configuration")
        return token

    def get_guild_id(self) -> Optional[int]:
        """
        Get the guild used for instant slash command registration.

        Returns:
            The guild ID, or None to sync commands globally
        """
        guild_id = self.get('discord.guild_id')
        if guild_id in (None, ''):
            return None
        try:
            return int(guild_id)
        except (TypeError, ValueError):
            self.logger.warning(f"Invalid discord.guild_id '{guild_id}', syncing commands globally")
            return None

    def get_default_volume(self) -> int:
        """
        Get the initial volume for new guild queues.

        Returns:
            Volume percent clamped to [1, 100]
        """
        volume = self.get('music.default_volume', 100)
        try:
            volume = int(volume)
        except (TypeError, ValueError):
            self.logger.warning(f"Invalid music.default_volume '{volume}', using 100")
            return 100
        return max(1, min(100, volume))

    def get_session_timeout(self) -> float:
        """
        Get the timeout for opening and closing playback sessions.

        Returns:
            Timeout in seconds
        """
        return float(self.get('playback.session_timeout', 15))

    def get_resolve_timeout(self) -> float:
        """
        Get the timeout for resolving a query into a track.

        Returns:
            Timeout in seconds
        """
        return float(self.get('provider.resolve_timeout', 30))

    def get_ffmpeg_path(self) -> str:
        """
        Get the ffmpeg executable path.

        The FFMPEG_PATH environment variable takes precedence over the file.

        Returns:
            The ffmpeg executable path
        """
        return os.getenv("FFMPEG_PATH") or self.get('playback.ffmpeg_path', 'ffmpeg')

    def get_presence_text(self) -> str:
        """
        Get the "Listening to" presence text.

        Returns:
            The presence text
        """
        return self.get('discord.presence', '🎶 Cursed Brothers Music')

    def get_log_level(self) -> str:
        """
        Get the logging level.

        Returns:
            The logging level
        """
        return self.get('logging.level', 'INFO')

    def get_log_file(self) -> Optional[str]:
        """
        Get the log file path.

        Returns:
            The log file path or None if not set
        """
        return self.get('logging.file', None)

    def get_log_max_size(self) -> int:
        """
        Get the maximum log file size.

        Returns:
            The maximum log file size in bytes
        """
        return self.get('logging.max_size', 10485760)  # 10 MB

    def get_log_backup_count(self) -> int:
        """
        Get the number of backup log files to keep.

        Returns:
            The number of backup log files
        """
        return self.get('logging.backup_count', 5)
