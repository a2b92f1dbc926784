"""Configuration management for MedLink CLI."""

import json
import os
import shutil
import tempfile
from pathlib import Path
from typing import Optional

from common.constants import DEFAULT_CONTENT_STORE_URL, DEFAULT_RECORD_SERVICE_URL
from common.logging_config import get_logger

logger = get_logger(__name__)

PRIVATE_KEY_ENV = "MEDLINK_PRIVATE_KEY"


class Config:
    """Manages CLI configuration stored in JSON file."""

    DEFAULT_CONFIG = {
        "record_service_url": os.environ.get("MEDLINK_RECORD_SERVICE_URL", DEFAULT_RECORD_SERVICE_URL),
        "content_store_url": os.environ.get("MEDLINK_CONTENT_STORE_URL", DEFAULT_CONTENT_STORE_URL),
        "content_store_mode": os.environ.get("MEDLINK_CONTENT_STORE_MODE", "gateway"),
        "referral_feed_url": os.environ.get("MEDLINK_REFERRAL_FEED_URL"),
        "timeout": 30,
        "max_retries": 3,
        "retry_backoff_multiplier": 2,
    }

    # Never persisted even if a user adds them to the file by hand.
    SECRET_KEYS = ("private_key",)

    def __init__(self, config_path: Path):
        """
        Initialize configuration manager.

        Args:
            config_path: Path to config JSON file (typically ~/.medlink/config.json)
        """
        self.config_path = config_path
        self.data = self._load()

    def _load(self) -> dict:
        """
        Load configuration from file, creating defaults if necessary.

        Returns:
            Configuration dictionary
        """
        try:
            self.config_path.parent.mkdir(parents=True, exist_ok=True)
        except PermissionError:
            self.config_path = Path(tempfile.gettempdir()) / '.medlink' / 'config.json'
            self.config_path.parent.mkdir(parents=True, exist_ok=True)

        if self.config_path.exists():
            try:
                with open(self.config_path, 'r') as f:
                    data = json.load(f)
                config = self.DEFAULT_CONFIG.copy()
                config.update(data)
                for key in self.SECRET_KEYS:
                    config.pop(key, None)
                return config
            except (json.JSONDecodeError, IOError) as e:
                logger.warning(f"Config file {self.config_path} unreadable, using defaults: {e}")
                backup_path = self.config_path.with_suffix('.json.bak')
                try:
                    shutil.copy(self.config_path, backup_path)
                except OSError:
                    logger.debug(f"Could not back up {self.config_path}")
                return self.DEFAULT_CONFIG.copy()
        else:
            config = self.DEFAULT_CONFIG.copy()
            try:
                with open(self.config_path, 'w') as f:
                    json.dump(config, f, indent=2)
            except IOError as e:
                logger.warning(f"Could not write default config: {e}")
            return config

    def save(self) -> None:
        """Save current configuration to file."""
        data = {k: v for k, v in self.data.items() if k not in self.SECRET_KEYS}
        try:
            with open(self.config_path, 'w') as f:
                json.dump(data, f, indent=2)
        except IOError as e:
            logger.warning(f"Could not save config: {e}")

    def get_identity(self) -> tuple[Optional[str], Optional[str]]:
        """
        Get the configured doctor identity.

        Returns:
            Tuple of (doctor_name, doctor_email); either may be None
        """
        return self.data.get('doctor_name'), self.data.get('doctor_email')

    def set_identity(self, name: str, email: str) -> None:
        """
        Set doctor identity and save to file.

        Args:
            name: Doctor display name as the record service stores it
            email: Doctor email
        """
        self.data['doctor_name'] = name
        self.data['doctor_email'] = email
        self.save()

    def get_private_key(self) -> Optional[str]:
        """
        Get the doctor's private key from the environment.

        Returns:
            Hex private key or None if MEDLINK_PRIVATE_KEY is unset
        """
        return os.environ.get(PRIVATE_KEY_ENV) or None

    def get_record_service_url(self) -> str:
        return self.data.get('record_service_url') or DEFAULT_RECORD_SERVICE_URL

    def get_content_store(self) -> dict:
        """
        Get content store settings.

        Returns:
            Dictionary with 'base_url' and 'mode'
        """
        return {
            'base_url': self.data.get('content_store_url') or DEFAULT_CONTENT_STORE_URL,
            'mode': self.data.get('content_store_mode', 'gateway'),
        }

    def get_referral_feed_url(self) -> Optional[str]:
        return self.data.get('referral_feed_url')

    def get_timeout(self) -> int:
        """
        Get request timeout in seconds.

        Returns:
            Timeout value in seconds
        """
        return self.data.get('timeout', 30)

    def get_retry_config(self) -> dict:
        """
        Get retry configuration.

        Returns:
            Dictionary with 'max_retries' and 'retry_backoff_multiplier'
        """
        return {
            'max_retries': self.data.get('max_retries', 3),
            'retry_backoff_multiplier': self.data.get('retry_backoff_multiplier', 2),
        }
