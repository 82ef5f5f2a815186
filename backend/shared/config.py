"""
Configuration management for services.
"""

import json
import os
from typing import Any

import yaml

from dotenv import load_dotenv


class ServiceConfig:
    """Configuration management for services using environment variables."""

    def __init__(self, ingest_config_path: str | None = None) -> None:
        """Initialize configuration by loading environment variables."""
        # Always load .env from backend directory (where app.py is located)
        env_path = os.path.abspath(os.path.join(os.path.dirname(__file__), "../.env"))
        load_dotenv(dotenv_path=env_path, override=True)
        self.config: dict[str, Any] = {}
        self.ingest_config: dict[str, Any] = {}
        self.ingest_config_path = ingest_config_path or os.getenv(
            "INGEST_CONFIG_PATH",
            os.path.join(os.path.dirname(__file__), "../../config/ingest.yaml"),
        )
        self.load_from_env()
        self.load_ingest_config()

    def load_from_env(self) -> None:
        """Load configuration from environment variables."""
        self.config = {
            "data_root": os.getenv("DATA_ROOT", "./data"),
            "upload_root": os.getenv("UPLOAD_ROOT", "./uploads"),
            "folders_file": os.getenv("FOLDERS_FILE", "./folders.json"),
            "admin_username": os.getenv("ADMIN_USERNAME", "admin"),
            "admin_password": os.getenv("ADMIN_PASSWORD", "admin123"),
            "session_secret": os.getenv("SESSION_SECRET", "your-secret-key-change-in-production"),
            "session_max_age": int(os.getenv("SESSION_MAX_AGE", str(24 * 60 * 60))),
            "https_only": os.getenv("NODE_ENV", os.getenv("APP_ENV", "development")) == "production",
            "allowed_origins": json.loads(os.getenv("ALLOWED_ORIGINS", '["*"]')),
            "ffmpeg_path": os.getenv("FFMPEG_PATH", "ffmpeg"),
            "thumbnails_enabled": os.getenv("THUMBNAILS_ENABLED", "true").lower() == "true",
            "thumbnail_width": int(os.getenv("THUMBNAIL_WIDTH", "320")),
            "thumbnail_timestamp": os.getenv("THUMBNAIL_TIMESTAMP", "00:00:01"),
            "thumbnail_timeout": float(os.getenv("THUMBNAIL_TIMEOUT", "30")),
            "max_bulk_files": int(os.getenv("MAX_BULK_FILES", "200")),
            "debug": os.getenv("DEBUG", "false").lower() == "true",
        }

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get configuration value by key.

        Args:
            key: Configuration key
            default: Default value if key not found

        Returns:
            Configuration value
        """
        return self.config.get(key, default)

    def set(self, key: str, value: Any) -> None:
        """
        Set configuration value.

        Args:
            key: Configuration key
            value: Configuration value
        """
        self.config[key] = value

    def load_ingest_config(self) -> None:
        """Load ingest configuration from YAML file."""
        path = os.path.abspath(self.ingest_config_path)
        try:
            with open(path, "r", encoding="utf-8") as stream:
                data = yaml.safe_load(stream) or {}
        except FileNotFoundError:
            data = {}
        self.ingest_config = data

    def get_ingest_value(self, path: str, default: Any = None) -> Any:
        """Retrieve an ingest configuration value via dotted path."""
        env_override_key = f"INGEST_FLAG_{path.replace('.', '_').upper()}"
        env_value = os.getenv(env_override_key)
        if env_value is not None:
            return self._coerce_env_value(env_value, default)

        node: Any = self.ingest_config
        for part in path.split("."):
            if isinstance(node, dict) and part in node:
                node = node[part]
            else:
                return default
        return node if node is not None else default

    @staticmethod
    def _coerce_env_value(raw: str, default: Any) -> Any:
        lowered = raw.lower()
        if lowered in {"true", "false"}:
            return lowered == "true"
        if lowered.replace(".", "", 1).isdigit():
            try:
                return float(lowered) if "." in lowered else int(lowered)
            except ValueError:
                return raw
        return raw or default


# Global configuration instance
config = ServiceConfig()
