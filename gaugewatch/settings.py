"""
Gaugewatch Settings - Global Configuration from Environment

Usage:
    from gaugewatch.settings import settings

    print(settings.CAMERAS_MAX)
    print(settings.RECOGNITION_PROVIDER)
"""

import os
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv


def _load_dotenv():
    """Load the .env file (GAUGEWATCH_ENV_FILE may point at a file or directory)."""
    env_file = os.environ.get("GAUGEWATCH_ENV_FILE", ".env")
    p = Path(env_file)
    if p.is_dir():
        env_file = str(p / "gaugewatch.env")

    load_dotenv(env_file, override=False)


_load_dotenv()


def _get_env(key: str, default: Any = None, cast: type = str) -> Any:
    """Get environment variable with type casting."""
    value = os.environ.get(key)
    if value is None:
        return default

    if cast == bool:
        return value.lower() in ("true", "1", "yes", "on")

    try:
        return cast(value)
    except (ValueError, TypeError):
        return default


class Settings:
    """
    Global settings loaded from environment variables.

    Naming convention:
    - GAUGEWATCH__ prefix for all nested config
    - Double underscore (__) separates nested levels
    - Example: GAUGEWATCH__CAMERAS__STAGGER_DELAY -> cameras.stagger_delay
    """

    # ============================================
    # GENERAL
    # ============================================
    @property
    def LOG_LEVEL(self) -> str:
        return _get_env("GAUGEWATCH_LOG_LEVEL", "INFO")

    # ============================================
    # CAMERAS
    # ============================================
    @property
    def CAMERAS_MAX(self) -> int:
        return _get_env("GAUGEWATCH__CAMERAS__MAX", 10, int)

    @property
    def CAMERAS_STAGGER_DELAY(self) -> float:
        return _get_env("GAUGEWATCH__CAMERAS__STAGGER_DELAY", 1.0, float)

    @property
    def CAMERAS_WIDTH(self) -> int:
        return _get_env("GAUGEWATCH__CAMERAS__WIDTH", 320, int)

    @property
    def CAMERAS_HEIGHT(self) -> int:
        return _get_env("GAUGEWATCH__CAMERAS__HEIGHT", 240, int)

    @property
    def CAMERAS_FPS(self) -> int:
        return _get_env("GAUGEWATCH__CAMERAS__FPS", 15, int)

    @property
    def CAPTURE_EXPORT_DIR(self) -> str:
        return _get_env("GAUGEWATCH__CAPTURE__EXPORT_DIR", "captures")

    # ============================================
    # RECOGNITION (OCR)
    # ============================================
    @property
    def RECOGNITION_PROVIDER(self) -> str:
        return _get_env("GAUGEWATCH__RECOGNITION__PROVIDER", "gemini")

    @property
    def RECOGNITION_MODEL(self) -> Optional[str]:
        return _get_env("GAUGEWATCH__RECOGNITION__MODEL", None)

    @property
    def RECOGNITION_BASE_URL(self) -> Optional[str]:
        return _get_env("GAUGEWATCH__RECOGNITION__BASE_URL", None)

    @property
    def RECOGNITION_API_KEY(self) -> Optional[str]:
        return _get_env("GAUGEWATCH__RECOGNITION__API_KEY",
                       _get_env("GEMINI_API_KEY", _get_env("API_KEY", None)))

    @property
    def RECOGNITION_TIMEOUT(self) -> float:
        return _get_env("GAUGEWATCH__RECOGNITION__TIMEOUT", 30.0, float)

    # ============================================
    # PROCESS SIMULATION
    # ============================================
    @property
    def PROCESS_INTERVAL(self) -> float:
        return _get_env("GAUGEWATCH__PROCESS__INTERVAL", 2.0, float)

    # ============================================
    # WEB
    # ============================================
    @property
    def WEB_HOST(self) -> str:
        return _get_env("GAUGEWATCH__WEB__HOST", "0.0.0.0")

    @property
    def WEB_PORT(self) -> int:
        return _get_env("GAUGEWATCH__WEB__PORT", 8080, int)

    def to_dict(self) -> dict:
        """Export all settings as dictionary (for debugging)."""
        return {
            "logging": {"level": self.LOG_LEVEL},
            "cameras": {
                "max": self.CAMERAS_MAX,
                "stagger_delay": self.CAMERAS_STAGGER_DELAY,
                "width": self.CAMERAS_WIDTH,
                "height": self.CAMERAS_HEIGHT,
                "fps": self.CAMERAS_FPS,
            },
            "capture": {"export_dir": self.CAPTURE_EXPORT_DIR},
            "recognition": {
                "provider": self.RECOGNITION_PROVIDER,
                "model": self.RECOGNITION_MODEL,
                "base_url": self.RECOGNITION_BASE_URL,
                "api_key": "***" if self.RECOGNITION_API_KEY else None,
                "timeout": self.RECOGNITION_TIMEOUT,
            },
            "process": {"interval": self.PROCESS_INTERVAL},
            "web": {"host": self.WEB_HOST, "port": self.WEB_PORT},
        }


# Global singleton instance
settings = Settings()
