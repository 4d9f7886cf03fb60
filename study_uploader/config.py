"""
Configuration settings for Study Uploader.
Loads environment variables and provides typed configuration.
"""
import logging
import os
import platform
from typing import Optional
from pathlib import Path
from pydantic_settings import BaseSettings
from dotenv import load_dotenv

from .models import ClientInfo

# Load .env file
load_dotenv()


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Client info stamped onto adherence data
    os_name: str = os.getenv("STUDY_OS_NAME", platform.system() or "unknown")
    device_name: str = os.getenv("STUDY_DEVICE_NAME", platform.node() or "unknown")
    os_version: str = os.getenv("STUDY_OS_VERSION", platform.release() or "unknown")
    app_version: str = os.getenv("STUDY_APP_VERSION", "1.0.0")

    # Logging
    log_level: str = os.getenv("STUDY_LOG_LEVEL", "INFO")

    # Application
    app_name: str = "Study Uploader"

    # Paths
    archives_dir: Path = Path(os.getenv("STUDY_ARCHIVES_DIR", "archives"))

    class Config:
        env_prefix = "STUDY_"
        env_file = ".env"
        extra = "ignore"

    def client_info(self) -> ClientInfo:
        """Platform metadata used to stamp adherence payloads."""
        return ClientInfo(
            os_name=self.os_name,
            device_name=self.device_name,
            os_version=self.os_version,
            app_version=self.app_version
        )


def configure_logging(level: Optional[str] = None) -> None:
    """Attach a basic stream handler. Only entry points should call this."""
    logging.basicConfig(
        level=(level or settings.log_level).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )


# Global settings instance
settings = Settings()
