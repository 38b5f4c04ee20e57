"""
Application configuration using Pydantic Settings
"""

from pathlib import Path
from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings with environment variable support"""

    # Database
    DATA_DIR: Optional[Path] = None
    DATABASE_FILENAME: str = "data.db"
    DATABASE_ECHO: bool = False

    # Environment
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"

    # Network
    HTTP_TIMEOUT: float = 30.0
    HEALTH_CHECK_TIMEOUT: float = 10.0
    USER_AGENT: str = "worldanthem/1.0 (+https://github.com/anthemworld)"

    # Downloads
    DOWNLOAD_TIMEOUT: float = 600.0
    DOWNLOAD_BATCH_SIZE: int = 50

    @property
    def data_dir(self) -> Path:
        """Directory holding the local database (~/.local/share/anthemworld)"""
        if self.DATA_DIR is not None:
            return Path(self.DATA_DIR).expanduser()
        return Path.home() / ".local" / "share" / "anthemworld"

    @property
    def database_path(self) -> Path:
        return self.data_dir / self.DATABASE_FILENAME

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"


settings = Settings()
