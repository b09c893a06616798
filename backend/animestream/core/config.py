"""Application configuration using Pydantic Settings"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pathlib import Path
from typing import List
from dotenv import load_dotenv

# Explicitly load .env file
# Try loading from current directory or parent directory to handle different runtime contexts
env_path = Path(".env")
if not env_path.exists():
    env_path = Path("backend/.env")
if not env_path.exists():
    env_path = Path("../.env")

if env_path.exists():
    load_dotenv(dotenv_path=env_path)
else:
    load_dotenv()


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Storage locations
    data_dir: str = "./data"  # animes.json, episodes/, trending.json, schedule.json
    content_root: str = "."  # Local episode sources are relative to this directory
    upload_dir: str = "./uploads"

    # Upload limits
    max_upload_size: int = 500 * 1024 * 1024  # 500MB

    # Streaming
    stream_chunk_size: int = 1024 * 1024  # 1MB chunks

    # Catalog rankings
    trending_limit: int = 10
    trending_bonus: int = 1000  # Score added to animes flagged as trending
    related_limit: int = 5

    # API Settings
    api_host: str = "0.0.0.0"
    api_port: int = 3000
    log_level: str = "INFO"
    cors_origins: List[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
        "http://127.0.0.1:3000",
        "http://127.0.0.1:5173",
    ]

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    def get_data_path(self) -> Path:
        """Get data directory as Path object, create if doesn't exist"""
        path = Path(self.data_dir)
        path.mkdir(parents=True, exist_ok=True)
        return path

    def get_upload_path(self) -> Path:
        """Get upload directory as Path object, create if doesn't exist"""
        path = Path(self.upload_dir)
        path.mkdir(parents=True, exist_ok=True)
        return path

    def get_content_root(self) -> Path:
        """Directory that relative video sources are resolved against"""
        return Path(self.content_root).resolve()


# Singleton instance
settings = Settings()
