from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="BRANCHPLAYER_",
        extra="allow",
    )

    # app
    log_level: str = "INFO"
    app_env: str = "dev"

    # remote document store
    redis_url: str = "redis://localhost:6379/0"

    # auth
    admin_email: str = ""

    # library
    default_branch: Literal["branch1", "branch2"] = "branch2"
    # branch2 historically also reads the top-level `songs` collection
    legacy_merge_enabled: bool = True
    legacy_branch: Literal["branch1", "branch2"] = "branch2"

    # local device storage (audio cache + device mode)
    local_db_path: str = "./.cache/branchplayer.sqlite"

    # blob storage
    media_dir: str = "./media"
    public_base_url: str = "http://localhost:8000"

    # background audio download
    download_timeout_s: float = 60.0


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
