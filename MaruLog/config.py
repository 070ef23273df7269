from pathlib import Path
from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    # --- Storage ---
    data_file: Path = Path("storage/activities.json") # Single JSON blob holding the whole log

    # --- Local day boundaries ---
    local_tz: Optional[str] = None # IANA name, e.g. "Asia/Tokyo". None uses the system zone

    # --- Logging ---
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_prefix="MARULOG_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra='ignore'
    )
