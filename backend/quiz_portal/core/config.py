# backend/quiz_portal/core/config.py

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List

from dotenv import load_dotenv

# ------------------------------------------------------------
# Ensure environment is loaded early
# ------------------------------------------------------------
load_dotenv()


def _csv(value: str) -> List[str]:
    return [part.strip() for part in value.split(",") if part.strip()]


@dataclass
class Settings:
    """Runtime settings for the proxy, read from the environment."""

    backend_url: str = "http://localhost:9090"
    backend_timeout: float = 10.0
    data_dir: Path = Path("data")
    storage_file: str = "local_storage.json"
    cors_origins: List[str] = field(default_factory=lambda: ["*"])
    log_level: str = "INFO"
    max_upload_mb: int = 20

    @property
    def storage_path(self) -> Path:
        return self.data_dir / self.storage_file

    @property
    def max_upload_bytes(self) -> int:
        return self.max_upload_mb * 1024 * 1024

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            backend_url=os.getenv("QUIZ_BACKEND_URL", cls.backend_url).rstrip("/"),
            backend_timeout=float(os.getenv("QUIZ_BACKEND_TIMEOUT", cls.backend_timeout)),
            data_dir=Path(os.getenv("QUIZ_DATA_DIR", "data")),
            storage_file=os.getenv("QUIZ_STORAGE_FILE", cls.storage_file),
            cors_origins=_csv(os.getenv("QUIZ_CORS_ORIGINS", "*")) or ["*"],
            log_level=os.getenv("QUIZ_LOG_LEVEL", cls.log_level).upper(),
            max_upload_mb=int(os.getenv("QUIZ_MAX_UPLOAD_MB", cls.max_upload_mb)),
        )


_settings: Settings | None = None


def get_settings() -> Settings:
    """Create or reuse the process-wide settings."""
    global _settings
    if _settings is None:
        _settings = Settings.from_env()
    return _settings
