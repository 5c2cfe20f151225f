"""Process settings read from the environment."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

DEFAULT_CORS_ORIGINS = ["http://localhost:3000", "http://127.0.0.1:3000"]


@dataclass
class Settings:
    induction_api_url: Optional[str] = None
    artifacts_dir: Path = Path("artifacts")
    api_timeout_sec: float = 10.0
    cors_origins: List[str] = field(default_factory=lambda: list(DEFAULT_CORS_ORIGINS))
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        origins = os.getenv("METROOPS_CORS_ORIGINS")
        return cls(
            induction_api_url=os.getenv("INDUCTION_API_URL") or None,
            artifacts_dir=Path(os.getenv("METROOPS_ARTIFACTS_DIR", "artifacts")),
            api_timeout_sec=float(os.getenv("METROOPS_API_TIMEOUT_SEC", "10")),
            cors_origins=[o.strip() for o in origins.split(",") if o.strip()] if origins else list(DEFAULT_CORS_ORIGINS),
            log_level=os.getenv("METROOPS_LOG_LEVEL", "INFO").upper(),
        )
