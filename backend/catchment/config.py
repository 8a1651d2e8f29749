from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

_project_root = Path(__file__).resolve().parents[2]


def _load_dotenv() -> None:
    """Load .env from project root or cwd without overriding real env vars."""
    for path in (_project_root / ".env", Path.cwd() / ".env"):
        if path.is_file():
            with open(path, encoding="utf-8") as f:
                for line in f:
                    line = line.strip()
                    if line and not line.startswith("#") and "=" in line:
                        k, _, v = line.partition("=")
                        v = v.strip().strip('"').strip("'")
                        os.environ.setdefault(k.strip(), v)
            break


def _env_bool(name: str, default: bool) -> bool:
    raw = (os.getenv(name) or "").strip().lower()
    if not raw:
        return default
    return raw in {"1", "true", "yes", "on"}


def _env_float(name: str, default: float) -> float:
    raw = (os.getenv(name) or "").strip()
    try:
        return float(raw) if raw else default
    except ValueError:
        return default


def _env_int(name: str, default: int) -> int:
    raw = (os.getenv(name) or "").strip()
    try:
        return int(raw) if raw else default
    except ValueError:
        return default


@dataclass(frozen=True)
class CatchmentConfig:
    sector_layer_url: str = ""
    service_area_url: str = ""
    timeout: float = 20.0
    retries: int = 3
    max_sectors: int = 2000
    mock_sectors_enabled: bool = True
    # Display grouping follows the de-DE locale used by the map UI.
    thousands_separator: str = "."
    decimal_separator: str = ","

    @property
    def fetch_deadline(self) -> float:
        return self.timeout * (self.retries + 1)

    @classmethod
    def from_env(cls) -> "CatchmentConfig":
        _load_dotenv()
        return cls(
            sector_layer_url=(os.getenv("SECTOR_LAYER_URL") or "").strip(),
            service_area_url=(os.getenv("SERVICE_AREA_URL") or "").strip(),
            timeout=_env_float("UPSTREAM_TIMEOUT", 20.0),
            retries=max(0, _env_int("UPSTREAM_RETRIES", 3)),
            max_sectors=max(1, _env_int("SECTOR_MAX_RECORDS", 2000)),
            mock_sectors_enabled=_env_bool("MOCK_SECTORS_ENABLED", True),
        )
