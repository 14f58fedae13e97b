from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent
DEFAULT_DB_PATH = BASE_DIR / "data/records.db"


@dataclass(frozen=True)
class Settings:
    db_path: Path
    import_roles: frozenset[str]
    log_level: str


def _split_roles(raw: str) -> frozenset[str]:
    return frozenset(part.strip() for part in raw.split(",") if part.strip())


def get_settings() -> Settings:
    db_path = os.getenv("RECORD_IMPORT_DB_PATH")
    return Settings(
        db_path=Path(db_path) if db_path else DEFAULT_DB_PATH,
        import_roles=_split_roles(os.getenv("RECORD_IMPORT_ROLES", "Admin")),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
    )
