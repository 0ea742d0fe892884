"""Runtime configuration read from the environment (and an optional .env file)."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Tuple

from dotenv import load_dotenv

from .models import Owner

DEFAULT_OWNERS = "Racky,Karaya,Richard"
DEFAULT_INELIGIBLE = "Racky"


def _split(raw: Optional[str]) -> List[str]:
    if not raw:
        return []
    return [item.strip() for item in raw.split(",") if item.strip()]


@dataclass(frozen=True)
class Settings:
    data_dir: Path = Path("data")
    owners: Tuple[str, ...] = tuple(_split(DEFAULT_OWNERS))
    ineligible_owners: Tuple[str, ...] = tuple(_split(DEFAULT_INELIGIBLE))
    env: str = "prod"
    allowed_origins: Tuple[str, ...] = field(default_factory=tuple)
    log_level: str = "INFO"

    @property
    def is_dev(self) -> bool:
        return self.env in {"dev", "development"}

    @property
    def roster(self) -> List[Owner]:
        """Owners in display order; ineligible ones can never be selected."""
        excluded = {name.lower() for name in self.ineligible_owners}
        return [Owner(name=name, eligible=name.lower() not in excluded) for name in self.owners]

    @classmethod
    def from_env(cls, dotenv_path: Optional[Path] = None) -> "Settings":
        load_dotenv(dotenv_path)
        return cls(
            data_dir=Path(os.getenv("LEDGER_DATA_DIR", "data")),
            owners=tuple(_split(os.getenv("LEDGER_OWNERS", DEFAULT_OWNERS))),
            ineligible_owners=tuple(_split(os.getenv("LEDGER_INELIGIBLE_OWNERS", DEFAULT_INELIGIBLE))),
            env=os.getenv("LEDGER_ENV", "prod").lower(),
            allowed_origins=tuple(_split(os.getenv("LEDGER_ALLOWED_ORIGINS"))),
            log_level=os.getenv("LEDGER_LOG_LEVEL", "INFO").upper(),
        )
