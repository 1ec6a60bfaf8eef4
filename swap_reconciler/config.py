"""
Runtime configuration, read from environment variables.

Entry points (main.py, api.py) load a .env file first, so the same
variables work from a shell, a container, or a local .env.
The Supabase variable names used by the rest of the stack are accepted
as fallbacks for the store URL and key.
"""

from __future__ import annotations

import os
from datetime import timezone, tzinfo
from typing import Mapping, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, Field, ValidationError

from .exceptions import ConfigurationError
from .parsing import ColumnMap

# Env var → Settings field. First non-empty variable wins.
_ENV_FIELDS: dict[str, tuple[str, ...]] = {
    "store_url": ("SWAP_STORE_URL", "SUPABASE_URL", "VITE_SUPABASE_URL"),
    "store_key": ("SWAP_STORE_KEY", "SUPABASE_KEY", "VITE_SUPABASE_ANON_KEY"),
    "table": ("SWAP_TABLE",),
    "id_column": ("SWAP_ID_COLUMN",),
    "code_column": ("SWAP_CODE_COLUMN",),
    "date_column": ("SWAP_DATE_COLUMN",),
    "timestamp_column": ("SWAP_TIMESTAMP_COLUMN",),
    "batch_limit": ("SWAP_BATCH_LIMIT",),
    "sample_size": ("SWAP_SAMPLE_SIZE",),
    "page_size": ("SWAP_PAGE_SIZE",),
    "timeout_sec": ("SWAP_TIMEOUT_SEC",),
    "timezone": ("SWAP_TIMEZONE",),
    "sample_mode": ("SWAP_SAMPLE_MODE",),
}


class Settings(BaseModel):
    """All tunables for a reconciliation run."""

    store_url: Optional[str] = None
    store_key: Optional[str] = None
    table: str = "orders"
    id_column: str = "id"
    code_column: str = "order_code"
    date_column: str = "order_date"
    timestamp_column: str = "created_at"
    batch_limit: int = Field(default=2000, ge=1)
    sample_size: int = Field(default=5, ge=0)
    page_size: int = Field(default=1000, ge=1)
    timeout_sec: float = Field(default=10.0, gt=0)
    timezone: str = "UTC"
    sample_mode: bool = False

    def column_map(self) -> ColumnMap:
        return ColumnMap(
            id=self.id_column,
            code=self.code_column,
            stored_date=self.date_column,
            trusted_timestamp=self.timestamp_column,
        )

    def zone(self) -> tzinfo:
        """The zone trusted timestamps are read in."""
        if self.timezone.upper() == "UTC":
            return timezone.utc
        try:
            return ZoneInfo(self.timezone)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ConfigurationError(
                f"Unknown timezone '{self.timezone}'",
                details={"timezone": self.timezone},
            ) from exc

    def require_store(self) -> None:
        """Fail fast when no store is configured."""
        missing = [
            name
            for name, value in (("store_url", self.store_url), ("store_key", self.store_key))
            if not value
        ]
        if missing:
            raise ConfigurationError(
                "Record store is not configured: set "
                + " and ".join(_ENV_FIELDS[name][0] for name in missing),
                details={"missing": missing},
            )


def load_settings(environ: Mapping[str, str] | None = None) -> Settings:
    """Build Settings from environment variables.

    Raises:
        ConfigurationError: a variable is present but invalid.
    """
    environ = os.environ if environ is None else environ
    values: dict[str, str] = {}
    for field_name, names in _ENV_FIELDS.items():
        for name in names:
            raw = environ.get(name, "").strip()
            if raw:
                values[field_name] = raw
                break

    try:
        return Settings.model_validate(values)
    except ValidationError as exc:
        raise ConfigurationError(
            f"Invalid configuration: {exc.error_count()} error(s)",
            details={
                "errors": [
                    f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}"
                    for err in exc.errors()
                ]
            },
        ) from exc
