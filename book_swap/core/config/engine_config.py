"""Swap engine configuration model."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator


class SwapEngineConfig(BaseModel):
    """Structured swap engine configuration.

    JSON example:
        {
          "require_offered_book": true,
          "lock_timeout_seconds": 2.5,
          "event_log_path": "/var/log/book-swap/events.jsonl",
          "metrics_enabled": true
        }
    """

    # Reject one-sided requests (no offered book) when set.
    require_offered_book: bool = False

    # Upper bound on waiting for a swap/book row lock.
    lock_timeout_seconds: float = Field(default=5.0, gt=0)

    # Optional JSON-lines recorder of every published event.
    event_log_path: str | None = Field(default=None, min_length=1)

    metrics_enabled: bool = False
    metrics_job: str = Field(default="book_swap", min_length=1)

    model_config = ConfigDict(extra="forbid")

    @classmethod
    def from_json_obj(cls, config_obj: dict[str, Any]) -> SwapEngineConfig:
        """Create a SwapEngineConfig instance from a JSON-compatible object."""
        return cls.model_validate(config_obj)

    @model_validator(mode="after")
    def validate_consistency(self) -> SwapEngineConfig:
        """Validate internal consistency of the engine configuration."""
        if self.event_log_path is not None and self.event_log_path.strip() == "":
            raise ValueError("event_log_path must not be blank")
        return self


def load_engine_config(path: str | Path) -> SwapEngineConfig:
    """Load a SwapEngineConfig from a JSON file.

    The file may hold the config at the top level or under a "swap_engine" key.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(path)
    raw = json.loads(path.read_text(encoding="utf-8"))
    if isinstance(raw, dict) and "swap_engine" in raw:
        raw = raw["swap_engine"]
    return SwapEngineConfig.from_json_obj(raw)
