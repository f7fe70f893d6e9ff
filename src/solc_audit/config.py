"""Workbench configuration."""
from __future__ import annotations

import json
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any

__all__ = ["DEFAULT_CONFIG", "WorkbenchConfig", "load_config"]


@dataclass(slots=True, frozen=True)
class WorkbenchConfig:
    # Operation text shorter than this is too ambiguous for the line fallback search.
    min_fallback_text_length: int = 2
    short_number_digits: int = 15
    show_annotations: bool = True
    include_infeasible_paths: bool = False

    def merged(self, **overrides: Any) -> WorkbenchConfig:
        """Return a copy with every non-``None`` override applied."""
        changes = {key: value for key, value in overrides.items() if value is not None}
        return replace(self, **changes) if changes else self

    @classmethod
    def from_mapping(cls, payload: dict[str, Any]) -> WorkbenchConfig:
        known = {f.name: f for f in fields(cls)}
        values: dict[str, Any] = {}
        for key, raw in payload.items():
            name = key.replace("-", "_")
            if name not in known:
                allowed = ", ".join(sorted(known))
                raise ValueError(f"Unknown config key '{key}'. Allowed: {allowed}.")
            default = getattr(cls(), name)
            if isinstance(default, bool):
                if not isinstance(raw, bool):
                    raise ValueError(f"Config key '{key}' must be a boolean")
            elif isinstance(default, int):
                if isinstance(raw, bool) or not isinstance(raw, int):
                    raise ValueError(f"Config key '{key}' must be an integer")
                if raw < 1:
                    raise ValueError(f"Config key '{key}' must be >= 1")
            values[name] = raw
        return cls(**values)


DEFAULT_CONFIG = WorkbenchConfig()


def load_config(path: str | Path | None) -> WorkbenchConfig:
    """Load a JSON config file; ``None`` yields the defaults."""
    if path is None:
        return DEFAULT_CONFIG
    try:
        payload = json.loads(Path(path).read_text())
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid config JSON: {exc}") from exc
    if not isinstance(payload, dict):
        raise ValueError("Config root must be an object")
    return WorkbenchConfig.from_mapping(payload)
