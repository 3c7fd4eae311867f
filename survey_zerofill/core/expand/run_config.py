from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

from survey_zerofill.core.expand.expand_survey import DUPLICATE_POLICIES


DEFAULT_RUN_CONFIG: dict[str, Any] = {
    # Stop on a repeated {route,year} block rather than emitting it twice.
    "on_duplicate": "fail",
    "check_sorted": True,
    "sort_input": True,
    "species_file": None,
}


class RunConfigError(ValueError):
    pass


def load_config_file(path: str | Path) -> dict[str, Any]:
    """Load run settings from a YAML file.

    Format:
      on_duplicate: fail | allow
      check_sorted: true | false
      sort_input: true | false
      species_file: path/to/species.txt

    Any subset of keys may be given. A relative species_file is resolved
    against the config file's directory.
    """
    p = Path(path)
    raw = yaml.safe_load(p.read_text(encoding="utf-8"))
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise RunConfigError("config file must be a mapping of setting -> value")

    out: dict[str, Any] = {}
    for k, v in raw.items():
        if k not in DEFAULT_RUN_CONFIG:
            raise RunConfigError(
                f"unknown setting '{k}' (choose from: {', '.join(sorted(DEFAULT_RUN_CONFIG))})"
            )
        if k == "on_duplicate":
            if v not in DUPLICATE_POLICIES:
                raise RunConfigError(
                    f"on_duplicate must be one of: {', '.join(DUPLICATE_POLICIES)} (got {v!r})"
                )
        elif k in ("check_sorted", "sort_input"):
            if not isinstance(v, bool):
                raise RunConfigError(f"'{k}' must be true or false")
        elif k == "species_file":
            if v is not None:
                if not isinstance(v, str) or not v.strip():
                    raise RunConfigError("species_file must be a non-empty string")
                sp = Path(v.strip())
                v = str(sp if sp.is_absolute() else p.parent / sp)
        out[k] = v
    return out


def merged_config(overrides: dict[str, Any] | None = None) -> dict[str, Any]:
    """Return DEFAULT_RUN_CONFIG with overrides applied; None values don't override."""
    merged = dict(DEFAULT_RUN_CONFIG)
    if overrides:
        for k, v in overrides.items():
            if v is not None:
                merged[k] = v
    return merged


def load_and_merge(config_file: str | None) -> dict[str, Any]:
    if not config_file:
        return merged_config()
    return merged_config(load_config_file(config_file))
