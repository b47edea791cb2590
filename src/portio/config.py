"""Configuration for portio."""

import dataclasses
import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from portio.registry import BACKENDS

logger = logging.getLogger(__name__)

ENV_PREFIX = "PORTIO_"
DEFAULT_CONFIG_FILE = Path.home() / ".config" / "portio" / "config.json"

# Fields restricted to a fixed set of values
CHOICES: dict[str, tuple[str, ...]] = {"backend": BACKENDS}


@dataclass(slots=True, frozen=True)
class Settings:
    """Runtime settings. Defaults are overridden by file, then environment."""

    include_all_ports: bool = True
    backend: str = "native"  # "native" or "psutil"
    settle_delay: float = 0.5  # Seconds before reloading after a kill
    escalation_status_delay: float = 1.5
    escalation_verify_delay: float = 3.0  # Measured from the elevation launch
    min_visible_rows: int = 5
    max_visible_rows: int = 15
    keep_failed_selected: bool = True
    log_level: str = "WARNING"
    log_file: str | None = None


def _coerce(field: dataclasses.Field, raw: Any) -> Any:
    """Convert a raw file or environment value to the field's type."""
    default = field.default
    if isinstance(default, bool):
        if isinstance(raw, bool):
            return raw
        return str(raw).strip().lower() in ("1", "true", "yes", "on")
    if isinstance(default, int):
        return int(raw)
    if isinstance(default, float):
        return float(raw)
    return None if raw in (None, "") else str(raw)


def _load_file(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        logger.warning("Invalid config file %s, using defaults: %s", path, e)
        return {}
    except OSError as e:
        logger.error("Error reading config %s: %s", path, e)
        return {}
    if not isinstance(data, dict):
        logger.warning("Config file %s is not a JSON object, ignoring it", path)
        return {}
    return data


def load_settings(
    path: Path | None = None,
    environ: dict[str, str] | None = None,
    **overrides: Any,
) -> Settings:
    """
    Build Settings from defaults, a JSON file, the environment and overrides.

    Args:
        path: Config file. Defaults to $PORTIO_CONFIG or ~/.config/portio/config.json.
        environ: Environment mapping. Defaults to os.environ.
        overrides: Final values, e.g. from command line flags. None is ignored.
    """
    environ = os.environ if environ is None else environ
    if path is None:
        path = Path(environ[f"{ENV_PREFIX}CONFIG"]) if f"{ENV_PREFIX}CONFIG" in environ else DEFAULT_CONFIG_FILE

    fields = {field.name: field for field in dataclasses.fields(Settings)}
    values: dict[str, Any] = {}

    for key, raw in _load_file(path).items():
        if key not in fields:
            logger.warning("Unknown config key %r in %s", key, path)
            continue
        values[key] = raw

    for name in fields:
        env_key = f"{ENV_PREFIX}{name.upper()}"
        if env_key in environ:
            values[name] = environ[env_key]

    values.update({key: value for key, value in overrides.items() if value is not None})

    coerced: dict[str, Any] = {}
    for name, raw in values.items():
        try:
            value = _coerce(fields[name], raw)
        except (TypeError, ValueError):
            logger.warning("Ignoring invalid value %r for %s", raw, name)
            continue
        if name in CHOICES and value not in CHOICES[name]:
            logger.warning("Ignoring invalid value %r for %s", raw, name)
            continue
        coerced[name] = value
    return Settings(**coerced)
