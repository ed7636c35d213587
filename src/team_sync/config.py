"""Client configuration read from ``.team-sync.yaml``.

Example::

    current_user: alice
    store_dir: .team-sync/store
    local_state: .team-sync/local.json
    context_chars: 50

Relative paths are resolved against the directory holding the config file.
The ``TEAM_SYNC_USER`` environment variable overrides ``current_user``.
"""

import os
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, ValidationError

from team_sync.anchors import CONTEXT_CHARS

CONFIG_FILENAME = ".team-sync.yaml"
USER_ENV_VAR = "TEAM_SYNC_USER"


class ClientConfig(BaseModel):
    current_user: str = Field(..., min_length=1)
    store_dir: Path = Path(".team-sync/store")
    local_state: Path = Path(".team-sync/local.json")
    context_chars: int = Field(default=CONTEXT_CHARS, ge=0)


def find_config(start: Path) -> Path | None:
    """Walk up from ``start`` looking for ``.team-sync.yaml``."""
    current = Path(start).resolve()
    for directory in [current, *current.parents]:
        candidate = directory / CONFIG_FILENAME
        if candidate.is_file():
            return candidate
    return None


def load_config(path: Path) -> ClientConfig:
    """Load and validate a config file.

    Args:
        path: Path to the YAML file

    Returns:
        ClientConfig with absolute store paths

    Raises:
        ValueError: If the file is missing, not a YAML mapping, or invalid
    """
    path = Path(path)
    try:
        with open(path, encoding="utf-8") as f:
            raw = yaml.safe_load(f)
    except OSError as e:
        raise ValueError(f"Cannot read config {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in {path}: {e}") from e

    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ValueError(f"Config {path} must be a YAML mapping")

    env_user = os.environ.get(USER_ENV_VAR)
    if env_user:
        raw["current_user"] = env_user

    try:
        config = ClientConfig.model_validate(raw)
    except ValidationError as e:
        raise ValueError(f"Invalid config {path}: {e}") from e

    base = path.resolve().parent
    config.store_dir = base / config.store_dir
    config.local_state = base / config.local_state
    return config


def save_config(config: ClientConfig, path: Path) -> None:
    """Write ``config`` as YAML, storing paths relative to the file when possible."""
    path = Path(path)
    base = path.resolve().parent
    data = config.model_dump(mode="json")
    for key in ("store_dir", "local_state"):
        value = Path(data[key])
        if value.is_absolute():
            try:
                value = value.relative_to(base)
            except ValueError:
                pass
        data[key] = value.as_posix()

    yaml_str = yaml.dump(data, default_flow_style=False, sort_keys=False, allow_unicode=True)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(yaml_str, encoding="utf-8")
