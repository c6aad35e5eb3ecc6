"""YAML config loading with env var expansion."""

import os
import re
from pathlib import Path

import yaml
from pydantic import ValidationError

from .models import UmbraConfig

CONFIG_ENV_VAR = "UMBRA_CONFIG"

_ENV_REF = re.compile(r"\$\{(\w+)\}")


def config_search_paths(cli_path: str | None = None) -> list[Path]:
    """Candidate config files, most specific first.

    Order: ``--config`` path, ``$UMBRA_CONFIG``, ``./umbra.yaml``,
    ``~/.umbra/config.yaml``.
    """
    explicit = [cli_path, os.environ.get(CONFIG_ENV_VAR)]
    paths = [Path(p) for p in explicit if p]
    paths.append(Path("umbra.yaml"))
    paths.append(Path.home() / ".umbra" / "config.yaml")
    return paths


def _read_config_file(path: Path) -> UmbraConfig | None:
    """Parse *path*; None when the file holds no document."""
    try:
        raw = yaml.safe_load(path.read_text())
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in {path}: {e}") from e
    if raw is None:
        return None
    try:
        return UmbraConfig.model_validate(_expand_env_vars(raw))
    except ValidationError as e:
        raise ValueError(f"Invalid config in {path}: {e}") from e


def load_config(cli_path: str | None = None) -> UmbraConfig:
    """Return the first non-empty config from config_search_paths(), else defaults."""
    for path in config_search_paths(cli_path):
        if not path.is_file():
            continue
        config = _read_config_file(path)
        if config is not None:
            return config
    return UmbraConfig()


def _expand_env_vars(obj: object) -> object:
    """Replace ${VAR} in every string of a parsed YAML document; unset vars become ""."""
    if isinstance(obj, dict):
        return {key: _expand_env_vars(value) for key, value in obj.items()}
    if isinstance(obj, list):
        return [_expand_env_vars(item) for item in obj]
    if isinstance(obj, str):
        return _ENV_REF.sub(lambda m: os.environ.get(m.group(1), ""), obj)
    return obj


# Default YAML template for `umbra config init`
DEFAULT_CONFIG_TEMPLATE = """\
# umbra.yaml

# Where shadow repositories, state documents and the lock file live
shadow_dir: "~/.umbra"

# Version control tool
vcs:
  binary: "hg"
  # timeout: 600               # seconds per invocation

# Change watcher
watcher:
  binary: "watchman"
  timeout: 30
  follow_debounce_seconds: 2.0

# Synchronization
sync:
  copy_concurrency: 8
  transplant_strategy: "bulk"  # bulk | per-commit
  strip_source: true
  fallback_base_file: ".arcconfig"
  default_files: [".hgignore", ".arcconfig"]
  remove_shadow_on_unbreak: true

# System-wide lock
lock:
  filename: "lockfile"
  wait_seconds: 60

# Logging
log_level: "info"              # debug | info | warn | error
log_format: "text"             # text | json
"""
