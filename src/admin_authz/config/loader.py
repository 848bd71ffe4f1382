"""
Engine Configuration Loader

Reads authz.yaml, expands environment references, and builds an EngineConfig.

References take two forms:
- ${NAME}            must be set, otherwise loading fails with KeyError
- ${NAME:-fallback}  uses ``fallback`` when NAME is unset

Example:
```yaml
manage_permission_enabled: "${ADMIN_AUTHZ_MANAGE_PERMISSION:-false}"
grants:
  - permissions: ["Overall/Administer"]
    groups: ["${ADMIN_GROUP:-admins}"]
```
"""

import logging
import os
import re
from pathlib import Path
from typing import Any, List, Mapping, Optional, Union

import yaml

from .schema import EngineConfig

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "authz.yaml"

ENV_REFERENCE = re.compile(r'\$\{([^}:]+)(?::-([^}]*))?\}')

PathLike = Union[str, Path]


def _expand_reference(match: "re.Match", environ: Mapping[str, str]) -> str:
    name, fallback = match.group(1), match.group(2)
    if name in environ:
        return environ[name]
    if fallback is not None:
        return fallback
    raise KeyError(f"Environment variable '{name}' is not set and has no fallback (use ${{{name}:-value}})")


def interpolate_env_vars(value: Any, environ: Optional[Mapping[str, str]] = None) -> Any:
    """
    Expand ${NAME} references in every string of a parsed YAML document.

    Raises:
        KeyError: If a reference without fallback names an unset variable
    """
    environ = os.environ if environ is None else environ
    if isinstance(value, str):
        return ENV_REFERENCE.sub(lambda m: _expand_reference(m, environ), value)
    if isinstance(value, dict):
        return {key: interpolate_env_vars(item, environ) for key, item in value.items()}
    if isinstance(value, list):
        return [interpolate_env_vars(item, environ) for item in value]
    return value


def load_config_from_file(config_path: PathLike, interpolate: bool = True) -> EngineConfig:
    """
    Build an EngineConfig from one YAML file.

    ``working_dir`` defaults to the directory holding the file.

    Raises:
        FileNotFoundError: If ``config_path`` does not exist
        KeyError: If a required environment variable is unset
        yaml.YAMLError: If the file is not valid YAML or not a mapping
    """
    config_path = Path(config_path)
    if not config_path.is_file():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    logger.info(f"Loading configuration from {config_path}")
    data = yaml.safe_load(config_path.read_text()) or {}
    if not isinstance(data, dict):
        raise yaml.YAMLError(f"{config_path}: top level must be a mapping, got {type(data).__name__}")

    if interpolate:
        try:
            data = interpolate_env_vars(data)
        except KeyError as e:
            logger.error(f"Cannot expand {config_path}: {e}")
            raise

    data.setdefault("working_dir", str(config_path.parent.absolute()))
    return EngineConfig.from_dict(data)


def candidate_paths(working_dir: Optional[PathLike] = None) -> List[Path]:
    """Places searched for authz.yaml, in order"""
    roots = [Path(working_dir)] if working_dir else []
    roots.append(Path.cwd())
    return [path for root in roots for path in (root / CONFIG_FILENAME, root / "config" / CONFIG_FILENAME)]


def load_config(
    config_path: Optional[PathLike] = None,
    working_dir: Optional[PathLike] = None,
) -> EngineConfig:
    """
    Load configuration from ``config_path``, or the first file found by
    candidate_paths(), or fall back to defaults (everything denied).
    """
    if config_path:
        return load_config_from_file(config_path)

    for path in candidate_paths(working_dir):
        if path.is_file():
            return load_config_from_file(path)

    logger.info(f"No {CONFIG_FILENAME} found, starting with an empty policy")
    config = EngineConfig(working_dir=Path(working_dir) if working_dir else Path.cwd())
    return config.apply_env_overrides()
