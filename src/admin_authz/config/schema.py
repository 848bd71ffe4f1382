"""
Engine Configuration Schema

Defines the configuration structure for the authorization engine.
All configuration can be specified via authz.yaml or environment variables.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

MANAGE_PERMISSION_ENV = "ADMIN_AUTHZ_MANAGE_PERMISSION"


@dataclass
class WebConfig:
    """Configuration for the HTTP form gateway"""
    host: str = "127.0.0.1"
    port: int = 8080
    user_header: str = "X-Forwarded-User"
    groups_header: str = "X-Forwarded-Groups"


@dataclass
class GrantConfig:
    """
    One bulk grant definition.

    Recipients are ``users`` and ``groups`` by plain name, or ``to`` entries
    written as ``user:<name>`` / ``group:<name>``.
    """
    permissions: List[str] = field(default_factory=list)
    users: List[str] = field(default_factory=list)
    groups: List[str] = field(default_factory=list)
    to: List[str] = field(default_factory=list)
    scope: List[str] = field(default_factory=lambda: ["*"])

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GrantConfig":
        def as_list(value, default):
            if value is None:
                return list(default)
            return [value] if isinstance(value, str) else list(value)

        return cls(
            permissions=as_list(data.get("permissions"), []),
            users=as_list(data.get("users"), []),
            groups=as_list(data.get("groups"), []),
            to=as_list(data.get("to"), []),
            scope=as_list(data.get("scope"), ["*"]),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "permissions": self.permissions,
            "users": self.users,
            "groups": self.groups,
            "to": self.to,
            "scope": self.scope,
        }


@dataclass
class PluginConfig:
    name: str
    version: str = "1.0"
    enabled: bool = True
    # plugin name -> optional flag
    dependencies: Dict[str, bool] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PluginConfig":
        deps = data.get("dependencies", {}) or {}
        if isinstance(deps, list):
            deps = {name: False for name in deps}
        return cls(
            name=data["name"],
            version=str(data.get("version", "1.0")),
            enabled=bool(data.get("enabled", True)),
            dependencies={str(k): bool(v) for k, v in deps.items()},
        )


@dataclass
class ControllerConfig:
    """Seed state for the controller model"""
    views: List[str] = field(default_factory=lambda: ["all"])
    computers: List[str] = field(default_factory=list)
    plugins: List[PluginConfig] = field(default_factory=list)
    # Initial values for the system configuration entity
    system: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ControllerConfig":
        return cls(
            views=list(data.get("views") or ["all"]),
            computers=list(data.get("computers") or []),
            plugins=[PluginConfig.from_dict(p) for p in data.get("plugins") or []],
            system=dict(data.get("system") or {}),
        )


@dataclass
class EngineConfig:
    """
    Central configuration for the authorization engine.

    Example authz.yaml:
    ```yaml
    manage_permission_enabled: true
    log_level: INFO

    web:
      host: 127.0.0.1
      port: 8080

    grants:
      - permissions: ["Overall/Administer"]
        groups: ["admins"]
      - permissions: ["Overall/Manage", "Overall/Read"]
        to: ["group:managers", "user:mary"]

    controller:
      views: ["all", "ops"]
      system:
        num_executors: 2
    ```
    """
    # Feature flag for Overall/Manage; when off Manage checks need Administer
    manage_permission_enabled: bool = False
    log_level: str = "INFO"
    web: WebConfig = field(default_factory=WebConfig)
    grants: List[GrantConfig] = field(default_factory=list)
    controller: ControllerConfig = field(default_factory=ControllerConfig)

    # Working directory (defaults to current directory)
    working_dir: Path = field(default_factory=Path.cwd)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EngineConfig":
        """Create EngineConfig from dictionary (e.g., parsed YAML)"""
        web_data = data.get("web", {}) or {}
        web = WebConfig(
            host=web_data.get("host", "127.0.0.1"),
            port=int(web_data.get("port", 8080)),
            user_header=web_data.get("user_header", "X-Forwarded-User"),
            groups_header=web_data.get("groups_header", "X-Forwarded-Groups"),
        )

        config = cls(
            manage_permission_enabled=_as_bool(data.get("manage_permission_enabled", False)),
            log_level=str(data.get("log_level", "INFO")).upper(),
            web=web,
            grants=[GrantConfig.from_dict(g) for g in data.get("grants", []) or []],
            controller=ControllerConfig.from_dict(data.get("controller", {}) or {}),
        )
        if data.get("working_dir"):
            config.working_dir = Path(data["working_dir"])
        return config.apply_env_overrides()

    def apply_env_overrides(self, environ: Optional[Dict[str, str]] = None) -> "EngineConfig":
        """Environment variables win over file values"""
        environ = os.environ if environ is None else environ
        if MANAGE_PERMISSION_ENV in environ:
            self.manage_permission_enabled = _as_bool(environ[MANAGE_PERMISSION_ENV])
        return self


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "yes", "on")
