"""
System Configuration Entity

The controller's global configuration, the composite object behind the
configure page, together with its field policy:

- Administer-only: anything that changes what runs on the controller or how
  every user sees it (system message, naming strategy, primary view,
  executors, labels, global properties, administrative monitors, shell)
- Manage: operational settings that cannot be turned into code execution
  (quiet period, SCM retry count, controller URL, admin e-mail)
"""

import re
from dataclasses import dataclass, field, fields
from typing import Any, Callable, Dict, Mapping, Tuple

from .auth import builtin
from .errors import FormValidationError
from .field_policy import EntityFieldPolicy, field_rule

ENTITY_TYPE = "system"


@dataclass
class SystemConfiguration:
    """Global controller configuration"""
    system_message: str = ""
    use_project_naming_strategy: bool = False
    project_naming_pattern: str = ".*"
    primary_view: str = "all"
    num_executors: int = 2
    labels: str = ""
    global_properties: Dict[str, str] = field(default_factory=dict)
    administrative_monitors: Tuple[str, ...] = ()  # disabled monitor ids
    shell: str = ""
    quiet_period: int = 5
    scm_checkout_retry_count: int = 0
    root_url: str = ""
    admin_address: str = "address not configured yet <nobody@nowhere>"

    def to_dict(self) -> Dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "SystemConfiguration":
        """Build from configuration data, coercing each known key"""
        known = {f.name for f in fields(cls)}
        return cls(**{k: parse_field(k, v) for k, v in data.items() if k in known})


SYSTEM_FIELD_POLICY = EntityFieldPolicy(
    entity_type=ENTITY_TYPE,
    access_permission=builtin.MANAGE,
    fields=(
        field_rule("system_message", builtin.ADMINISTER, label="System Message"),
        field_rule("use_project_naming_strategy", builtin.ADMINISTER, label="Restrict project naming"),
        field_rule("project_naming_pattern", builtin.ADMINISTER, label="Project name pattern"),
        field_rule("primary_view", builtin.ADMINISTER, label="Default view"),
        field_rule("num_executors", builtin.ADMINISTER, label="# of executors"),
        field_rule("labels", builtin.ADMINISTER, label="Labels"),
        field_rule("global_properties", builtin.ADMINISTER, label="Global properties"),
        field_rule("administrative_monitors", builtin.ADMINISTER, label="Administrative monitors"),
        field_rule("shell", builtin.ADMINISTER, label="Shell executable"),
        field_rule("quiet_period", builtin.MANAGE, label="Quiet period"),
        field_rule("scm_checkout_retry_count", builtin.MANAGE, label="SCM checkout retry count"),
        field_rule("root_url", builtin.MANAGE, label="Controller URL"),
        field_rule("admin_address", builtin.MANAGE, label="System admin e-mail address"),
    ),
)


# =========================================================================
# VALUE PARSING
# =========================================================================

_TRUE = {"true", "on", "yes", "1"}
_FALSE = {"false", "off", "no", "0", ""}


def _parse_str(field_id: str, value: Any) -> str:
    if value is None:
        return ""
    if not isinstance(value, (str, int, float)):
        raise FormValidationError(field_id, "expected text")
    return str(value)


def _parse_bool(field_id: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE:
        return True
    if text in _FALSE:
        return False
    raise FormValidationError(field_id, f"not a boolean: {value!r}")


def _parse_non_negative_int(field_id: str, value: Any) -> int:
    if isinstance(value, bool):
        raise FormValidationError(field_id, "expected a number")
    try:
        number = int(str(value).strip())
    except ValueError:
        raise FormValidationError(field_id, f"not a number: {value!r}") from None
    if number < 0:
        raise FormValidationError(field_id, "must be zero or greater")
    return number


def _parse_pattern(field_id: str, value: Any) -> str:
    pattern = _parse_str(field_id, value)
    try:
        re.compile(pattern)
    except re.error as e:
        raise FormValidationError(field_id, f"invalid pattern: {e}") from None
    return pattern


def _parse_url(field_id: str, value: Any) -> str:
    url = _parse_str(field_id, value).strip()
    if url and not url.startswith(("http://", "https://")):
        raise FormValidationError(field_id, "must be an http(s) URL")
    if url and not url.endswith("/"):
        url += "/"
    return url


def _parse_properties(field_id: str, value: Any) -> Dict[str, str]:
    if isinstance(value, Mapping):
        return {str(k): str(v) for k, v in value.items()}
    lines = value.splitlines() if isinstance(value, str) else list(value or [])
    properties = {}
    for line in lines:
        line = str(line).strip()
        if not line:
            continue
        key, sep, val = line.partition("=")
        if not sep or not key.strip():
            raise FormValidationError(field_id, f"expected KEY=VALUE, got {line!r}")
        properties[key.strip()] = val.strip()
    return properties


def _parse_list(field_id: str, value: Any) -> Tuple[str, ...]:
    items = re.split(r"[,\n]", value) if isinstance(value, str) else list(value or [])
    return tuple(sorted({str(item).strip() for item in items if str(item).strip()}))


FIELD_PARSERS: Dict[str, Callable[[str, Any], Any]] = {
    "system_message": _parse_str,
    "use_project_naming_strategy": _parse_bool,
    "project_naming_pattern": _parse_pattern,
    "primary_view": lambda fid, v: _parse_str(fid, v).strip(),
    "num_executors": _parse_non_negative_int,
    "labels": lambda fid, v: " ".join(_parse_str(fid, v).split()),
    "global_properties": _parse_properties,
    "administrative_monitors": _parse_list,
    "shell": lambda fid, v: _parse_str(fid, v).strip(),
    "quiet_period": _parse_non_negative_int,
    "scm_checkout_retry_count": _parse_non_negative_int,
    "root_url": _parse_url,
    "admin_address": lambda fid, v: _parse_str(fid, v).strip(),
}


def parse_field(field_id: str, value: Any) -> Any:
    """
    Coerce a submitted value for ``field_id``.

    Raises:
        FormValidationError: If the value cannot be used
    """
    try:
        parser = FIELD_PARSERS[field_id]
    except KeyError:
        raise FormValidationError(field_id, "unknown field") from None
    return parser(field_id, value)


def format_field(value: Any) -> str:
    """Render a field value as form text"""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, Mapping):
        return "\n".join(f"{k}={v}" for k, v in sorted(value.items()))
    if isinstance(value, tuple):
        return ", ".join(value)
    return str(value)
