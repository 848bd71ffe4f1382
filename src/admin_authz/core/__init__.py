"""
Authorization Engine Core

Core components of the decision engine and its enforcement points.
"""

from .errors import (
    AuthorizationError,
    ConfigurationError,
    InconsistentFieldPolicy,
    UnknownPermission,
    UnknownResource,
    AccessDenied,
    FormValidationError,
    CommandError,
    CommandUsageError,
)
from .field_policy import (
    EntityFieldPolicy,
    FieldAuthorization,
    FieldAuthorizationIndex,
    FieldState,
    field_rule,
)
from .gateway import (
    AccessEnforcementGateway,
    CommandResult,
    EntityBinding,
    EnforcementState,
    ExitCode,
    RenderedView,
)
from .model import Computer, Controller, Job, PluginManager, PluginWrapper, View
from .system_config import SystemConfiguration, SYSTEM_FIELD_POLICY
from .bootstrap import EngineContext, bootstrap

__all__ = [
    # Errors
    "AuthorizationError",
    "ConfigurationError",
    "InconsistentFieldPolicy",
    "UnknownPermission",
    "UnknownResource",
    "AccessDenied",
    "FormValidationError",
    "CommandError",
    "CommandUsageError",
    # Field policy
    "EntityFieldPolicy",
    "FieldAuthorization",
    "FieldAuthorizationIndex",
    "FieldState",
    "field_rule",
    # Gateway
    "AccessEnforcementGateway",
    "CommandResult",
    "EntityBinding",
    "EnforcementState",
    "ExitCode",
    "RenderedView",
    # Model
    "Computer",
    "Controller",
    "Job",
    "PluginManager",
    "PluginWrapper",
    "View",
    "SystemConfiguration",
    "SYSTEM_FIELD_POLICY",
    # Bootstrap
    "EngineContext",
    "bootstrap",
]
