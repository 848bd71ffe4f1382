"""
Authorization Errors

Error taxonomy for the decision engine:
- ConfigurationError: broken static policy, fatal at startup
- InconsistentFieldPolicy: a field editable under a permission that cannot view it
- UnknownPermission / UnknownResource: caller programming errors
- AccessDenied: page-level denial raised by the form gateway
- FormValidationError: malformed value for an editable field
- CommandError / CommandUsageError: command gateway failures

A denial is normally a return value (PolicyDecision.DENY, exit code 6),
not an exception. AccessDenied exists only where the host needs to unwind
a request handler.
"""

from typing import Optional


class AuthorizationError(Exception):
    """Base class for all engine errors"""


class ConfigurationError(AuthorizationError):
    """Static policy is malformed (duplicate, cycle, unresolved reference)"""


class InconsistentFieldPolicy(ConfigurationError):
    """A field's edit permission does not imply its view permission"""

    def __init__(self, entity_type: str, field_id: str, view_permission, edit_permission):
        self.entity_type = entity_type
        self.field_id = field_id
        self.view_permission = view_permission
        self.edit_permission = edit_permission
        super().__init__(
            f"Field {entity_type}.{field_id} is editable with {edit_permission} "
            f"which does not imply its view permission {view_permission}"
        )


class UnknownPermission(AuthorizationError, KeyError):
    """Lookup of a permission that was never registered"""

    def __str__(self) -> str:
        return Exception.__str__(self)


class UnknownResource(AuthorizationError, LookupError):
    """Decision requested against something that is not a known resource"""


class AccessDenied(AuthorizationError):
    """
    Raised when a principal lacks the permission guarding a whole view.

    The message is deliberately generic; the missing permission is kept on
    the instance for logging only.
    """

    def __init__(self, permission=None):
        self.permission = permission
        super().__init__("Access denied")


class FormValidationError(AuthorizationError, ValueError):
    """A submitted value for an editable field could not be applied"""

    def __init__(self, field_id: str, message: str):
        self.field_id = field_id
        super().__init__(f"{field_id}: {message}")


class CommandError(AuthorizationError):
    """A command failed with a specific exit code"""

    def __init__(self, message: str, exit_code: Optional[int] = None):
        super().__init__(message)
        self.exit_code = exit_code


class CommandUsageError(CommandError):
    """Command arguments could not be parsed"""
