"""
Authorization Core

- Permission graph: capabilities and implication edges
- Principal: resolved identity plus groups
- Resource: objects that own permission checks
- Grant table: versioned snapshots of who holds what where
- Strategy: the decision function
"""

from .permission import Permission, PermissionGraph, PermissionId
from .principal import Principal, PrincipalType, Sid, SidKind, EVERYONE, AUTHENTICATED
from .resource import Resource, resolve_authorization_owner
from .grants import EVERYWHERE, GrantEntry, GrantSnapshot, GrantTable, load_grants
from .policy import (
    AccessControl,
    AuthorizationStrategy,
    GrantTableAuthorizationStrategy,
    PinnedDecisions,
    PolicyDecision,
    UnsecuredAuthorizationStrategy,
)
from . import builtin

__all__ = [
    "Permission",
    "PermissionGraph",
    "PermissionId",
    "Principal",
    "PrincipalType",
    "Sid",
    "SidKind",
    "EVERYONE",
    "AUTHENTICATED",
    "Resource",
    "resolve_authorization_owner",
    "EVERYWHERE",
    "GrantEntry",
    "GrantSnapshot",
    "GrantTable",
    "load_grants",
    "AccessControl",
    "AuthorizationStrategy",
    "GrantTableAuthorizationStrategy",
    "PinnedDecisions",
    "PolicyDecision",
    "UnsecuredAuthorizationStrategy",
    "builtin",
]
