"""
Authorization Strategy

Pluggable decision function: (principal, resource, permission) -> allow/deny.

- AuthorizationStrategy: the contract
- GrantTableAuthorizationStrategy: decisions from a GrantTable snapshot,
  expanded through the permission graph's implication edges
- UnsecuredAuthorizationStrategy: everyone may do everything
- AccessControl: holds the active strategy, swappable at runtime
- PinnedDecisions: one strategy and one policy snapshot, shared by every
  check that makes up a single filtered view or submission
"""

import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Dict, Optional

from .grants import GrantSnapshot, GrantTable
from .permission import PermissionGraph, PermissionLike
from .principal import Principal
from .resource import Resource, resolve_authorization_owner

logger = logging.getLogger(__name__)


class PolicyDecision(str, Enum):
    """Authorization decision"""
    ALLOW = "allow"
    DENY = "deny"

    @property
    def allowed(self) -> bool:
        return self is PolicyDecision.ALLOW


class AuthorizationStrategy(ABC):
    """
    Maps (principal, resource, permission) to a decision.

    Implementations must be deterministic for a fixed policy snapshot, free
    of side effects, and safe to call from many threads at once.
    """

    def __init__(self, graph: PermissionGraph):
        self.graph = graph

    def snapshot(self) -> Optional[Any]:
        """Policy state decisions are evaluated against; None when stateless"""
        return None

    @abstractmethod
    def has_permission(
        self,
        principal: Principal,
        resource: Resource,
        permission: PermissionLike,
        snapshot: Optional[Any] = None,
    ) -> bool:
        """
        Decide whether ``principal`` holds ``permission`` on ``resource``.

        ``snapshot`` pins the policy state (from snapshot()); omitted means
        the current one.

        Raises:
            UnknownPermission: If the permission is not registered
            UnknownResource: If ``resource`` is not a Resource
        """

    def check(
        self,
        principal: Principal,
        resource: Resource,
        permission: PermissionLike,
        snapshot: Optional[Any] = None,
    ) -> PolicyDecision:
        """Same as has_permission() but returns a PolicyDecision"""
        if self.has_permission(principal, resource, permission, snapshot):
            return PolicyDecision.ALLOW
        return PolicyDecision.DENY

    def describe(self) -> Dict[str, Any]:
        return {"strategy": type(self).__name__}


class GrantTableAuthorizationStrategy(AuthorizationStrategy):
    """
    Decisions backed by a GrantTable.

    1. Follow the resource's delegation to its authorization owner.
    2. Collect permissions granted to the principal's sids at the owner's
       scope and everywhere, from a single snapshot.
    3. Satisfied if the requested permission, or anything that implies it,
       is among them.

    Example:
        strategy = GrantTableAuthorizationStrategy(graph, GrantTable(graph))
        strategy.grant(MANAGE, READ).everywhere().to_group("managers")
    """

    def __init__(self, graph: PermissionGraph, table: GrantTable = None):
        super().__init__(graph)
        self.table = table if table is not None else GrantTable(graph)

    def grant(self, *permissions: PermissionLike):
        """Shortcut to ``self.table.grant(...)``"""
        return self.table.grant(*permissions)

    def snapshot(self) -> GrantSnapshot:
        return self.table.snapshot()

    def has_permission(
        self,
        principal: Principal,
        resource: Resource,
        permission: PermissionLike,
        snapshot: Optional[GrantSnapshot] = None,
    ) -> bool:
        requested = self.graph.effective(permission)
        owner = resolve_authorization_owner(resource)

        if principal.is_system:
            return True

        if snapshot is None:
            snapshot = self.table.snapshot()
        granted = snapshot.granted(principal.sids(), owner.url)
        allowed = any(p in granted for p in self.graph.ancestors(requested.id))

        logger.debug(
            f"Decision {'ALLOW' if allowed else 'DENY'}: {principal.principal_id} "
            f"{requested.id} on {owner!r} (grants v{snapshot.version})"
        )
        return allowed

    def describe(self) -> Dict[str, Any]:
        snapshot = self.table.snapshot()
        return {
            "strategy": type(self).__name__,
            "grant_version": snapshot.version,
            "grant_entries": len(snapshot),
        }


class UnsecuredAuthorizationStrategy(AuthorizationStrategy):
    """Everyone, including anonymous, may do everything"""

    def has_permission(
        self,
        principal: Principal,
        resource: Resource,
        permission: PermissionLike,
        snapshot: Optional[Any] = None,
    ) -> bool:
        # Still validate inputs so callers' mistakes surface under any strategy
        self.graph.get(permission)
        resolve_authorization_owner(resource)
        return True


class PinnedDecisions:
    """
    Decisions against one strategy and one policy snapshot.

    A filtered view checks the page gate and then every field's view and
    edit permission; pinning keeps all of them on the same policy version
    even if the grant table or the strategy changes meanwhile.
    """

    def __init__(self, strategy: AuthorizationStrategy, snapshot: Optional[Any] = None):
        self.strategy = strategy
        self.snapshot = snapshot

    @property
    def graph(self) -> PermissionGraph:
        return self.strategy.graph

    def pinned(self) -> "PinnedDecisions":
        return self

    def has_permission(self, principal: Principal, resource: Resource, permission: PermissionLike) -> bool:
        return self.strategy.has_permission(principal, resource, permission, self.snapshot)

    def check(self, principal: Principal, resource: Resource, permission: PermissionLike) -> PolicyDecision:
        return self.strategy.check(principal, resource, permission, self.snapshot)


class AccessControl:
    """
    Holder of the active authorization strategy.

    Swapping strategies is a single attribute assignment; a decision in
    flight keeps using the strategy it started with.
    """

    def __init__(self, strategy: AuthorizationStrategy):
        self._strategy = strategy

    @property
    def graph(self) -> PermissionGraph:
        return self._strategy.graph

    @property
    def strategy(self) -> AuthorizationStrategy:
        return self._strategy

    def set_strategy(self, strategy: AuthorizationStrategy) -> None:
        logger.info(f"Authorization strategy set to {type(strategy).__name__}")
        self._strategy = strategy

    def pinned(self) -> PinnedDecisions:
        """Capture the current strategy and its policy snapshot"""
        strategy = self._strategy
        return PinnedDecisions(strategy, strategy.snapshot())

    def has_permission(self, principal: Principal, resource: Resource, permission: PermissionLike) -> bool:
        return self._strategy.has_permission(principal, resource, permission)

    def check(self, principal: Principal, resource: Resource, permission: PermissionLike) -> PolicyDecision:
        return self._strategy.check(principal, resource, permission)
