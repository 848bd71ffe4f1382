"""
Permission Graph

Capabilities are immutable value nodes keyed by (group, name). Each node may
name one stronger permission that implies it, giving a forest of implication
edges pointing from the weaker permission up to the stronger one:

    Overall/Administer
    ├── Overall/Read
    │   ├── Job/Read
    │   └── View/Read
    ├── Overall/Manage        (only enabled behind a feature flag)
    └── Overall/RunScripts

Holding a permission satisfies every permission below it, never the ones
above it. The graph is built once at startup, frozen, and read concurrently
without locking afterwards.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Iterator, List, NamedTuple, Optional, Union

from ..errors import ConfigurationError, UnknownPermission

logger = logging.getLogger(__name__)


class PermissionId(NamedTuple):
    """Stable identifier of a permission"""
    group: str
    name: str

    def __str__(self) -> str:
        return f"{self.group}/{self.name}"

    @classmethod
    def parse(cls, value: Union[str, "PermissionId"]) -> "PermissionId":
        """
        Parse ``Group/Name`` notation.

        Raises:
            UnknownPermission: If the value is not in ``Group/Name`` form
        """
        if isinstance(value, PermissionId):
            return value
        group, sep, name = str(value).partition("/")
        if not sep or not group or not name:
            raise UnknownPermission(f"Malformed permission id: {value!r}")
        return cls(group, name)


@dataclass(frozen=True)
class Permission:
    """
    A named capability.

    ``implied_by`` is the stronger permission whose grant implies this one.
    ``enabled`` is False for permissions switched off in this deployment;
    checks for a disabled permission fall back to its nearest enabled ancestor.
    """
    id: PermissionId
    label: str = ""
    implied_by: Optional[PermissionId] = None
    enabled: bool = True

    @property
    def group(self) -> str:
        return self.id.group

    @property
    def name(self) -> str:
        return self.id.name

    def __str__(self) -> str:
        return str(self.id)


PermissionLike = Union[Permission, PermissionId, str]


class PermissionGraph:
    """
    Registry of permissions and their implication edges.

    Registration is only allowed until ``freeze()``. Lookups are dict based.
    """

    def __init__(self):
        self._permissions: Dict[PermissionId, Permission] = {}
        self._frozen = False

    @property
    def frozen(self) -> bool:
        return self._frozen

    # =========================================================================
    # REGISTRATION
    # =========================================================================

    def register(self, permission: Permission) -> Permission:
        """
        Register a permission.

        The parent named by ``implied_by`` may be registered later, but an
        edge that closes a loop is rejected immediately.

        Raises:
            ConfigurationError: On duplicates, cycles, or after freeze()
        """
        if self._frozen:
            raise ConfigurationError(f"Permission graph is frozen, cannot register {permission.id}")

        if permission.id in self._permissions:
            raise ConfigurationError(f"Duplicate permission: {permission.id}")

        # Walk upward from the declared parent; reaching ourselves is a cycle
        path = [permission.id]
        parent = permission.implied_by
        while parent is not None:
            if parent in path:
                raise ConfigurationError(
                    f"Cyclic implication while registering {permission.id}: "
                    f"{' -> '.join(str(p) for p in path)} -> {parent}"
                )
            path.append(parent)
            node = self._permissions.get(parent)
            parent = node.implied_by if node else None

        self._permissions[permission.id] = permission
        logger.debug(f"Registered permission {permission.id} (implied by {permission.implied_by})")
        return permission

    def declare(
        self,
        group: str,
        name: str,
        label: str = "",
        implied_by: Optional[PermissionLike] = None,
        enabled: bool = True,
    ) -> Permission:
        """Convenience wrapper around register()"""
        parent = self._to_id(implied_by) if implied_by is not None else None
        return self.register(Permission(
            id=PermissionId(group, name),
            label=label or name,
            implied_by=parent,
            enabled=enabled,
        ))

    def freeze(self) -> "PermissionGraph":
        """
        Validate forward references and make the graph read-only.

        Raises:
            ConfigurationError: If any implied_by names an unregistered permission
        """
        for permission in self._permissions.values():
            if permission.implied_by is not None and permission.implied_by not in self._permissions:
                raise ConfigurationError(
                    f"{permission.id} is implied by unregistered permission {permission.implied_by}"
                )
        self._frozen = True
        logger.info(f"Permission graph frozen with {len(self._permissions)} permissions")
        return self

    # =========================================================================
    # LOOKUP
    # =========================================================================

    def get(self, group_or_id: Union[PermissionLike, str], name: Optional[str] = None) -> Permission:
        """
        Look up a permission by id, ``Group/Name`` string, or (group, name).

        Raises:
            UnknownPermission: If nothing is registered under that id
        """
        if name is not None:
            key = PermissionId(str(group_or_id), name)
        else:
            key = self._to_id(group_or_id)
        try:
            return self._permissions[key]
        except KeyError:
            raise UnknownPermission(f"Unknown permission: {key}") from None

    def __contains__(self, item) -> bool:
        try:
            return self._to_id(item) in self._permissions
        except UnknownPermission:
            return False

    def __iter__(self) -> Iterator[Permission]:
        return iter(self._permissions.values())

    def __len__(self) -> int:
        return len(self._permissions)

    # =========================================================================
    # IMPLICATION
    # =========================================================================

    def ancestors(self, permission: PermissionLike) -> List[PermissionId]:
        """The permission followed by every permission that implies it, nearest first"""
        chain = []
        node: Optional[Permission] = self.get(permission)
        while node is not None:
            chain.append(node.id)
            node = self._permissions.get(node.implied_by) if node.implied_by else None
        return chain

    def implies(self, stronger: PermissionLike, weaker: PermissionLike) -> bool:
        """True if holding ``stronger`` guarantees ``weaker``"""
        return self.get(stronger).id in self.ancestors(weaker)

    def effective(self, permission: PermissionLike) -> Permission:
        """
        The permission actually checked when ``permission`` is requested.

        Disabled permissions are replaced by their nearest enabled ancestor.
        """
        node = self.get(permission)
        while not node.enabled and node.implied_by is not None:
            node = self._permissions[node.implied_by]
        return node

    @staticmethod
    def _to_id(value: PermissionLike) -> PermissionId:
        if isinstance(value, Permission):
            return value.id
        return PermissionId.parse(value)
