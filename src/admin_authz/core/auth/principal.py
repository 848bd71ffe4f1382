"""
Principal Identity Model

A principal is an already-authenticated identity plus its resolved group
memberships. The engine never establishes identity itself; the host's
security realm (or a trusted proxy) hands over the resolved facts per
request, and nothing here is persisted.

Grants are made to typed security identifiers: a user sid names one
identity, a group sid names a membership. A user called ``admins`` is not a
member of the ``admins`` group.

Every principal implicitly belongs to the ``everyone`` group. Principals
other than the anonymous one also belong to ``authenticated``.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, NamedTuple, Optional

from ..errors import ConfigurationError

EVERYONE = "everyone"
AUTHENTICATED = "authenticated"
ANONYMOUS_ID = "anonymous"
SYSTEM_ID = "SYSTEM"


class SidKind(str, Enum):
    USER = "user"
    GROUP = "group"


class Sid(NamedTuple):
    """Security identifier: a user or a group name"""
    kind: SidKind
    name: str

    def __str__(self) -> str:
        return f"{self.kind.value}:{self.name}"

    @classmethod
    def user(cls, name: str) -> "Sid":
        return cls(SidKind.USER, name)

    @classmethod
    def group(cls, name: str) -> "Sid":
        return cls(SidKind.GROUP, name)

    @classmethod
    def parse(cls, text: str) -> "Sid":
        """
        Parse ``user:<name>`` or ``group:<name>``.

        Raises:
            ConfigurationError: If the kind prefix is missing or unknown
        """
        kind, sep, name = str(text).partition(":")
        if not sep or not name:
            raise ConfigurationError(f"Grant recipient {text!r} needs a user: or group: prefix")
        try:
            return cls(SidKind(kind.strip().lower()), name.strip())
        except ValueError:
            raise ConfigurationError(f"Unknown recipient kind {kind!r} in {text!r}") from None


EVERYONE_SID = Sid.group(EVERYONE)
AUTHENTICATED_SID = Sid.group(AUTHENTICATED)


class PrincipalType(str, Enum):
    """Type of principal"""
    HUMAN = "human"          # Human user
    SERVICE = "service"      # Service account
    SYSTEM = "system"        # Internal principal, bypasses authorization
    ANONYMOUS = "anonymous"  # Unauthenticated


@dataclass(frozen=True)
class Principal:
    """
    Resolved identity used for authorization decisions.

    Example:
        Principal.of("alice", groups=["admins"])
    """
    principal_id: str
    groups: FrozenSet[str] = frozenset()
    principal_type: PrincipalType = PrincipalType.HUMAN
    display_name: Optional[str] = None

    @classmethod
    def of(cls, principal_id: str, groups: Iterable[str] = (), **kwargs) -> "Principal":
        """
        Create a principal from any iterable of group names.

        The reserved ``anonymous`` identity always yields the anonymous
        principal, so it never picks up ``authenticated``.
        """
        if principal_id == ANONYMOUS_ID:
            return cls.anonymous()
        return cls(principal_id=principal_id, groups=frozenset(g for g in groups if g), **kwargs)

    @classmethod
    def anonymous(cls) -> "Principal":
        """Create the anonymous principal (belongs only to ``everyone``)"""
        return cls(
            principal_id=ANONYMOUS_ID,
            principal_type=PrincipalType.ANONYMOUS,
            display_name="Anonymous",
        )

    @classmethod
    def system(cls) -> "Principal":
        """Create the system principal (for internal operations)"""
        return cls(
            principal_id=SYSTEM_ID,
            principal_type=PrincipalType.SYSTEM,
            display_name="System",
        )

    @property
    def is_anonymous(self) -> bool:
        return self.principal_type == PrincipalType.ANONYMOUS

    @property
    def is_system(self) -> bool:
        return self.principal_type == PrincipalType.SYSTEM

    def sids(self) -> FrozenSet[Sid]:
        """
        Security identifiers this principal acts as.

        The user sid for the identity, a group sid per membership, the
        ``everyone`` group, and ``authenticated`` unless anonymous.
        """
        sids = {Sid.user(self.principal_id), EVERYONE_SID}
        sids.update(Sid.group(g) for g in self.groups)
        if not self.is_anonymous:
            sids.add(AUTHENTICATED_SID)
        return frozenset(sids)

    def authorities(self) -> FrozenSet[str]:
        """Names of every group this principal belongs to, implicit ones included"""
        return frozenset(sid.name for sid in self.sids() if sid.kind == SidKind.GROUP)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to dictionary"""
        return {
            "principal_id": self.principal_id,
            "groups": sorted(self.groups),
            "principal_type": self.principal_type.value,
            "display_name": self.display_name,
        }
