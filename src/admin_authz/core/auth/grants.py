"""
Grant Table

Runtime mapping from (sid, scope) to granted permissions.

Readers never lock: they take the current GrantSnapshot, an immutable
value, and evaluate against it. Writers serialise on a lock, build a fresh
snapshot from the previous one, and publish it with a single attribute
assignment. A reader therefore sees either the whole old policy or the whole
new one.

Recipients are typed sids, so a user and a group with the same name never
share grants. Bulk definitions read like the policy tables used in tests:

    table.grant(MANAGE, READ).everywhere().to_user("mary")
    table.grant(ADMINISTER).on(computer).to_group("ops")
    table.grant(READ).everywhere().to_everyone()
"""

import logging
import threading
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Dict, FrozenSet, Iterable, List, Mapping, Optional, Tuple

from ..errors import ConfigurationError
from .permission import PermissionGraph, PermissionId, PermissionLike
from .principal import AUTHENTICATED_SID, EVERYONE_SID, Sid
from .resource import ROOT_URL, Resource

logger = logging.getLogger(__name__)

EVERYWHERE = "*"


@dataclass(frozen=True)
class GrantEntry:
    """(sid, permission, scope) tuple; scope is EVERYWHERE or a resource url"""
    sid: Sid
    permission: PermissionId
    scope: str = EVERYWHERE

    def to_dict(self) -> Dict[str, Any]:
        return {"sid": str(self.sid), "permission": str(self.permission), "scope": self.scope}


class GrantSnapshot:
    """Immutable, versioned view of the grant table"""

    def __init__(self, entries: Iterable[GrantEntry] = (), version: int = 0):
        entries = frozenset(entries)
        index: Dict[str, Dict[Sid, set]] = {}
        for entry in entries:
            index.setdefault(entry.scope, {}).setdefault(entry.sid, set()).add(entry.permission)

        self.version = version
        self._index: Mapping[str, Mapping[Sid, FrozenSet[PermissionId]]] = MappingProxyType({
            scope: MappingProxyType({sid: frozenset(perms) for sid, perms in by_sid.items()})
            for scope, by_sid in index.items()
        })
        self._entries: FrozenSet[GrantEntry] = entries

    @property
    def entries(self) -> FrozenSet[GrantEntry]:
        return self._entries

    def granted(self, sids: Iterable[Sid], scope: str = EVERYWHERE) -> FrozenSet[PermissionId]:
        """Permissions held by any of ``sids`` at ``scope`` or everywhere"""
        scopes = (EVERYWHERE,) if scope == EVERYWHERE else (EVERYWHERE, scope)
        result = set()
        for scope_key in scopes:
            by_sid = self._index.get(scope_key)
            if not by_sid:
                continue
            for sid in sids:
                result.update(by_sid.get(sid, ()))
        return frozenset(result)

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        return f"<GrantSnapshot v{self.version} entries={len(self._entries)}>"


class GrantTable:
    """
    Mutable holder of the current GrantSnapshot.

    Args:
        graph: Permission graph used to validate granted permissions
    """

    def __init__(self, graph: PermissionGraph, entries: Iterable[GrantEntry] = ()):
        self.graph = graph
        self._write_lock = threading.Lock()
        self._snapshot = GrantSnapshot(self._validated(entries), version=0)

    def snapshot(self) -> GrantSnapshot:
        """Current snapshot; safe to call from any thread without locking"""
        return self._snapshot

    @property
    def version(self) -> int:
        return self._snapshot.version

    # =========================================================================
    # WRITERS
    # =========================================================================

    def add(self, *entries: GrantEntry) -> GrantSnapshot:
        """Add grant entries and publish a new snapshot"""
        validated = self._validated(entries)
        with self._write_lock:
            current = self._snapshot
            return self._publish(current.entries | validated, current)

    def revoke(self, *entries: GrantEntry) -> GrantSnapshot:
        """Remove grant entries (unknown entries are ignored)"""
        with self._write_lock:
            current = self._snapshot
            return self._publish(current.entries - frozenset(entries), current)

    def revoke_sid(self, sid: Sid) -> GrantSnapshot:
        """Remove every grant held by ``sid``"""
        with self._write_lock:
            current = self._snapshot
            return self._publish(frozenset(e for e in current.entries if e.sid != sid), current)

    def replace(self, entries: Iterable[GrantEntry]) -> GrantSnapshot:
        """Swap the whole policy for ``entries``"""
        validated = self._validated(entries)
        with self._write_lock:
            return self._publish(validated, self._snapshot)

    def clear(self) -> GrantSnapshot:
        return self.replace(())

    def _publish(self, entries: FrozenSet[GrantEntry], current: GrantSnapshot) -> GrantSnapshot:
        snapshot = GrantSnapshot(entries, version=current.version + 1)
        self._snapshot = snapshot
        logger.info(f"Published grant snapshot v{snapshot.version} ({len(snapshot)} entries)")
        return snapshot

    def _validated(self, entries: Iterable[GrantEntry]) -> FrozenSet[GrantEntry]:
        # Raises UnknownPermission for anything the graph does not know
        validated = set()
        for e in entries:
            if not isinstance(e.sid, Sid):
                raise ConfigurationError(f"Grant recipient must be a user or group sid, got {e.sid!r}")
            validated.add(GrantEntry(e.sid, self.graph.get(e.permission).id, e.scope))
        return frozenset(validated)

    # =========================================================================
    # FLUENT DEFINITIONS
    # =========================================================================

    def grant(self, *permissions: PermissionLike) -> "GrantBuilder":
        """Start a bulk grant definition"""
        return GrantBuilder(self, [self.graph.get(p).id for p in permissions])


class GrantBuilder:
    """First step of ``table.grant(...)``: choose the scope"""

    def __init__(self, table: GrantTable, permissions: List[PermissionId]):
        self._table = table
        self._permissions = permissions

    def everywhere(self) -> "GrantScope":
        return GrantScope(self._table, self._permissions, (EVERYWHERE,))

    def on_root(self) -> "GrantScope":
        return GrantScope(self._table, self._permissions, (ROOT_URL,))

    def on(self, *resources: Resource) -> "GrantScope":
        return GrantScope(self._table, self._permissions, tuple(r.url for r in resources))


class GrantScope:
    """Second step of ``table.grant(...)``: choose the recipients"""

    def __init__(self, table: GrantTable, permissions: List[PermissionId], scopes: Tuple[str, ...]):
        self._table = table
        self._permissions = permissions
        self._scopes = scopes

    def to(self, *sids: Sid) -> GrantTable:
        """Grant to typed sids; returns the table for chaining"""
        self._table.add(*(
            GrantEntry(sid, permission, scope)
            for sid in sids
            for permission in self._permissions
            for scope in self._scopes
        ))
        return self._table

    def to_user(self, *names: str) -> GrantTable:
        return self.to(*(Sid.user(name) for name in names))

    def to_group(self, *names: str) -> GrantTable:
        return self.to(*(Sid.group(name) for name in names))

    def to_everyone(self) -> GrantTable:
        return self.to(EVERYONE_SID)

    def to_authenticated(self) -> GrantTable:
        return self.to(AUTHENTICATED_SID)


def load_grants(table: GrantTable, definitions: Iterable[Mapping[str, Any]]) -> GrantSnapshot:
    """
    Replace the table's policy with grants from configuration data.

    Each definition looks like:
        {"permissions": ["Overall/Manage"], "groups": ["managers"], "scope": "*"}

    Recipients come from ``users`` and ``groups`` (plain names) and ``to``
    (``user:<name>`` or ``group:<name>``). ``scope`` may be a single url or a
    list of urls; omitted means everywhere.

    Raises:
        ConfigurationError: If a ``to`` entry has no user:/group: prefix
        UnknownPermission: If a permission is not registered
    """
    entries = []
    for definition in definitions:
        permissions = _as_list(definition.get("permissions"))
        sids = [Sid.user(name) for name in _as_list(definition.get("users"))]
        sids += [Sid.group(name) for name in _as_list(definition.get("groups"))]
        sids += [Sid.parse(text) for text in _as_list(definition.get("to"))]
        scopes = _as_list(definition.get("scope")) or [EVERYWHERE]
        for sid in sids:
            for permission in permissions:
                for scope in scopes:
                    entries.append(GrantEntry(sid, PermissionId.parse(permission), scope))

    snapshot = table.replace(entries)
    logger.info(f"Loaded {len(snapshot)} grant entries from configuration")
    return snapshot


def _as_list(value: Optional[Any]) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    return [str(v) for v in value]
