"""
Field Authorization Index

Declarative per-field policy for configuration entities. Each field names
the permission needed to see it and the permission needed to change it.
Which knobs are safe for a manage-only principal is a security decision, so
the records are written out explicitly rather than derived from the entity.

Both the render path and the submit path ask this index, so they cannot
disagree about a field.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, FrozenSet, List, Optional, Tuple, Union

from .auth.permission import Permission, PermissionGraph, PermissionId, PermissionLike
from .auth.policy import AccessControl, PinnedDecisions
from .auth.principal import Principal
from .auth.resource import Resource
from .errors import ConfigurationError, InconsistentFieldPolicy

logger = logging.getLogger(__name__)

DecisionSource = Union[AccessControl, PinnedDecisions]


class Visibility(str, Enum):
    VISIBLE = "visible"
    HIDDEN = "hidden"


class Mutability(str, Enum):
    EDITABLE = "editable"
    READ_ONLY = "read_only"


@dataclass(frozen=True)
class FieldAuthorization:
    """Minimum permissions to view and edit one configuration field"""
    field_id: str
    view_permission: PermissionId
    edit_permission: PermissionId
    label: str = ""


@dataclass(frozen=True)
class FieldState:
    """Outcome for one field: hidden, or visible and editable/read-only"""
    field_id: str
    visibility: Visibility
    mutability: Optional[Mutability] = None

    @property
    def visible(self) -> bool:
        return self.visibility == Visibility.VISIBLE

    @property
    def editable(self) -> bool:
        return self.mutability == Mutability.EDITABLE


@dataclass(frozen=True)
class EntityFieldPolicy:
    """
    Field policy for one entity type.

    ``access_permission`` guards the entity as a whole (the configure page);
    without it nothing is rendered and nothing is applied.
    """
    entity_type: str
    access_permission: PermissionId
    fields: Tuple[FieldAuthorization, ...] = field(default_factory=tuple)

    def get(self, field_id: str) -> Optional[FieldAuthorization]:
        for record in self.fields:
            if record.field_id == field_id:
                return record
        return None

    @property
    def field_ids(self) -> Tuple[str, ...]:
        return tuple(record.field_id for record in self.fields)


def field_rule(
    field_id: str,
    view: PermissionLike,
    edit: Optional[PermissionLike] = None,
    label: str = "",
) -> FieldAuthorization:
    """Shorthand for a FieldAuthorization; ``edit`` defaults to ``view``"""
    view_id = _as_id(view)
    edit_id = view_id if edit is None else _as_id(edit)
    return FieldAuthorization(field_id=field_id, view_permission=view_id, edit_permission=edit_id, label=label)


def _as_id(permission: PermissionLike) -> PermissionId:
    if isinstance(permission, Permission):
        return permission.id
    return PermissionId.parse(permission)


class FieldAuthorizationIndex:
    """
    Index of entity field policies, validated against a permission graph.

    Built at startup with declare(), then frozen.
    """

    def __init__(self, graph: PermissionGraph):
        self.graph = graph
        self._policies: Dict[str, EntityFieldPolicy] = {}
        self._frozen = False

    def declare(self, policy: EntityFieldPolicy) -> EntityFieldPolicy:
        """
        Register the field policy for an entity type.

        Raises:
            ConfigurationError: Duplicate entity or field, or index frozen
            UnknownPermission: A record names an unregistered permission
            InconsistentFieldPolicy: An edit permission does not imply the view permission
        """
        if self._frozen:
            raise ConfigurationError(f"Field index is frozen, cannot declare {policy.entity_type}")
        if policy.entity_type in self._policies:
            raise ConfigurationError(f"Duplicate field policy for entity {policy.entity_type}")

        self.graph.get(policy.access_permission)

        seen = set()
        for record in policy.fields:
            if record.field_id in seen:
                raise ConfigurationError(f"Duplicate field {policy.entity_type}.{record.field_id}")
            seen.add(record.field_id)

            if not self.graph.implies(record.edit_permission, record.view_permission):
                raise InconsistentFieldPolicy(
                    policy.entity_type, record.field_id,
                    record.view_permission, record.edit_permission,
                )

        self._policies[policy.entity_type] = policy
        logger.info(f"Declared field policy for {policy.entity_type} ({len(policy.fields)} fields)")
        return policy

    def freeze(self) -> "FieldAuthorizationIndex":
        self._frozen = True
        return self

    def policy(self, entity_type: str) -> EntityFieldPolicy:
        """
        Raises:
            ConfigurationError: If no policy is declared for ``entity_type``
        """
        try:
            return self._policies[entity_type]
        except KeyError:
            raise ConfigurationError(f"No field policy declared for entity {entity_type}") from None

    def entity_types(self) -> List[str]:
        return list(self._policies)

    # =========================================================================
    # QUERIES
    # =========================================================================

    def field_states(
        self,
        access: DecisionSource,
        principal: Principal,
        resource: Resource,
        entity_type: str,
    ) -> Dict[str, FieldState]:
        """
        Per-field visibility and mutability for ``principal``.

        Every check runs against one pinned policy snapshot; pass an already
        pinned source to share it with the caller's own checks.
        """
        policy = self.policy(entity_type)
        pinned = access.pinned()
        states: Dict[str, FieldState] = {}
        decisions: Dict[PermissionId, bool] = {}

        def allowed(permission: PermissionId) -> bool:
            if permission not in decisions:
                decisions[permission] = pinned.has_permission(principal, resource, permission)
            return decisions[permission]

        for record in policy.fields:
            if not allowed(record.view_permission):
                states[record.field_id] = FieldState(record.field_id, Visibility.HIDDEN)
            elif allowed(record.edit_permission):
                states[record.field_id] = FieldState(record.field_id, Visibility.VISIBLE, Mutability.EDITABLE)
            else:
                states[record.field_id] = FieldState(record.field_id, Visibility.VISIBLE, Mutability.READ_ONLY)
        return states

    def fields_visible_to(
        self,
        access: DecisionSource,
        principal: Principal,
        resource: Resource,
        entity_type: str,
    ) -> FrozenSet[str]:
        states = self.field_states(access, principal, resource, entity_type)
        return frozenset(fid for fid, state in states.items() if state.visible)

    def fields_editable_to(
        self,
        access: DecisionSource,
        principal: Principal,
        resource: Resource,
        entity_type: str,
    ) -> FrozenSet[str]:
        # Editable only ever comes from a visible state
        states = self.field_states(access, principal, resource, entity_type)
        return frozenset(fid for fid, state in states.items() if state.editable)
