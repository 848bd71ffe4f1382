"""
Engine Bootstrap

Wires the engine together at process start:
1. Permission graph (frozen)
2. Field authorization index (validated, frozen)
3. Grant table loaded from configuration
4. Authorization strategy and access control holder
5. Controller model and enforcement gateway

Any ConfigurationError raised here is fatal; nothing is served until the
static policy is consistent.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, Optional

from ..config.schema import EngineConfig
from .auth.builtin import build_default_graph
from .auth.grants import GrantTable, load_grants
from .auth.permission import PermissionGraph
from .auth.policy import AccessControl, GrantTableAuthorizationStrategy
from .field_policy import EntityFieldPolicy, FieldAuthorizationIndex
from .gateway import AccessEnforcementGateway, EntityBinding
from .model import Computer, Controller, PluginManager, PluginWrapper
from .system_config import (
    ENTITY_TYPE as SYSTEM_ENTITY,
    SYSTEM_FIELD_POLICY,
    SystemConfiguration,
    format_field,
    parse_field,
)

logger = logging.getLogger(__name__)


@dataclass
class EngineContext:
    """Everything a host needs to serve decisions"""
    config: EngineConfig
    graph: PermissionGraph
    field_index: FieldAuthorizationIndex
    grants: GrantTable
    access: AccessControl
    controller: Controller
    gateway: AccessEnforcementGateway


def build_field_index(
    graph: PermissionGraph,
    policies: Iterable[EntityFieldPolicy] = (SYSTEM_FIELD_POLICY,),
) -> FieldAuthorizationIndex:
    index = FieldAuthorizationIndex(graph)
    for policy in policies:
        index.declare(policy)
    return index.freeze()


def build_controller(config: EngineConfig) -> Controller:
    seed = config.controller
    plugins = PluginManager(
        PluginWrapper(p.name, version=p.version, enabled=p.enabled, dependencies=dict(p.dependencies))
        for p in seed.plugins
    )
    return Controller(
        configuration=SystemConfiguration.from_dict(seed.system),
        views=seed.views,
        computers=[Computer(name) for name in seed.computers],
        plugin_manager=plugins,
    )


def bootstrap(config: Optional[EngineConfig] = None, controller: Optional[Controller] = None) -> EngineContext:
    """
    Build an EngineContext from configuration.

    Raises:
        ConfigurationError: If the static policy is inconsistent
        UnknownPermission: If a grant names an unknown permission
    """
    config = config or EngineConfig()

    graph = build_default_graph(manage_enabled=config.manage_permission_enabled)
    field_index = build_field_index(graph)

    grants = GrantTable(graph)
    load_grants(grants, [g.to_dict() for g in config.grants])

    access = AccessControl(GrantTableAuthorizationStrategy(graph, grants))
    controller = controller or build_controller(config)

    gateway = AccessEnforcementGateway(access, field_index, controller)
    gateway.bind_entity(EntityBinding(
        entity_type=SYSTEM_ENTITY,
        load=lambda resource: controller.configuration,
        parse=parse_field,
        store=lambda resource, changes: controller.update_configuration(**changes),
        format=format_field,
    ))

    logger.info(
        f"Engine ready: {len(graph)} permissions, manage permission "
        f"{'enabled' if config.manage_permission_enabled else 'disabled'}, "
        f"grant snapshot v{grants.version}"
    )
    return EngineContext(
        config=config,
        graph=graph,
        field_index=field_index,
        grants=grants,
        access=access,
        controller=controller,
        gateway=gateway,
    )
