"""
Access Enforcement Gateway

The single choke point used by command handlers and form handlers. Two
modes share one decision function:

- All-or-nothing: a command needs one permission on one resource. On deny it
  returns exit code 6 and the command body never runs.
- Filtered view: each field of a configuration entity is independently
  hidden, visible read-only, or visible editable. Rendering drops hidden
  fields entirely; submission applies editable fields and silently discards
  the rest.

Exit codes (stable):
    0   OK
    1   GENERIC_ERROR            unexpected failure inside the command
    2   MALFORMED_INPUT          arguments could not be parsed
    3   ILLEGAL_ARGUMENT         arguments parsed but name nothing usable
    4   ILLEGAL_STATE            command cannot run in the current state
    6   ACCESS_DENIED            principal lacks the required permission
    16  NOT_DISABLED_DEPENDANTS  a plugin was kept because dependents are enabled
    17  NO_SUCH_PLUGIN           a named plugin is not installed
"""

import io
import logging
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Mapping, Optional, Sequence

from .auth.permission import PermissionLike
from .auth.policy import AccessControl, PinnedDecisions, PolicyDecision
from .auth.principal import Principal
from .auth.resource import Resource
from .errors import (
    AccessDenied,
    CommandError,
    CommandUsageError,
    ConfigurationError,
    UnknownResource,
)
from .field_policy import FieldAuthorizationIndex

if TYPE_CHECKING:
    from .commands import CLICommand
    from .model import Controller

logger = logging.getLogger(__name__)

DENIED_MESSAGE = "ERROR: Access denied"


class ExitCode(IntEnum):
    OK = 0
    GENERIC_ERROR = 1
    MALFORMED_INPUT = 2
    ILLEGAL_ARGUMENT = 3
    ILLEGAL_STATE = 4
    ACCESS_DENIED = 6
    NOT_DISABLED_DEPENDANTS = 16
    NO_SUCH_PLUGIN = 17


class EnforcementState(str, Enum):
    """Requested -> Evaluating -> {Granted -> Executed, Denied}"""
    REQUESTED = "requested"
    EVALUATING = "evaluating"
    GRANTED = "granted"
    DENIED = "denied"
    EXECUTED = "executed"


@dataclass
class CommandContext:
    """What a running command gets to see"""
    principal: Principal
    controller: "Controller"
    gateway: "AccessEnforcementGateway"
    stdout: io.StringIO = field(default_factory=io.StringIO)
    stderr: io.StringIO = field(default_factory=io.StringIO)


@dataclass
class CommandResult:
    """Outcome of one gated command invocation"""
    exit_code: int
    stdout: str = ""
    stderr: str = ""
    state: EnforcementState = EnforcementState.EXECUTED
    decision: Optional[PolicyDecision] = None

    @property
    def succeeded(self) -> bool:
        return self.exit_code == ExitCode.OK


@dataclass(frozen=True)
class EntityBinding:
    """
    How the gateway reads, parses and stores one entity type.

    Args:
        load: Current entity value for a resource
        parse: Coerce a submitted value for one field
        store: Persist accepted field changes, return the updated entity
        format: Render a field value as text
    """
    entity_type: str
    load: Callable[[Resource], Any]
    parse: Callable[[str, Any], Any]
    store: Callable[[Resource, Dict[str, Any]], Any]
    format: Callable[[Any], str] = str


@dataclass(frozen=True)
class RenderedField:
    field_id: str
    label: str
    value: Any
    text: str
    editable: bool


@dataclass(frozen=True)
class RenderedView:
    """Filtered snapshot of an entity; hidden fields are simply absent"""
    entity_type: str
    fields: List[RenderedField]

    @property
    def field_ids(self) -> List[str]:
        return [f.field_id for f in self.fields]

    def get(self, field_id: str) -> Optional[RenderedField]:
        for rendered in self.fields:
            if rendered.field_id == field_id:
                return rendered
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "entity_type": self.entity_type,
            "fields": {f.field_id: {"value": f.text, "editable": f.editable} for f in self.fields},
        }


class AccessEnforcementGateway:
    """
    Enforcement point for commands and configuration forms.

    Args:
        access: Holder of the active authorization strategy
        field_index: Field policies for configuration entities
        controller: Root resource commands act on
    """

    def __init__(
        self,
        access: AccessControl,
        field_index: FieldAuthorizationIndex,
        controller: "Controller",
    ):
        self.access = access
        self.field_index = field_index
        self.controller = controller
        self._bindings: Dict[str, EntityBinding] = {}

    def bind_entity(self, binding: EntityBinding) -> None:
        # The policy must exist before anything can be bound to it
        self.field_index.policy(binding.entity_type)
        self._bindings[binding.entity_type] = binding

    def _binding(self, entity_type: str) -> EntityBinding:
        try:
            return self._bindings[entity_type]
        except KeyError:
            raise ConfigurationError(f"No entity binding for {entity_type}") from None

    # =========================================================================
    # DECISIONS
    # =========================================================================

    def check(self, principal: Principal, resource: Resource, permission: PermissionLike) -> PolicyDecision:
        """Granted or denied, as a value"""
        return self.access.check(principal, resource, permission)

    def require(
        self,
        principal: Principal,
        resource: Resource,
        permission: PermissionLike,
        decisions: Optional[PinnedDecisions] = None,
    ) -> None:
        """
        Raises:
            AccessDenied: If ``principal`` lacks ``permission`` on ``resource``
        """
        source = decisions if decisions is not None else self.access
        if not source.has_permission(principal, resource, permission):
            logger.warning(f"Access denied: {principal.principal_id} lacks {permission} on {resource!r}")
            raise AccessDenied(permission)

    # =========================================================================
    # ALL-OR-NOTHING (COMMANDS)
    # =========================================================================

    def invoke(self, command: "CLICommand", principal: Principal, args: Sequence[str] = ()) -> CommandResult:
        """
        Run a command behind its permission gate.

        The command body is only reached once the decision is ALLOW.
        """
        ctx = CommandContext(principal=principal, controller=self.controller, gateway=self)
        state = EnforcementState.REQUESTED
        logger.debug(f"Command {command.name} requested by {principal.principal_id}")

        try:
            parsed = command.parse_args(list(args))
            target = command.target(self.controller, parsed)
        except CommandUsageError as e:
            return CommandResult(ExitCode.MALFORMED_INPUT, stderr=f"ERROR: {e}\n", state=state)
        except UnknownResource as e:
            # Unknown targets look the same as real ones to callers without the permission
            if self._denied_at_root(command, principal):
                return self._denied(command, principal, self.controller)
            return CommandResult(ExitCode.ILLEGAL_ARGUMENT, stderr=f"ERROR: {e}\n", state=state)

        state = EnforcementState.EVALUATING
        decision = PolicyDecision.ALLOW
        if command.required_permission is not None:
            decision = self.check(principal, target, command.required_permission)

        if decision == PolicyDecision.DENY:
            return self._denied(command, principal, target)

        state = EnforcementState.GRANTED
        try:
            exit_code = command.run(ctx, parsed)
        except CommandError as e:
            ctx.stderr.write(f"ERROR: {e}\n")
            exit_code = e.exit_code if e.exit_code is not None else ExitCode.GENERIC_ERROR
        except Exception:
            logger.exception(f"Command {command.name} failed")
            ctx.stderr.write(f"ERROR: Unexpected exception occurred while performing {command.name} command.\n")
            exit_code = ExitCode.GENERIC_ERROR

        return CommandResult(
            int(exit_code),
            stdout=ctx.stdout.getvalue(),
            stderr=ctx.stderr.getvalue(),
            state=EnforcementState.EXECUTED,
            decision=decision,
        )

    def _denied_at_root(self, command: "CLICommand", principal: Principal) -> bool:
        permission = command.required_permission
        return permission is not None and not self.access.has_permission(principal, self.controller, permission)

    def _denied(self, command: "CLICommand", principal: Principal, target: Resource) -> CommandResult:
        logger.warning(
            f"Command {command.name} denied for {principal.principal_id} "
            f"(requires {command.required_permission} on {target!r})"
        )
        return CommandResult(
            ExitCode.ACCESS_DENIED,
            stderr=DENIED_MESSAGE + "\n",
            state=EnforcementState.DENIED,
            decision=PolicyDecision.DENY,
        )

    # =========================================================================
    # FILTERED VIEW (FORMS)
    # =========================================================================

    def render_view(self, principal: Principal, resource: Resource, entity_type: str) -> RenderedView:
        """
        Filtered snapshot of an entity for ``principal``.

        The page gate and every field are decided against one policy snapshot.

        Raises:
            AccessDenied: If the entity's access permission is not held
        """
        policy = self.field_index.policy(entity_type)
        binding = self._binding(entity_type)
        decisions = self.access.pinned()
        self.require(principal, resource, policy.access_permission, decisions)

        states = self.field_index.field_states(decisions, principal, resource, entity_type)
        entity = binding.load(resource)
        rendered = []
        for record in policy.fields:
            state = states[record.field_id]
            if not state.visible:
                continue
            value = getattr(entity, record.field_id)
            rendered.append(RenderedField(
                field_id=record.field_id,
                label=record.label or record.field_id,
                value=value,
                text=binding.format(value),
                editable=state.editable,
            ))
        return RenderedView(entity_type=entity_type, fields=rendered)

    def apply_submission(
        self,
        principal: Principal,
        resource: Resource,
        entity_type: str,
        submitted: Mapping[str, Any],
    ) -> Any:
        """
        Apply a form submission, keeping only fields the principal may edit.

        Values for fields that are not editable are dropped without failing
        the submission; keys that are not fields at all (buttons, tokens)
        are ignored.

        Raises:
            AccessDenied: If the entity's access permission is not held
            FormValidationError: If an editable value is malformed
        """
        policy = self.field_index.policy(entity_type)
        binding = self._binding(entity_type)
        decisions = self.access.pinned()
        self.require(principal, resource, policy.access_permission, decisions)

        editable = self.field_index.fields_editable_to(decisions, principal, resource, entity_type)
        known = set(policy.field_ids)

        accepted: Dict[str, Any] = {}
        discarded: List[str] = []
        for field_id, value in submitted.items():
            if field_id not in known:
                continue
            if field_id not in editable:
                discarded.append(field_id)
                continue
            accepted[field_id] = binding.parse(field_id, value)

        if discarded:
            logger.info(
                f"Discarded {len(discarded)} non-editable field(s) from {principal.principal_id} "
                f"on {entity_type}: {', '.join(sorted(discarded))}"
            )

        if not accepted:
            return binding.load(resource)

        updated = binding.store(resource, accepted)
        logger.info(f"{principal.principal_id} updated {entity_type}: {', '.join(sorted(accepted))}")
        return updated


__all__ = [
    "AccessEnforcementGateway",
    "CommandContext",
    "CommandResult",
    "EntityBinding",
    "EnforcementState",
    "ExitCode",
    "RenderedField",
    "RenderedView",
]
