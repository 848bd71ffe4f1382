"""
Test Field Authorization Index

Verifies startup validation of field policies and the visible/editable sets
computed for different principals.
"""

import pytest

from admin_authz.core.auth import builtin
from admin_authz.core.auth.builtin import build_default_graph
from admin_authz.core.auth.policy import AccessControl, GrantTableAuthorizationStrategy
from admin_authz.core.auth.principal import Principal
from admin_authz.core.errors import ConfigurationError, InconsistentFieldPolicy, UnknownPermission
from admin_authz.core.field_policy import (
    EntityFieldPolicy,
    FieldAuthorizationIndex,
    Mutability,
    Visibility,
    field_rule,
)
from admin_authz.core.model import Controller
from admin_authz.core.system_config import SYSTEM_FIELD_POLICY

ADMINISTER_ONLY_FIELDS = {
    "system_message",
    "use_project_naming_strategy",
    "project_naming_pattern",
    "primary_view",
    "num_executors",
    "labels",
    "global_properties",
    "administrative_monitors",
    "shell",
}
MANAGE_FIELDS = {"quiet_period", "scm_checkout_retry_count", "root_url", "admin_address"}


class TestFieldPolicyValidation:

    def setup_method(self):
        self.graph = build_default_graph(manage_enabled=True)
        self.index = FieldAuthorizationIndex(self.graph)

    def test_edit_weaker_than_view_is_rejected(self):
        policy = EntityFieldPolicy("widget", builtin.READ, (
            field_rule("secret", view=builtin.ADMINISTER, edit=builtin.READ),
        ))
        with pytest.raises(InconsistentFieldPolicy) as exc_info:
            self.index.declare(policy)
        assert exc_info.value.field_id == "secret"

    def test_unrelated_edit_and_view_rejected(self):
        """Manage does not imply Read, so a Manage-editable Read-visible field is inconsistent"""
        policy = EntityFieldPolicy("widget", builtin.READ, (
            field_rule("name", view=builtin.READ, edit=builtin.MANAGE),
        ))
        with pytest.raises(InconsistentFieldPolicy):
            self.index.declare(policy)

    def test_inconsistent_policy_is_a_configuration_error(self):
        assert issubclass(InconsistentFieldPolicy, ConfigurationError)

    def test_edit_stronger_than_view_accepted(self):
        policy = EntityFieldPolicy("widget", builtin.READ, (
            field_rule("name", view=builtin.READ, edit=builtin.ADMINISTER),
        ))
        assert self.index.declare(policy) is policy

    def test_duplicate_field(self):
        policy = EntityFieldPolicy("widget", builtin.READ, (
            field_rule("name", builtin.READ),
            field_rule("name", builtin.ADMINISTER),
        ))
        with pytest.raises(ConfigurationError):
            self.index.declare(policy)

    def test_duplicate_entity(self):
        self.index.declare(EntityFieldPolicy("widget", builtin.READ))
        with pytest.raises(ConfigurationError):
            self.index.declare(EntityFieldPolicy("widget", builtin.READ))

    def test_unknown_permission(self):
        policy = EntityFieldPolicy("widget", builtin.READ, (field_rule("name", "Overall/Nope"),))
        with pytest.raises(UnknownPermission):
            self.index.declare(policy)

    def test_frozen_index(self):
        self.index.freeze()
        with pytest.raises(ConfigurationError):
            self.index.declare(EntityFieldPolicy("widget", builtin.READ))

    def test_unknown_entity_type(self):
        with pytest.raises(ConfigurationError):
            self.index.policy("nothing")

    def test_builtin_system_policy_is_consistent(self):
        self.index.declare(SYSTEM_FIELD_POLICY)
        assert set(SYSTEM_FIELD_POLICY.field_ids) == ADMINISTER_ONLY_FIELDS | MANAGE_FIELDS


class TestFieldSets:

    def setup_method(self):
        self.graph = build_default_graph(manage_enabled=True)
        self.strategy = GrantTableAuthorizationStrategy(self.graph)
        self.access = AccessControl(self.strategy)
        self.controller = Controller()
        self.index = FieldAuthorizationIndex(self.graph)
        self.index.declare(SYSTEM_FIELD_POLICY)
        self.index.declare(EntityFieldPolicy("job", builtin.READ, (
            field_rule("description", view=builtin.READ, edit=builtin.ADMINISTER),
            field_rule("triggers", view=builtin.MANAGE),
        )))
        self.index.freeze()

    def test_manage_only_sees_manage_fields(self):
        self.strategy.grant(builtin.MANAGE, builtin.READ).everywhere().to_user("manager")
        manager = Principal.of("manager")

        visible = self.index.fields_visible_to(self.access, manager, self.controller, "system")
        editable = self.index.fields_editable_to(self.access, manager, self.controller, "system")

        assert visible == MANAGE_FIELDS
        assert editable == MANAGE_FIELDS

    def test_administer_sees_everything(self):
        self.strategy.grant(builtin.ADMINISTER).everywhere().to_user("admin")
        admin = Principal.of("admin")

        visible = self.index.fields_visible_to(self.access, admin, self.controller, "system")
        editable = self.index.fields_editable_to(self.access, admin, self.controller, "system")

        assert visible == ADMINISTER_ONLY_FIELDS | MANAGE_FIELDS
        assert editable == visible

    def test_read_only_state(self):
        self.strategy.grant(builtin.READ).everywhere().to_user("reader")
        states = self.index.field_states(self.access, Principal.of("reader"), self.controller, "job")

        assert states["description"].visibility == Visibility.VISIBLE
        assert states["description"].mutability == Mutability.READ_ONLY
        assert not states["description"].editable
        assert states["triggers"].visibility == Visibility.HIDDEN
        assert states["triggers"].mutability is None

    def test_editable_is_subset_of_visible(self):
        self.strategy.grant(builtin.READ).everywhere().to_user("reader")
        self.strategy.grant(builtin.MANAGE).everywhere().to_user("manager")
        self.strategy.grant(builtin.ADMINISTER).everywhere().to_user("admin")

        for name in ("reader", "manager", "admin", "nobody"):
            principal = Principal.of(name)
            for entity_type in ("system", "job"):
                visible = self.index.fields_visible_to(self.access, principal, self.controller, entity_type)
                editable = self.index.fields_editable_to(self.access, principal, self.controller, entity_type)
                assert editable <= visible, (name, entity_type)

    def test_no_grants_sees_nothing(self):
        visible = self.index.fields_visible_to(self.access, Principal.anonymous(), self.controller, "system")
        assert visible == frozenset()
