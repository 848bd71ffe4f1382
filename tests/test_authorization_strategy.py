"""
Test Authorization Strategy

Verifies decisions from the grant table: implication, groups, anonymous
handling, resource scopes and delegation.
"""

import pytest

from admin_authz.core.auth import builtin
from admin_authz.core.auth.builtin import build_default_graph
from admin_authz.core.auth.grants import GrantTable
from admin_authz.core.auth.policy import (
    AccessControl,
    GrantTableAuthorizationStrategy,
    PinnedDecisions,
    PolicyDecision,
    UnsecuredAuthorizationStrategy,
)
from admin_authz.core.auth.principal import AUTHENTICATED_SID, EVERYONE_SID, Principal, Sid
from admin_authz.core.auth.resource import Resource
from admin_authz.core.errors import ConfigurationError, UnknownPermission, UnknownResource
from admin_authz.core.model import Computer, Controller, Job

ADMINISTER_ONLY = [
    builtin.ADMINISTER,
    builtin.RUN_SCRIPTS,
    builtin.UPLOAD_PLUGINS,
    builtin.CONFIGURE_UPDATE_CENTER,
    builtin.COMPUTER_CONFIGURE,
    builtin.JOB_BUILD,
]


class TestGrantTableStrategy:

    def setup_method(self):
        self.graph = build_default_graph(manage_enabled=True)
        self.strategy = GrantTableAuthorizationStrategy(self.graph)
        self.controller = Controller()
        self.manager = Principal.of("manager")
        self.admin = Principal.of("admin")

    def test_administer_satisfies_manage(self):
        self.strategy.grant(builtin.ADMINISTER).everywhere().to_user("admin")
        assert self.strategy.has_permission(self.admin, self.controller, builtin.MANAGE)

    def test_manage_does_not_satisfy_administer_only(self):
        """Manage-only principals fail every administer-only check"""
        self.strategy.grant(builtin.MANAGE).everywhere().to_user("manager")

        for permission in ADMINISTER_ONLY:
            assert not self.strategy.has_permission(self.manager, self.controller, permission), permission
        assert self.strategy.has_permission(self.manager, self.controller, builtin.MANAGE)

    def test_manage_does_not_grant_read(self):
        self.strategy.grant(builtin.MANAGE).everywhere().to_user("manager")
        assert not self.strategy.has_permission(self.manager, self.controller, builtin.READ)

    def test_implication_over_every_pair(self):
        """Granting P satisfies Q exactly when P implies Q"""
        permissions = [p.id for p in self.graph]
        for granted in permissions:
            strategy = GrantTableAuthorizationStrategy(self.graph)
            strategy.grant(granted).everywhere().to_user("user")
            for requested in permissions:
                expected = self.graph.implies(granted, requested)
                actual = strategy.has_permission(Principal.of("user"), self.controller, requested)
                assert actual == expected, f"{granted} -> {requested}"

    def test_group_grant(self):
        self.strategy.grant(builtin.ADMINISTER).everywhere().to_group("admins")
        alice = Principal.of("alice", groups=["admins"])
        bob = Principal.of("bob", groups=["developers"])

        assert self.strategy.has_permission(alice, self.controller, builtin.RUN_SCRIPTS)
        assert not self.strategy.has_permission(bob, self.controller, builtin.RUN_SCRIPTS)

    def test_anonymous_only_gets_everyone_grants(self):
        self.strategy.grant(builtin.READ).everywhere().to_authenticated()
        anonymous = Principal.anonymous()

        assert anonymous.sids() == {Sid.user("anonymous"), EVERYONE_SID}
        assert not self.strategy.has_permission(anonymous, self.controller, builtin.READ)

        self.strategy.grant(builtin.READ).everywhere().to_everyone()
        assert self.strategy.has_permission(anonymous, self.controller, builtin.READ)

    def test_authenticated_group_is_implicit(self):
        self.strategy.grant(builtin.READ).everywhere().to_authenticated()
        assert self.strategy.has_permission(Principal.of("carol"), self.controller, builtin.READ)

    def test_system_principal_always_allowed(self):
        assert self.strategy.has_permission(Principal.system(), self.controller, builtin.RUN_SCRIPTS)

    def test_root_scope_does_not_leak_to_computers(self):
        agent = Computer("agent-1")
        self.strategy.grant(builtin.ADMINISTER).on_root().to_user("admin")

        assert self.strategy.has_permission(self.admin, self.controller, builtin.ADMINISTER)
        assert not self.strategy.has_permission(self.admin, agent, builtin.ADMINISTER)

    def test_resource_scoped_grant(self):
        agent = Computer("agent-1")
        other = Computer("agent-2")
        self.strategy.grant(builtin.COMPUTER_CONFIGURE).on(agent).to_group("ops")
        ops = Principal.of("olivia", groups=["ops"])

        assert self.strategy.has_permission(ops, agent, builtin.COMPUTER_CONFIGURE)
        assert not self.strategy.has_permission(ops, other, builtin.COMPUTER_CONFIGURE)
        assert not self.strategy.has_permission(ops, self.controller, builtin.COMPUTER_CONFIGURE)

    def test_delegated_resource_uses_owner_scope(self):
        agent = Computer("agent-1")
        job = Job("agent-maintenance", owner=agent)
        self.strategy.grant(builtin.JOB_BUILD).on(agent).to_group("ops")
        ops = Principal.of("olivia", groups=["ops"])

        assert self.strategy.has_permission(ops, job, builtin.JOB_BUILD)

        self.strategy.grant(builtin.JOB_BUILD).on(job).to_user("direct")
        assert not self.strategy.has_permission(Principal.of("direct"), job, builtin.JOB_BUILD)

    def test_delegation_loop_is_configuration_error(self):
        first = Job("first")
        second = Job("second", owner=first)
        first.owner = second

        with pytest.raises(ConfigurationError):
            self.strategy.has_permission(self.admin, first, builtin.JOB_READ)

    def test_unknown_resource_fails_loudly(self):
        with pytest.raises(UnknownResource):
            self.strategy.has_permission(self.admin, "computer/agent-1", builtin.READ)

    def test_unknown_permission_fails_loudly(self):
        with pytest.raises(UnknownPermission):
            self.strategy.has_permission(self.admin, self.controller, "Overall/Teleport")

    def test_check_returns_decision_value(self):
        self.strategy.grant(builtin.READ).everywhere().to_user("reader")
        reader = Principal.of("reader")

        assert self.strategy.check(reader, self.controller, builtin.READ) == PolicyDecision.ALLOW
        assert self.strategy.check(reader, self.controller, builtin.MANAGE) == PolicyDecision.DENY
        assert not PolicyDecision.DENY.allowed


class TestTypedSids:
    """Users and groups are separate namespaces"""

    def setup_method(self):
        self.graph = build_default_graph(manage_enabled=True)
        self.strategy = GrantTableAuthorizationStrategy(self.graph)
        self.controller = Controller()

    def test_user_named_like_group_gets_no_group_grants(self):
        self.strategy.grant(builtin.ADMINISTER).everywhere().to_group("admins")

        assert not self.strategy.has_permission(Principal.of("admins"), self.controller, builtin.ADMINISTER)
        assert self.strategy.has_permission(
            Principal.of("alice", groups=["admins"]), self.controller, builtin.ADMINISTER)

    def test_group_named_like_user_gets_no_user_grants(self):
        self.strategy.grant(builtin.ADMINISTER).everywhere().to_user("alice")

        assert not self.strategy.has_permission(
            Principal.of("bob", groups=["alice"]), self.controller, builtin.ADMINISTER)

    def test_users_named_like_builtin_groups(self):
        self.strategy.grant(builtin.READ).everywhere().to_authenticated()
        self.strategy.grant(builtin.MANAGE).everywhere().to_everyone()
        self.strategy.grant(builtin.ADMINISTER).everywhere().to_user("everyone")

        assert Principal.of("authenticated").sids() == {
            Sid.user("authenticated"), EVERYONE_SID, AUTHENTICATED_SID}
        assert self.strategy.has_permission(Principal.of("everyone"), self.controller, builtin.ADMINISTER)
        assert not self.strategy.has_permission(Principal.of("carol"), self.controller, builtin.ADMINISTER)

    def test_anonymous_id_is_the_anonymous_principal(self):
        self.strategy.grant(builtin.READ).everywhere().to_authenticated()
        anonymous = Principal.of("anonymous", groups=["admins"])

        assert anonymous.is_anonymous
        assert AUTHENTICATED_SID not in anonymous.sids()
        assert not self.strategy.has_permission(anonymous, self.controller, builtin.READ)

    def test_authorities(self):
        alice = Principal.of("alice", groups=["admins"])

        assert alice.authorities() == {"admins", "everyone", "authenticated"}
        assert Principal.anonymous().authorities() == {"everyone"}


class TestManagePermissionDisabled:
    """Without the feature flag a Manage grant is inert and Manage checks need Administer"""

    def setup_method(self):
        self.graph = build_default_graph(manage_enabled=False)
        self.strategy = GrantTableAuthorizationStrategy(self.graph)
        self.controller = Controller()

    def test_manage_grant_does_not_satisfy_manage_check(self):
        self.strategy.grant(builtin.MANAGE).everywhere().to_user("manager")
        assert not self.strategy.has_permission(Principal.of("manager"), self.controller, builtin.MANAGE)

    def test_administer_still_satisfies_manage_check(self):
        self.strategy.grant(builtin.ADMINISTER).everywhere().to_user("admin")
        assert self.strategy.has_permission(Principal.of("admin"), self.controller, builtin.MANAGE)


class TestAccessControl:

    def test_strategy_swap(self):
        graph = build_default_graph()
        controller = Controller()
        access = AccessControl(GrantTableAuthorizationStrategy(graph))
        anonymous = Principal.anonymous()

        assert not access.has_permission(anonymous, controller, builtin.ADMINISTER)

        access.set_strategy(UnsecuredAuthorizationStrategy(graph))
        assert access.has_permission(anonymous, controller, builtin.ADMINISTER)
        assert access.check(anonymous, controller, builtin.RUN_SCRIPTS) == PolicyDecision.ALLOW

    def test_unsecured_still_validates_inputs(self):
        strategy = UnsecuredAuthorizationStrategy(build_default_graph())
        with pytest.raises(UnknownPermission):
            strategy.has_permission(Principal.anonymous(), Controller(), "Overall/Teleport")
        with pytest.raises(UnknownResource):
            strategy.has_permission(Principal.anonymous(), object(), builtin.READ)

    def test_custom_resource_without_delegate(self):
        class Folder(Resource):
            url = "job/folder"

        strategy = GrantTableAuthorizationStrategy(build_default_graph())
        strategy.grant(builtin.JOB_READ).on(Folder()).to_user("dev")
        assert strategy.has_permission(Principal.of("dev"), Folder(), builtin.JOB_READ)


class TestPinnedDecisions:
    """A pinned decision source keeps answering from one policy version"""

    def setup_method(self):
        self.graph = build_default_graph(manage_enabled=True)
        self.table = GrantTable(self.graph)
        self.access = AccessControl(GrantTableAuthorizationStrategy(self.graph, self.table))
        self.controller = Controller()
        self.manager = Principal.of("mary", groups=["managers"])
        self.table.grant(builtin.MANAGE, builtin.READ).everywhere().to_group("managers")

    def test_pinned_ignores_later_grant_changes(self):
        pinned = self.access.pinned()
        self.table.replace([])

        assert pinned.snapshot.version == 1
        assert pinned.has_permission(self.manager, self.controller, builtin.MANAGE)
        assert pinned.check(self.manager, self.controller, builtin.READ) == PolicyDecision.ALLOW
        assert not self.access.has_permission(self.manager, self.controller, builtin.MANAGE)

    def test_pinned_ignores_later_strategy_swap(self):
        pinned = self.access.pinned()
        self.access.set_strategy(UnsecuredAuthorizationStrategy(self.graph))

        assert not pinned.has_permission(self.manager, self.controller, builtin.ADMINISTER)
        assert self.access.has_permission(self.manager, self.controller, builtin.ADMINISTER)

    def test_pinning_is_idempotent(self):
        pinned = self.access.pinned()
        assert isinstance(pinned, PinnedDecisions)
        assert pinned.pinned() is pinned
        assert pinned.graph is self.graph
