"""
Test Engine Configuration

Verifies YAML loading, environment interpolation, the Manage feature flag
override, and that bootstrap wires configured grants into decisions.
"""

import pytest
import yaml

from admin_authz.config.loader import interpolate_env_vars, load_config, load_config_from_file
from admin_authz.config.schema import MANAGE_PERMISSION_ENV, EngineConfig, GrantConfig, PluginConfig
from admin_authz.core.auth import builtin
from admin_authz.core.auth.principal import Principal
from admin_authz.core.bootstrap import bootstrap
from admin_authz.core.errors import ConfigurationError, UnknownPermission

CONFIG_YAML = """
manage_permission_enabled: "${TEST_MANAGE:-true}"
log_level: debug

web:
  port: 9090

grants:
  - permissions: ["Overall/Administer"]
    groups: ["${TEST_ADMIN_GROUP:-admins}"]
  - permissions: ["Overall/Manage", "Overall/Read"]
    to: "group:managers"
  - permissions: "Agent/Configure"
    groups: ["ops"]
    scope: "computer/agent-1"

controller:
  views: ["all", "ops"]
  computers: ["agent-1"]
  plugins:
    - name: dependee
    - name: depender
      dependencies: ["dependee"]
  system:
    num_executors: 4
    quiet_period: "10"
    primary_view: ops
"""


class TestConfigLoading:

    def setup_method(self):
        self.environ_keys = ["TEST_MANAGE", "TEST_ADMIN_GROUP", MANAGE_PERMISSION_ENV]

    def write_config(self, tmp_path, text=CONFIG_YAML):
        path = tmp_path / "authz.yaml"
        path.write_text(text)
        return path

    def test_load_from_file(self, tmp_path, monkeypatch):
        for key in self.environ_keys:
            monkeypatch.delenv(key, raising=False)
        config = load_config_from_file(self.write_config(tmp_path))

        assert config.manage_permission_enabled is True
        assert config.log_level == "DEBUG"
        assert config.web.port == 9090
        assert config.web.host == "127.0.0.1"
        assert config.working_dir == tmp_path.absolute()
        assert config.grants[0].groups == ["admins"]
        assert config.grants[0].to == []
        assert config.grants[1].to == ["group:managers"]
        assert config.grants[1].scope == ["*"]
        assert config.grants[2].permissions == ["Agent/Configure"]
        assert config.grants[2].scope == ["computer/agent-1"]

    def test_plugin_dependency_list_means_mandatory(self, tmp_path, monkeypatch):
        monkeypatch.delenv(MANAGE_PERMISSION_ENV, raising=False)
        config = load_config_from_file(self.write_config(tmp_path))

        depender = config.controller.plugins[1]
        assert isinstance(depender, PluginConfig)
        assert depender.dependencies == {"dependee": False}

    def test_env_interpolation(self, tmp_path, monkeypatch):
        monkeypatch.setenv("TEST_MANAGE", "false")
        monkeypatch.setenv("TEST_ADMIN_GROUP", "root-admins")
        monkeypatch.delenv(MANAGE_PERMISSION_ENV, raising=False)

        config = load_config_from_file(self.write_config(tmp_path))

        assert config.manage_permission_enabled is False
        assert config.grants[0].groups == ["root-admins"]

    def test_required_env_var_missing(self, monkeypatch):
        monkeypatch.delenv("TEST_REQUIRED", raising=False)
        with pytest.raises(KeyError):
            interpolate_env_vars({"value": ["${TEST_REQUIRED}"]})

    def test_env_override_of_manage_flag(self, tmp_path, monkeypatch):
        monkeypatch.setenv(MANAGE_PERMISSION_ENV, "off")
        config = load_config_from_file(self.write_config(tmp_path))
        assert config.manage_permission_enabled is False

    def test_apply_env_overrides_with_explicit_environ(self):
        config = EngineConfig().apply_env_overrides({MANAGE_PERMISSION_ENV: "yes"})
        assert config.manage_permission_enabled is True

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config_from_file(tmp_path / "missing.yaml")

    def test_empty_file_uses_defaults(self, tmp_path, monkeypatch):
        monkeypatch.delenv(MANAGE_PERMISSION_ENV, raising=False)
        config = load_config_from_file(self.write_config(tmp_path, ""))

        assert config.manage_permission_enabled is False
        assert config.grants == []
        assert config.controller.views == ["all"]

    def test_null_sections_use_defaults(self, tmp_path, monkeypatch):
        monkeypatch.delenv(MANAGE_PERMISSION_ENV, raising=False)
        text = "grants:\ncontroller:\n  views: null\n  computers: null\n  plugins: null\n  system: null\n"
        config = load_config_from_file(self.write_config(tmp_path, text))

        assert config.grants == []
        assert config.controller.views == ["all"]
        assert config.controller.computers == []
        assert config.controller.plugins == []
        assert config.controller.system == {}

    def test_top_level_must_be_mapping(self, tmp_path):
        with pytest.raises(yaml.YAMLError):
            load_config_from_file(self.write_config(tmp_path, "- just\n- a list\n"))

    def test_malformed_yaml(self, tmp_path):
        with pytest.raises(yaml.YAMLError):
            load_config_from_file(self.write_config(tmp_path, "grants: [unclosed\n"))

    def test_grant_recipients_round_trip_through_to_dict(self):
        grant = GrantConfig.from_dict({"permissions": "Overall/Read", "users": "alice", "to": ["group:devs"]})

        assert grant.to_dict() == {
            "permissions": ["Overall/Read"],
            "users": ["alice"],
            "groups": [],
            "to": ["group:devs"],
            "scope": ["*"],
        }

    def test_search_in_working_dir(self, tmp_path, monkeypatch):
        monkeypatch.delenv(MANAGE_PERMISSION_ENV, raising=False)
        (tmp_path / "config").mkdir()
        (tmp_path / "config" / "authz.yaml").write_text(CONFIG_YAML)

        config = load_config(working_dir=tmp_path)
        assert config.web.port == 9090

    def test_defaults_when_nothing_found(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        monkeypatch.delenv(MANAGE_PERMISSION_ENV, raising=False)

        config = load_config()

        assert config.manage_permission_enabled is False
        assert config.working_dir == tmp_path


class TestBootstrapFromConfig:

    def test_configured_grants_drive_decisions(self, tmp_path, monkeypatch):
        for key in ("TEST_MANAGE", "TEST_ADMIN_GROUP", MANAGE_PERMISSION_ENV):
            monkeypatch.delenv(key, raising=False)
        path = tmp_path / "authz.yaml"
        path.write_text(CONFIG_YAML)
        context = bootstrap(load_config_from_file(path))

        access = context.access
        controller = context.controller
        manager = Principal.of("mary", groups=["managers"])
        ops = Principal.of("olivia", groups=["ops"])

        assert access.has_permission(manager, controller, builtin.MANAGE)
        assert not access.has_permission(manager, controller, builtin.ADMINISTER)
        assert access.has_permission(ops, controller.get_computer("agent-1"), builtin.COMPUTER_CONFIGURE)
        assert not access.has_permission(ops, controller, builtin.COMPUTER_CONFIGURE)

    def test_seeded_controller_state(self, tmp_path, monkeypatch):
        monkeypatch.delenv(MANAGE_PERMISSION_ENV, raising=False)
        path = tmp_path / "authz.yaml"
        path.write_text(CONFIG_YAML)
        controller = bootstrap(load_config_from_file(path)).controller

        assert controller.num_executors == 4
        assert controller.configuration.quiet_period == 10
        assert controller.primary_view.name == "ops"
        assert "agent-1" in controller.computers
        assert controller.plugin_manager.get_plugin("depender").dependencies == {"dependee": False}

    def test_unknown_permission_in_grants_is_fatal(self):
        config = EngineConfig(grants=[GrantConfig(permissions=["Overall/Teleport"], groups=["x"])])
        with pytest.raises(UnknownPermission):
            bootstrap(config)

    def test_unprefixed_recipient_is_fatal(self):
        config = EngineConfig(grants=[GrantConfig(permissions=["Overall/Read"], to=["admins"])])
        with pytest.raises(ConfigurationError):
            bootstrap(config)

    def test_user_named_like_configured_group_gets_nothing(self):
        context = bootstrap(EngineConfig(grants=[GrantConfig(permissions=["Overall/Administer"], groups=["admins"])]))

        impostor = Principal.of("admins")
        assert not context.access.has_permission(impostor, context.controller, builtin.ADMINISTER)

    def test_default_config_denies_everything(self):
        context = bootstrap(EngineConfig())
        admin = Principal.of("alice", groups=["admins"])
        assert not context.access.has_permission(admin, context.controller, builtin.READ)
