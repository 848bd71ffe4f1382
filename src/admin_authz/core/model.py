"""
Controller Object Model

Minimal in-memory stand-ins for the objects the enforcement points act on:
the controller (root resource), its computers, jobs, views, and the plugin
manager. They carry just enough state to show whether a gated action ran.
"""

import logging
import threading
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Dict, Iterable, List, Optional

from .auth.resource import ROOT_URL, Resource
from .errors import FormValidationError, UnknownResource
from .system_config import SystemConfiguration

logger = logging.getLogger(__name__)

BUILT_IN_COMPUTER = "(built-in)"


class Computer(Resource):
    """An agent (or the controller's own built-in node)"""

    def __init__(self, name: str, num_executors: int = 1, exported_objects: Iterable[str] = ()):
        self.name = name
        self.url = f"computer/{name}"
        self.display_name = name
        self.num_executors = num_executors
        self._exported = list(exported_objects)

    def export_table(self) -> str:
        """Diagnostic dump of objects exported over the agent channel"""
        lines = [f"Export table for {self.name}"]
        for oid, name in enumerate(self._exported, start=1):
            lines.append(f"#{oid} {name}")
        return "\n".join(lines) + "\n"


class Job(Resource):
    """A job; may defer authorization to the resource that created it"""

    def __init__(self, name: str, owner: Optional[Resource] = None):
        self.name = name
        self.url = f"job/{name}"
        self.display_name = name
        self.owner = owner

    @property
    def authorization_delegate(self) -> Optional[Resource]:
        return self.owner


class View(Resource):
    def __init__(self, name: str):
        self.name = name
        self.url = f"view/{name}"
        self.display_name = name


# =========================================================================
# PLUGINS
# =========================================================================

class DisableStrategy(str, Enum):
    """What to do with enabled plugins that depend on the one being disabled"""
    NONE = "none"            # refuse if a mandatory dependent is enabled
    MANDATORY = "mandatory"  # also disable mandatory dependents
    ALL = "all"              # also disable optional dependents


class PluginStatus(str, Enum):
    DISABLED = "DISABLED"
    ALREADY_DISABLED = "ALREADY_DISABLED"
    ENABLED = "ENABLED"
    ALREADY_ENABLED = "ALREADY_ENABLED"
    NOT_DISABLED_DEPENDANTS = "NOT_DISABLED_DEPENDANTS"
    NO_SUCH_PLUGIN = "NO_SUCH_PLUGIN"


@dataclass
class PluginWrapper:
    """An installed plugin; ``dependencies`` maps plugin name to optional flag"""
    name: str
    version: str = "1.0"
    enabled: bool = True
    dependencies: Dict[str, bool] = field(default_factory=dict)


@dataclass
class PluginResult:
    plugin: str
    status: PluginStatus
    message: str = ""


class PluginManager:
    """Installed plugins and their dependency edges"""

    def __init__(self, plugins: Iterable[PluginWrapper] = ()):
        self._plugins: Dict[str, PluginWrapper] = {p.name: p for p in plugins}
        self._lock = threading.Lock()

    def get_plugin(self, name: str) -> Optional[PluginWrapper]:
        return self._plugins.get(name)

    def plugins(self) -> List[PluginWrapper]:
        return list(self._plugins.values())

    def install(self, plugin: PluginWrapper) -> None:
        self._plugins[plugin.name] = plugin

    def dependents(self, name: str, include_optional: bool = False) -> List[PluginWrapper]:
        """Enabled plugins depending on ``name``"""
        return [
            p for p in self._plugins.values()
            if p.enabled and name in p.dependencies
            and (include_optional or not p.dependencies[name])
        ]

    def disable(self, name: str, strategy: DisableStrategy = DisableStrategy.NONE) -> List[PluginResult]:
        """
        Disable a plugin.

        Returns:
            Results for the plugin and for every dependent the strategy touched
        """
        with self._lock:
            return self._disable(name, strategy, visited=set())

    def _disable(self, name: str, strategy: DisableStrategy, visited: set) -> List[PluginResult]:
        plugin = self._plugins.get(name)
        if plugin is None:
            return [PluginResult(name, PluginStatus.NO_SUCH_PLUGIN, f"No such plugin: {name}")]
        if name in visited:
            # Already being disabled further up a dependency cycle
            return []
        if not plugin.enabled:
            return [PluginResult(name, PluginStatus.ALREADY_DISABLED)]
        visited.add(name)

        if strategy == DisableStrategy.NONE:
            blocking = self.dependents(name)
            if blocking:
                names = ", ".join(sorted(p.name for p in blocking))
                return [PluginResult(
                    name, PluginStatus.NOT_DISABLED_DEPENDANTS,
                    f"Cannot disable {name}, enabled dependents: {names}",
                )]
            plugin.enabled = False
            logger.info(f"Disabled plugin {name}")
            return [PluginResult(name, PluginStatus.DISABLED)]

        results: List[PluginResult] = []
        include_optional = strategy == DisableStrategy.ALL
        for dependent in self.dependents(name, include_optional=include_optional):
            results.extend(self._disable(dependent.name, strategy, visited))

        plugin.enabled = False
        logger.info(f"Disabled plugin {name} (strategy={strategy.value})")
        return [PluginResult(name, PluginStatus.DISABLED)] + results

    def enable(self, name: str) -> PluginResult:
        with self._lock:
            plugin = self._plugins.get(name)
            if plugin is None:
                return PluginResult(name, PluginStatus.NO_SUCH_PLUGIN, f"No such plugin: {name}")
            if plugin.enabled:
                return PluginResult(name, PluginStatus.ALREADY_ENABLED)
            plugin.enabled = True
            logger.info(f"Enabled plugin {name}")
            return PluginResult(name, PluginStatus.ENABLED)


# =========================================================================
# CONTROLLER
# =========================================================================

class Controller(Resource):
    """
    The root resource.

    Holds the global configuration and the collections the gateways look up.
    Configuration updates replace the whole SystemConfiguration value.
    """

    url = ROOT_URL
    display_name = "Controller"

    def __init__(
        self,
        configuration: Optional[SystemConfiguration] = None,
        views: Iterable[str] = ("all",),
        computers: Iterable[Computer] = (),
        plugin_manager: Optional[PluginManager] = None,
    ):
        self.views: Dict[str, View] = {name: View(name) for name in views}
        self.computers: Dict[str, Computer] = {c.name: c for c in computers}
        self.computers.setdefault(BUILT_IN_COMPUTER, Computer(BUILT_IN_COMPUTER))
        self.jobs: Dict[str, Job] = {}
        self.plugin_manager = plugin_manager or PluginManager()
        self._config_lock = threading.Lock()
        self._configuration = configuration or SystemConfiguration()
        if self._configuration.primary_view not in self.views:
            self.add_view(self._configuration.primary_view)

    @property
    def configuration(self) -> SystemConfiguration:
        return self._configuration

    @property
    def num_executors(self) -> int:
        return self._configuration.num_executors

    @property
    def primary_view(self) -> View:
        return self.views[self._configuration.primary_view]

    def add_view(self, name: str) -> View:
        view = self.views.setdefault(name, View(name))
        return view

    def add_job(self, name: str, owner: Optional[Resource] = None) -> Job:
        job = Job(name, owner=owner)
        self.jobs[name] = job
        return job

    def get_computer(self, name: str) -> Computer:
        try:
            return self.computers[name]
        except KeyError:
            raise UnknownResource(f"No such computer: {name}") from None

    def resolve(self, url: str) -> Resource:
        """
        Find a resource by url.

        Raises:
            UnknownResource: If nothing lives at ``url``
        """
        url = url.strip("/")
        if url == ROOT_URL:
            return self
        kind, _, name = url.partition("/")
        collection = {"computer": self.computers, "job": self.jobs, "view": self.views}.get(kind)
        if collection is None or name not in collection:
            raise UnknownResource(f"No such resource: {url}")
        return collection[name]

    def validate_configuration(self, configuration: SystemConfiguration) -> None:
        """
        Raises:
            FormValidationError: If the configuration references missing objects
        """
        if configuration.primary_view not in self.views:
            raise FormValidationError("primary_view", f"no such view: {configuration.primary_view}")

    def update_configuration(self, **changes) -> SystemConfiguration:
        """Apply field changes atomically and return the new configuration"""
        with self._config_lock:
            updated = replace(self._configuration, **changes)
            self.validate_configuration(updated)
            self._configuration = updated
            return updated
