"""
Built-in Permissions

Declarations for the controller's permission groups. The identifiers are
module constants so callers can refer to them before a graph exists; the
graph itself is built by build_default_graph() at startup.

Manage is the interesting one: it is implied by Administer but does not imply
anything. A manage-only principal can reach the configure page and edit the
manage-safe fields, and nothing that can run code on the controller.
"""

from .permission import PermissionGraph, PermissionId

# Overall
ADMINISTER = PermissionId("Overall", "Administer")
READ = PermissionId("Overall", "Read")
MANAGE = PermissionId("Overall", "Manage")
RUN_SCRIPTS = PermissionId("Overall", "RunScripts")
UPLOAD_PLUGINS = PermissionId("Overall", "UploadPlugins")
CONFIGURE_UPDATE_CENTER = PermissionId("Overall", "ConfigureUpdateCenter")

# Agents
COMPUTER_CONFIGURE = PermissionId("Agent", "Configure")
COMPUTER_CONNECT = PermissionId("Agent", "Connect")
COMPUTER_DISCONNECT = PermissionId("Agent", "Disconnect")

# Jobs
JOB_READ = PermissionId("Job", "Read")
JOB_BUILD = PermissionId("Job", "Build")
JOB_CONFIGURE = PermissionId("Job", "Configure")

# Views
VIEW_READ = PermissionId("View", "Read")
VIEW_CONFIGURE = PermissionId("View", "Configure")


def declare_builtin_permissions(graph: PermissionGraph, manage_enabled: bool = False) -> PermissionGraph:
    """
    Declare the built-in permissions on ``graph``.

    Args:
        graph: Unfrozen graph to populate
        manage_enabled: Feature flag for Overall/Manage. When off, checks for
            Manage fall back to Administer.
    """
    graph.declare("Overall", "Administer", "Full control of the controller")
    graph.declare("Overall", "Read", "Read access to the controller", implied_by=ADMINISTER)
    graph.declare(
        "Overall", "Manage",
        "Configure the controller without access to code execution",
        implied_by=ADMINISTER,
        enabled=manage_enabled,
    )
    graph.declare("Overall", "RunScripts", "Run scripts on the controller", implied_by=ADMINISTER)
    graph.declare("Overall", "UploadPlugins", "Upload plugins", implied_by=ADMINISTER)
    graph.declare("Overall", "ConfigureUpdateCenter", "Configure update sites", implied_by=ADMINISTER)

    graph.declare("Agent", "Configure", "Configure agents", implied_by=ADMINISTER)
    graph.declare("Agent", "Connect", "Connect agents", implied_by=ADMINISTER)
    graph.declare("Agent", "Disconnect", "Disconnect agents", implied_by=ADMINISTER)

    graph.declare("Job", "Read", "See jobs", implied_by=READ)
    graph.declare("Job", "Build", "Start builds", implied_by=ADMINISTER)
    graph.declare("Job", "Configure", "Change job configuration", implied_by=ADMINISTER)

    graph.declare("View", "Read", "See views", implied_by=READ)
    graph.declare("View", "Configure", "Change view configuration", implied_by=ADMINISTER)
    return graph


def build_default_graph(manage_enabled: bool = False) -> PermissionGraph:
    """Build and freeze the process-wide permission graph"""
    return declare_builtin_permissions(PermissionGraph(), manage_enabled=manage_enabled).freeze()
