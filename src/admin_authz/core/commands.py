"""
Gated Commands

Each command declares the permission it needs and the resource the check
is made against; the gateway evaluates that before run() is ever called.
Argument parsing uses argparse, with parser errors turned into
CommandUsageError instead of exiting the process.
"""

import argparse
import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Type

from .auth import builtin
from .auth.permission import PermissionId
from .auth.resource import Resource
from .errors import CommandError, CommandUsageError, FormValidationError
from .gateway import CommandContext, ExitCode
from .model import BUILT_IN_COMPUTER, Controller, DisableStrategy, PluginStatus

logger = logging.getLogger(__name__)


class CommandArgumentParser(argparse.ArgumentParser):
    """ArgumentParser that raises instead of calling sys.exit()"""

    def error(self, message):
        raise CommandUsageError(f"{message}\n{self.format_usage().strip()}")

    def exit(self, status=0, message=None):
        raise CommandUsageError(message.strip() if message else f"exited with status {status}")


class CLICommand(ABC):
    """
    Base class for gated commands.

    Subclasses set ``name``, ``description`` and ``required_permission``
    (None means no check), add their arguments, and implement run().
    """

    name: str = ""
    description: str = ""
    required_permission: Optional[PermissionId] = builtin.READ

    def build_parser(self) -> CommandArgumentParser:
        parser = CommandArgumentParser(prog=self.name, description=self.description, add_help=False)
        self.add_arguments(parser)
        return parser

    def add_arguments(self, parser: argparse.ArgumentParser) -> None:
        pass

    def parse_args(self, args: List[str]) -> argparse.Namespace:
        return self.build_parser().parse_args(args)

    def target(self, controller: Controller, args: argparse.Namespace) -> Resource:
        """Resource the permission is checked against"""
        return controller

    @abstractmethod
    def run(self, ctx: CommandContext, args: argparse.Namespace) -> int:
        """Execute the command; only called after the permission check passed"""


class WhoAmICommand(CLICommand):
    name = "who-am-i"
    description = "Reports your credential and permissions."
    required_permission = None

    def run(self, ctx: CommandContext, args: argparse.Namespace) -> int:
        principal = ctx.principal
        ctx.stdout.write(f"Authenticated as: {principal.principal_id}\n")
        ctx.stdout.write("Authorities:\n")
        for name in sorted(principal.authorities()):
            ctx.stdout.write(f"  {name}\n")
        return ExitCode.OK


class DisablePluginCommand(CLICommand):
    """
    Disable one or more plugins.

    Exit codes: 0 when every plugin ended up disabled, 16 if a plugin was
    kept because enabled plugins depend on it, 17 if a name is not installed.
    """

    name = "disable-plugin"
    description = "Disable one or more installed plugins."
    required_permission = builtin.ADMINISTER

    def add_arguments(self, parser: argparse.ArgumentParser) -> None:
        parser.add_argument("plugins", nargs="+", metavar="PLUGIN")
        parser.add_argument(
            "--strategy", "-strategy",
            choices=[s.value for s in DisableStrategy],
            default=DisableStrategy.NONE.value,
            help="How to handle enabled dependents (default: none)",
        )
        parser.add_argument("--quiet", "-quiet", action="store_true", help="Only print errors")

    def run(self, ctx: CommandContext, args: argparse.Namespace) -> int:
        manager = ctx.controller.plugin_manager
        strategy = DisableStrategy(args.strategy)
        exit_code = ExitCode.OK

        for name in args.plugins:
            for result in manager.disable(name, strategy):
                failed = result.status in (PluginStatus.NOT_DISABLED_DEPENDANTS, PluginStatus.NO_SUCH_PLUGIN)
                if failed or not args.quiet:
                    line = f"{result.plugin} ({result.status.value})"
                    if result.message:
                        line += f": {result.message}"
                    (ctx.stderr if failed else ctx.stdout).write(line + "\n")

                if exit_code == ExitCode.OK:
                    if result.status == PluginStatus.NOT_DISABLED_DEPENDANTS:
                        exit_code = ExitCode.NOT_DISABLED_DEPENDANTS
                    elif result.status == PluginStatus.NO_SUCH_PLUGIN:
                        exit_code = ExitCode.NO_SUCH_PLUGIN
        return exit_code


class EnablePluginCommand(CLICommand):
    name = "enable-plugin"
    description = "Enable one or more installed plugins."
    required_permission = builtin.ADMINISTER

    def add_arguments(self, parser: argparse.ArgumentParser) -> None:
        parser.add_argument("plugins", nargs="+", metavar="PLUGIN")

    def run(self, ctx: CommandContext, args: argparse.Namespace) -> int:
        manager = ctx.controller.plugin_manager
        missing = []
        for name in args.plugins:
            result = manager.enable(name)
            if result.status == PluginStatus.NO_SUCH_PLUGIN:
                missing.append(name)
            else:
                ctx.stdout.write(f"{result.plugin} ({result.status.value})\n")
        if missing:
            raise CommandError(f"No such plugin: {', '.join(missing)}", ExitCode.NO_SUCH_PLUGIN)
        return ExitCode.OK


class DumpExportTableCommand(CLICommand):
    """Diagnostic dump of a computer's export table; administrators only"""

    name = "dump-export-table"
    description = "Print the export table of a computer."
    required_permission = builtin.ADMINISTER

    def add_arguments(self, parser: argparse.ArgumentParser) -> None:
        parser.add_argument("computer", nargs="?", default=BUILT_IN_COMPUTER)

    def target(self, controller: Controller, args: argparse.Namespace) -> Resource:
        return controller.get_computer(args.computer)

    def run(self, ctx: CommandContext, args: argparse.Namespace) -> int:
        ctx.stdout.write(ctx.controller.get_computer(args.computer).export_table())
        return ExitCode.OK


class SetQuietPeriodCommand(CLICommand):
    """Manage-level command: routes through the same field policy as the form"""

    name = "set-quiet-period"
    description = "Set the global quiet period in seconds."
    required_permission = builtin.MANAGE

    def add_arguments(self, parser: argparse.ArgumentParser) -> None:
        parser.add_argument("seconds")

    def run(self, ctx: CommandContext, args: argparse.Namespace) -> int:
        try:
            updated = ctx.gateway.apply_submission(
                ctx.principal, ctx.controller, "system", {"quiet_period": args.seconds}
            )
        except FormValidationError as e:
            raise CommandError(str(e), ExitCode.ILLEGAL_ARGUMENT) from e
        ctx.stdout.write(f"Quiet period: {updated.quiet_period}\n")
        return ExitCode.OK


COMMANDS: Dict[str, Type[CLICommand]] = {
    cls.name: cls
    for cls in (
        WhoAmICommand,
        DisablePluginCommand,
        EnablePluginCommand,
        DumpExportTableCommand,
        SetQuietPeriodCommand,
    )
}


def get_command(name: str) -> CLICommand:
    """
    Raises:
        CommandUsageError: If no command has that name
    """
    try:
        return COMMANDS[name]()
    except KeyError:
        raise CommandUsageError(f"No such command: {name}") from None
