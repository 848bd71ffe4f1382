"""
admin-authz - Entry Point

Runs a gated command as a given principal, or serves the form gateway.
The principal is taken as already authenticated; identity is not verified here.
"""

import argparse
import logging
import sys

import yaml

from .config import load_config
from .core.auth.principal import Principal
from .core.bootstrap import bootstrap
from .core.commands import COMMANDS, get_command
from .core.errors import AuthorizationError, CommandUsageError
from .core.gateway import ExitCode

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    command_help = "\n".join(f"  {name:<18}{cls.description}" for name, cls in COMMANDS.items())
    parser = argparse.ArgumentParser(
        prog="admin-authz",
        description="Authorization engine for controller commands and configuration",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=f"""
Commands:
  serve             Serve the configure page over HTTP
{command_help}

Examples:
  # Disable a plugin as an administrator
  python -m admin_authz --user alice --group admins disable-plugin git

  # Serve the configure page
  python -m admin_authz --config authz.yaml serve --port 8080
"""
    )
    parser.add_argument('--config', '-c', help='Path to authz.yaml')
    parser.add_argument('--user', '-u', help='Principal to act as (default: anonymous)')
    parser.add_argument('--group', '-g', action='append', default=[], help='Group membership (repeatable)')
    parser.add_argument('--debug', action='store_true', help='Enable debug logging')
    parser.add_argument('command', help='Command name, or "serve"')
    parser.add_argument('args', nargs=argparse.REMAINDER, help='Command arguments')
    return parser


def serve(context, args) -> int:
    import uvicorn

    from .web import create_app

    serve_parser = argparse.ArgumentParser(prog="admin-authz serve")
    serve_parser.add_argument('--host', default=context.config.web.host)
    serve_parser.add_argument('--port', type=int, default=context.config.web.port)
    options = serve_parser.parse_args(args)

    logger.info(f"Serving form gateway on http://{options.host}:{options.port}")
    uvicorn.run(create_app(context), host=options.host, port=options.port)
    return ExitCode.OK


def main(argv=None) -> int:
    options = build_parser().parse_args(argv)

    try:
        config = load_config(options.config)
    except (FileNotFoundError, KeyError, yaml.YAMLError) as e:
        # YAML errors span several lines
        message = " ".join(str(e).split())
        print(f"ERROR: {message}", file=sys.stderr)
        return ExitCode.GENERIC_ERROR

    logging.basicConfig(
        level=logging.DEBUG if options.debug else getattr(logging, config.log_level, logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    try:
        context = bootstrap(config)
    except AuthorizationError as e:
        logger.error(f"Invalid policy configuration: {e}")
        return ExitCode.GENERIC_ERROR

    if options.command == "serve":
        return serve(context, options.args)

    principal = Principal.of(options.user, groups=options.group) if options.user else Principal.anonymous()
    try:
        command = get_command(options.command)
    except CommandUsageError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return ExitCode.MALFORMED_INPUT

    result = context.gateway.invoke(command, principal, options.args)
    sys.stdout.write(result.stdout)
    sys.stderr.write(result.stderr)
    return result.exit_code


if __name__ == "__main__":
    sys.exit(main())
