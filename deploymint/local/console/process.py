import logging
from typing import List
from deploymint.local.console.handler import (
    handle_list_command, handle_show_command, handle_add_command, handle_remove_command,
    handle_status_command, handle_lifecycle_command, handle_history_command,
    handle_config_command, handle_logs_command, handle_export_logs_command,
    toggle_verbose_logging, print_help,
)

log = logging.getLogger(__name__)


def handle_serve_command(args: List[str]) -> None:
    """Runs the HTTP API in the foreground, blocking the console until interrupted."""
    from deploymint.web.server import run_api_server

    port = None
    if args:
        if not args[0].isdigit():
            print("Usage: serve [port]")
            return
        port = int(args[0])
    run_api_server(port=port, console_level=logging.getLogger().getEffectiveLevel())


def execute_command(command: str, args: List[str]) -> bool:
    """
    Executes a single command from the user.

    :param command: The main command string (e.g., 'start', 'config').
    :param args: A list of arguments for the command.
    :return bool: True if the console should exit, False otherwise.
    """
    log.debug(f"Executing command: {command}, args: {args}")
    command_map = {
        "list": handle_list_command,
        "show": lambda: handle_show_command(args),
        "add": lambda: handle_add_command(args),
        "remove": lambda: handle_remove_command(args),
        "status": lambda: handle_status_command(args),
        "start": lambda: handle_lifecycle_command("start", args),
        "stop": lambda: handle_lifecycle_command("stop", args),
        "restart": lambda: handle_lifecycle_command("restart", args),
        "history": lambda: handle_history_command(args),
        "serve": lambda: handle_serve_command(args),
        "config": lambda: handle_config_command(args),
        "logs": handle_logs_command,
        "export-logs": lambda: handle_export_logs_command(args),
        "verbose": toggle_verbose_logging,
        "help": print_help,
        "exit": lambda: True
    }

    if command not in command_map:
        log.info(f"Unknown command: '{command}'. Type 'help' for a list of commands.")
        return False

    return command_map[command]() is True
