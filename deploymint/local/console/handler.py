import sys
import time
import logging
from pathlib import Path
from typing import List
from deploymint.local import app_globals
from deploymint.local.database import LogDBManager
from deploymint.local.supervisor import get_supervisor
from deploymint.local.supervisor.errors import InvalidConfiguration
from deploymint.local.supervisor.models import ActionResult, ServerConfig, StatusReport
from deploymint.log.export import export_logs_to_excel

# --- Platform-specific non-blocking keypress detection ---
try:
    import msvcrt
    def is_keypress_waiting() -> bool:
        return msvcrt.kbhit()
    def clear_keypress_buffer() -> None:
        while msvcrt.kbhit():
            msvcrt.getch()
except ImportError:
    import select
    import termios
    import tty
    def is_keypress_waiting() -> bool:
        return select.select([sys.stdin], [], [], 0) == ([sys.stdin], [], [])
    def clear_keypress_buffer() -> None:
        # Raw mode is needed to read pending keys without Enter
        old_settings = termios.tcgetattr(sys.stdin)
        try:
            tty.setcbreak(sys.stdin.fileno())
            while is_keypress_waiting():
                sys.stdin.read(1)
        finally:
            termios.tcsetattr(sys.stdin, termios.TCSADRAIN, old_settings)

log = logging.getLogger(__name__)

# Settings the running supervisor picks up without a restart.
LIVE_SETTINGS = {"RECLAIM_SETTLE_DELAY", "STOP_SETTLE_DELAY"}


#* --- Output Helpers ---
def print_status(identity: str, report: StatusReport) -> None:
    """Prints one status line plus per-port detail."""
    line = f"  - {identity:<40} : {report.status.value.upper()}"
    if report.primary_port is not None:
        line += f" | Port {report.primary_port}"
    if report.pid is not None:
        line += f" | PID {report.pid}"
    if report.message:
        line += f" | {report.message}"
    if report.error_message:
        line += f" | Error: {report.error_message}"
    print(line)
    for occupancy in report.per_port:
        pids = ", ".join(str(pid) for pid in occupancy.pids) or "-"
        state = "bound" if occupancy.running else "free"
        print(f"      port {occupancy.port:<6} {state:<6} PID(s): {pids}")

def print_result(result: ActionResult) -> None:
    """Prints the outcome of start, stop or restart."""
    if result.ok:
        print(f"\nOK: {result.message}")
        if result.pid is not None:
            print(f"PID: {result.pid}")
    else:
        print(f"\nFAILED ({result.error_kind}): {result.error_message}")
    print()


#* --- Server Commands ---
def handle_list_command() -> None:
    """Lists all configured servers."""
    configs = get_supervisor().store.list_all()
    if not configs:
        print("\nNo servers configured. Use 'add' to configure one.\n")
        return
    print("\n--- Configured Servers ---")
    for config in configs:
        ports = ", ".join(str(port) for port in config.ports) or "none"
        print(f"  - {config.identity}\n      dir: {config.directory}\n      cmd: {config.command}\n      ports: {ports}")
    print()

def handle_show_command(args: List[str]) -> None:
    if not args:
        print("Usage: show <server>")
        return
    config = get_supervisor().store.load(args[0])
    if config is None:
        print(f"\nServer '{args[0]}' is not configured.\n")
        return
    print(f"\n{config.identity}")
    for key, value in config.to_dict().items():
        print(f"  {key} = {value}")
    print()

def handle_add_command(args: List[str]) -> None:
    """
    Handles 'add <server> <directory> <ports> <command...>'.

    Ports are comma separated; the first one is the primary port.
    """
    if len(args) < 4:
        print("Usage: add <server> <directory> <port[,port...]> <command...>")
        return
    identity, directory, ports_arg = args[0], args[1], args[2]
    entry = {
        "directory": str(Path(directory).expanduser()),
        "command": " ".join(args[3:]),
        "ports": [p for p in ports_arg.split(",") if p.strip()],
    }
    try:
        config = get_supervisor().store.save(ServerConfig.from_dict(identity, entry))
    except InvalidConfiguration as e:
        print(f"\nERROR: {e}\n")
        return
    print(f"\nSaved '{config.identity}' on port(s) {', '.join(str(p) for p in config.ports)}.\n")

def handle_remove_command(args: List[str]) -> None:
    if not args:
        print("Usage: remove <server>")
        return
    if get_supervisor().store.remove(args[0]):
        print(f"\nRemoved '{args[0]}'.\n")
    else:
        print(f"\nServer '{args[0]}' is not configured.\n")

def handle_status_command(args: List[str]) -> None:
    """Shows the status of one server, or of every configured server."""
    supervisor = get_supervisor()
    identities = args or [config.identity for config in supervisor.store.list_all()]
    if not identities:
        print("\nNo servers configured.\n")
        return
    print("\n--- Server Status ---")
    for identity in identities:
        print_status(identity, supervisor.get_status(identity))
    print()

def handle_lifecycle_command(operation: str, args: List[str]) -> None:
    """Runs start, stop or restart for one server and prints the result."""
    if not args:
        print(f"Usage: {operation} <server>")
        return
    supervisor = get_supervisor()
    print_result(getattr(supervisor, operation)(args[0]))

def handle_history_command(args: List[str]) -> None:
    """Prints recent launch and stop events, optionally for one server."""
    log_db = LogDBManager(app_globals.LOG_DB_PATH)
    events = log_db.fetch_launch_events(args[0] if args else None, app_globals.LOG_HISTORY_COUNT)
    if not events:
        print("\nNo launch events recorded.\n")
        return
    print("\n--- Launch History ---")
    for event in events:
        dt = time.strftime('%Y-%m-%d %H:%M:%S', time.localtime(event.timestamp))
        pid = f"PID {event.pid}" if event.pid else ""
        print(f"  {dt}  {event.action:<8} {event.identity}  ports {event.ports} {pid}")
    print()


#* --- Config Commands ---
def _config_show() -> None:
    print("\n--- Current Application Configuration ---")
    for key in sorted(app_globals.MODIFIABLE_SETTINGS):
        print(f"  {key} = {app_globals.get(key, 'N/A')}")
    print("---")
    print("Use 'config set <KEY> <VALUE>' to change a setting.")
    print("---------------------------------------\n")

def _config_set(args: List[str]) -> None:
    if len(args) < 2:
        print("Usage: config set <SETTING_NAME> <VALUE>")
        return
    key, value_str = args[0].upper(), " ".join(args[1:])
    success, message = app_globals.update_setting(key, value_str)
    print(message)
    if success and key in LIVE_SETTINGS:
        supervisor = get_supervisor()
        supervisor.reclaimer.settle_delay = float(app_globals.RECLAIM_SETTLE_DELAY)
        supervisor.stop_settle_delay = float(app_globals.STOP_SETTLE_DELAY)

def handle_config_command(args: List[str]) -> None:
    """
    Handles all sub-commands for the 'config' command-line interface.

    :param args: A list of string arguments following the 'config' command.
    """
    sub_command = args[0].lower() if args else "show"
    if sub_command == "show":
        _config_show()
    elif sub_command == "set":
        _config_set(args[1:])
    else:
        print("\nConfig Command Help:")
        print("  config show                - Display all modifiable settings.")
        print("  config set KEY VALUE       - Change a setting.")


#* --- Logs ---
def handle_logs_command() -> None:
    """
    Handles the 'logs' command, providing a blocking, interactive log tail.
    """
    log_db = LogDBManager(app_globals.LOG_DB_PATH)

    print(f"\n--- Displaying last {app_globals.LOG_HISTORY_COUNT} log entries ---")
    last_ts = 0.0
    for log_entry in log_db.fetch_last_entries(app_globals.LOG_HISTORY_COUNT, app_globals.VERBOSE_LOGGING):
        print(log_entry.message)
        last_ts = max(last_ts, log_entry.timestamp)

    print("\n--- Now tailing new log entries (Press any key to stop) ---\n")
    try:
        while not is_keypress_waiting():
            new_logs, last_ts = log_db.listen_for_updates(last_ts)
            for log_entry in new_logs:
                if log_entry.level == "DEBUG" and not app_globals.VERBOSE_LOGGING:
                    continue
                print(log_entry.message)
            time.sleep(1)
        clear_keypress_buffer()
        print("\n--- Log tailing stopped. Returning to console. ---")
    except KeyboardInterrupt:
        print("\n--- Log tailing interrupted. Returning to console. ---")

def handle_export_logs_command(args: List[str]) -> None:
    output_file = Path(args[0]) if args else app_globals.LOGS_DIR / "logs_export.xlsx"
    log.info(f"Exporting logs to '{output_file}'...")
    export_logs_to_excel(app_globals.LOG_DB_PATH, output_file)

def toggle_verbose_logging() -> None:
    """Toggles verbose (DEBUG level) logging for the console handler."""
    app_globals.VERBOSE_LOGGING = not app_globals.VERBOSE_LOGGING
    new_level = logging.DEBUG if app_globals.VERBOSE_LOGGING else logging.INFO

    for handler in logging.getLogger().handlers:
        if type(handler) is logging.StreamHandler:
            handler.setLevel(new_level)
            break
    else:
        print("Could not find console handler to modify level.")
        return

    status = "ON" if app_globals.VERBOSE_LOGGING else "OFF"
    print(f"Verbose console logging is now {status}.")

def print_help() -> None:
    """Prints the main help text for the console."""
    print("\nAvailable commands:")
    print("  list                              - List configured servers.")
    print("  show <server>                     - Show one server's configuration.")
    print("  add <server> <dir> <ports> <cmd>  - Configure a server (ports comma separated).")
    print("  remove <server>                   - Delete a server's configuration.")
    print("  status [server]                   - Show live status (all servers if omitted).")
    print("  start <server>                    - Free the server's ports and launch it.")
    print("  stop <server>                     - Terminate whatever holds the server's ports.")
    print("  restart <server>                  - Same as start; reports what was replaced.")
    print("  history [server]                  - Show recent launch and stop events.")
    print("  serve [port]                      - Run the HTTP API and dashboard in the foreground.")
    print("  logs                              - View historical logs and tail new ones.")
    print("  export-logs [filename]            - Export logs and launch events to Excel.")
    print("  config <cmd>                      - Show or change runtime settings.")
    print("  verbose                           - Toggle DEBUG log output in the console.")
    print("  exit                              - Exit the management console.")
    print()
