"""
Spawns configured server commands as fully detached background processes.

Command lines are split with `shlex`, so POSIX quoting works:
`python -m http.server "8000"` and `node "my server.js"` reach the program
as the expected argument lists. Commands that rely on shell features
(pipes, `&&`, `;`, redirection, `$VAR` expansion, globbing, `~`, or a
leading `NAME=value` assignment) are handed to the shell instead, because
no argument list can express them. The launch mode can force either path.

Known limitation: in shell mode the returned PID is the shell's. Most
shells exec the last simple command in place, but compound commands keep
the shell as the parent, so the PID found on the port later may differ.
"""
import re
import sys
import shlex
import logging
import subprocess
from pathlib import Path
from typing import Any, Callable, Dict, List, Tuple, Union
from deploymint.local.supervisor.errors import LaunchFailed
from deploymint.local.supervisor.models import ServerConfig

log = logging.getLogger(__name__)

SHELL_MODES = ("auto", "always", "never")
_SHELL_SYNTAX = re.compile(r"[|&;<>()$`*?\[\]{}~\n]")
_ENV_ASSIGNMENT = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*=")


def needs_shell(command: str) -> bool:
    """True if the command uses syntax only a shell can interpret."""
    stripped = command.strip()
    return bool(_SHELL_SYNTAX.search(stripped) or _ENV_ASSIGNMENT.match(stripped))

def split_command(command: str, shell_mode: str = "auto") -> Tuple[Union[str, List[str]], bool]:
    """
    Turns a command line into Popen arguments.

    :param command: The configured command line.
    :param shell_mode: 'auto', 'always' or 'never'.
    :return: A (args, use_shell) tuple. With use_shell the args are the raw string.
    :raises LaunchFailed: If the command is empty or cannot be tokenized.
    """
    if shell_mode not in SHELL_MODES:
        raise LaunchFailed(f"Unknown launch shell mode '{shell_mode}'. Expected one of {', '.join(SHELL_MODES)}.")
    if not command or not command.strip():
        raise LaunchFailed("Command is empty.")

    if shell_mode == "always" or (shell_mode == "auto" and (sys.platform == "win32" or needs_shell(command))):
        return command.strip(), True

    try:
        args = shlex.split(command)
    except ValueError as e:
        raise LaunchFailed(f"Could not parse command '{command}': {e}") from e
    if not args:
        raise LaunchFailed("Command is empty.")
    return args, False

def get_popen_creation_flags() -> Dict[str, Any]:
    """
    Returns platform-specific keyword arguments that detach the child.

    On Windows the child gets its own process group and no console window.
    Elsewhere it is moved into a new session so that it survives the
    supervisor and does not receive the supervisor's terminal signals.
    """
    if sys.platform == "win32":
        return {
            "creationflags": subprocess.DETACHED_PROCESS
            | subprocess.CREATE_NEW_PROCESS_GROUP
            | subprocess.CREATE_NO_WINDOW
        }
    return {"start_new_session": True}


class ProcessLauncher:
    """Starts a ServerConfig's command in its directory and returns immediately."""

    def __init__(
        self,
        shell_mode: str = "auto",
        shell_executable: str = "/bin/sh",
        popen: Callable[..., subprocess.Popen] = subprocess.Popen,
    ):
        self.shell_mode = shell_mode
        self.shell_executable = shell_executable
        self.popen = popen

    def launch(self, config: ServerConfig) -> int:
        """
        Launches the configured command fully detached with standard I/O discarded.

        Does not wait for the process to become ready or to bind its port.

        :param config: The server to launch.
        :return: The PID of the spawned process.
        :raises LaunchFailed: If the command is empty, the directory is missing
                              or the program cannot be executed.
        """
        args, use_shell = split_command(config.command, self.shell_mode)
        cwd = Path(config.directory)
        if not cwd.is_dir():
            raise LaunchFailed(f"Directory not found: {config.directory}")

        popen_kwargs = get_popen_creation_flags()
        if use_shell:
            popen_kwargs["shell"] = True
            if sys.platform != "win32":
                popen_kwargs["executable"] = self.shell_executable

        log.info(f"Launching '{config.command}' in '{cwd}' for {config.identity} (shell={use_shell})")
        try:
            p = self.popen(
                args,
                cwd=str(cwd.resolve()),
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                **popen_kwargs,
            )
        except FileNotFoundError as e:
            raise LaunchFailed(f"Command not found: {e.filename or config.command}") from e
        except OSError as e:
            raise LaunchFailed(f"Failed to launch '{config.command}': {e}") from e

        log.info(f"{config.identity} started with PID: {p.pid}")
        return p.pid
