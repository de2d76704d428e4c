import json
import logging
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional
from deploymint.local.supervisor.errors import InvalidConfiguration
from deploymint.local.supervisor.models import ServerConfig, normalize_ports

log = logging.getLogger(__name__)

__all__ = ["ServerConfigStore", "normalize_ports"]


class ServerConfigStore:
    """
    Durable mapping from server identity to its directory, command and ports.

    The file is a JSON object keyed by identity. Each save replaces the entry
    for one identity wholesale. Load, merge and persist run under one lock, and
    the file is replaced atomically, so concurrent saves never lose updates.
    """

    def __init__(self, path: Path):
        """
        :param path: Location of the servers JSON file. Created on first save.
        """
        self.path = Path(path)
        self._lock = threading.Lock()

    def _read(self) -> Dict[str, Any]:
        """Reads the whole file. Missing or malformed files read as empty."""
        if not self.path.exists():
            return {}
        try:
            with self.path.open("r", encoding="utf-8") as f:
                servers = json.load(f)
        except (ValueError, IOError) as e:
            # ValueError covers malformed JSON and undecodable bytes
            log.error(f"Error loading servers from '{self.path}': {e}")
            return {}
        if not isinstance(servers, dict):
            log.error(f"Servers file '{self.path}' does not contain a JSON object. Ignoring it.")
            return {}
        return servers

    def _write(self, servers: Dict[str, Any]) -> None:
        """Atomically writes the whole mapping to disk."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = self.path.with_suffix(".tmp")
        try:
            with temp_path.open("w", encoding="utf-8") as f:
                json.dump(servers, f, indent=2)
            temp_path.replace(self.path)
        finally:
            temp_path.unlink(missing_ok=True)

    def load_raw(self, identity: str) -> Optional[Dict[str, Any]]:
        """Returns the stored entry exactly as persisted, or None."""
        entry = self._read().get(identity)
        return entry if isinstance(entry, dict) else None

    def load(self, identity: str) -> Optional[ServerConfig]:
        """
        Loads the configuration of one server.

        :param identity: The server's unique key.
        :return: The normalized ServerConfig, or None if it is not configured.
        """
        entry = self.load_raw(identity)
        if entry is None:
            return None
        return ServerConfig.from_dict(identity, entry)

    def list_all(self) -> List[ServerConfig]:
        """Returns every stored server, in file order."""
        return [
            ServerConfig.from_dict(identity, entry)
            for identity, entry in self._read().items()
            if isinstance(entry, dict)
        ]

    def save(self, config: ServerConfig) -> ServerConfig:
        """
        Validates and stores a configuration, replacing any previous entry.

        :param config: The configuration to persist.
        :return: The stored configuration.
        :raises InvalidConfiguration: If a required field is missing or no port is valid.
        """
        missing = [
            name for name, value in (
                ("url", config.identity), ("directory", config.directory), ("command", config.command)
            ) if not value or not str(value).strip()
        ]
        if missing:
            raise InvalidConfiguration(f"Missing required fields: {', '.join(missing)}")
        if not config.ports:
            raise InvalidConfiguration("At least one valid port (integer between 1 and 65535) is required.")
        if normalize_ports({"ports": list(config.ports)}) != tuple(config.ports):
            raise InvalidConfiguration(f"Ports must be unique integers between 1 and 65535, got {list(config.ports)}.")

        with self._lock:
            servers = self._read()
            servers[config.identity] = config.to_dict()
            try:
                self._write(servers)
            except OSError as e:
                log.error(f"Failed to write servers file '{self.path}': {e}", exc_info=True)
                raise
        log.info(f"Saved configuration for {config.identity} (ports: {list(config.ports)})")
        return config

    def remove(self, identity: str) -> bool:
        """Deletes a configuration. Returns False if it did not exist."""
        with self._lock:
            servers = self._read()
            if identity not in servers:
                return False
            del servers[identity]
            self._write(servers)
        log.info(f"Removed configuration for {identity}")
        return True
