import json
import logging
import threading
from pathlib import Path
from typing import Dict, Any, Tuple
import deploymint.settings as default_settings

log = logging.getLogger(__name__)


class GlobalSync:
    """
    A singleton class that houses all application configuration.

    Values come from `settings.py` (which already applied `.env`), then from
    `overrides.json` for keys listed in `MODIFIABLE_SETTINGS`. Runtime changes
    made through `update_setting` are written back to the overrides file.
    """

    def __init__(self) -> None:
        """Initializes the settings object by loading defaults and overrides."""
        self._config: Dict[str, Any] = {}
        self._lock = threading.Lock()
        self._load_defaults()
        self._load_overrides_from_file()

    def get(self, item: str, default: Any = None) -> Any:
        """Provides dictionary-like access to settings with a default value."""
        return self._config.get(item, default)

    def __getattr__(self, name: str) -> Any:
        """Allows attribute access to settings, raising an AttributeError if not found."""
        config = self.__dict__.get("_config", {})
        if name in config:
            return config[name]
        raise AttributeError(f"'{self.__class__.__name__}' object has no attribute '{name}'")

    def __setattr__(self, name: str, value: Any) -> None:
        if name.isupper():
            self._config[name] = value
        else:
            super().__setattr__(name, value)

    def _load_defaults(self) -> None:
        """Loads all uppercase attributes from settings.py as the baseline."""
        for key in dir(default_settings):
            if key.isupper():
                self._config[key] = getattr(default_settings, key)

    def _load_overrides_from_file(self) -> None:
        """Loads whitelisted overrides from the JSON file."""
        overrides_path = Path(self._config["OVERRIDES_JSON_PATH"])
        if not overrides_path.exists():
            return

        try:
            with overrides_path.open('r') as f:
                overrides = json.load(f)
        except (json.JSONDecodeError, IOError) as e:
            log.error(f"Failed to load or parse overrides file: {e}")
            return

        log.info(f"Loading runtime config overrides from {overrides_path}")
        for key, value in overrides.items():
            if key not in self._config["MODIFIABLE_SETTINGS"]:
                log.warning(f"Attempted to override non-modifiable setting '{key}'. Ignoring.")
                continue
            self._config[key] = value

    def update_setting(self, key: str, value: Any) -> Tuple[bool, str]:
        """
        Thread-safe method to update a modifiable setting and persist it.

        :param key: The setting name.
        :param value: The new value, coerced to the type of the current value.
        :return: A (success, message) tuple.
        """
        with self._lock:
            if key not in self._config["MODIFIABLE_SETTINGS"]:
                message = f"Setting '{key}' is not modifiable."
                log.warning(f"Rejected config update: {message}")
                return False, message

            try:
                original_value = self._config.get(key)
                if isinstance(original_value, bool):
                    new_value = str(value).lower() in ('true', '1', 't', 'yes', 'y')
                elif original_value is not None:
                    new_value = type(original_value)(value)
                else:
                    new_value = value
            except (ValueError, TypeError) as e:
                message = f"Could not convert value '{value}' for key '{key}'. Error: {e}"
                log.error(f"Config update failed: {message}")
                return False, message

            self._config[key] = new_value
            self._save_overrides_to_disk()
            message = f"Setting '{key}' updated to '{new_value}'."
            log.info(message)
            return True, message

    def _save_overrides_to_disk(self) -> None:
        """Persists the modifiable parts of the config to overrides.json."""
        overrides_path = Path(self._config["OVERRIDES_JSON_PATH"])
        overrides = {
            key: self._config[key]
            for key in self._config["MODIFIABLE_SETTINGS"]
            if key in self._config
        }
        try:
            overrides_path.parent.mkdir(parents=True, exist_ok=True)
            overrides_path.write_text(json.dumps(overrides, indent=4))
        except IOError as e:
            log.error(f"Failed to write overrides to '{overrides_path}': {e}")

    def get_all_settings(self) -> Dict[str, Any]:
        """Returns the entire configuration dictionary."""
        return self._config

# A singleton instance to be imported by other modules
app_globals = GlobalSync()
