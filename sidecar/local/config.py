import os
import logging
from typing import Any, Dict, Mapping, Optional

import sidecar.settings as default_settings
from sidecar.errors import SettingsError

log = logging.getLogger(__name__)

TRUE_VALUES = ('true', '1', 't', 'yes', 'y')


class LauncherSettings:
    """
    Merges the default settings with overrides taken from the environment.

    This class provides a unified, attribute-based access point for all
    launcher configuration. It follows a clear precedence:
    1. Base values from `settings.py`.
    2. Overrides from a `.env` file (loaded by `python-dotenv` in settings.py).
    3. Overrides from the process environment for settings in `ENV_OVERRIDABLE_SETTINGS`.
    """

    def __init__(self, environ: Optional[Mapping[str, str]] = None) -> None:
        """
        Initializes the settings object by loading defaults and overrides.

        :param environ: The mapping to read overrides from. Defaults to `os.environ`.
        """
        self._config: Dict[str, Any] = {}
        self._load_defaults()
        self._load_overrides(os.environ if environ is None else environ)

    def _load_defaults(self) -> None:
        """Loads all uppercase attributes from settings.py as the baseline."""
        for key in dir(default_settings):
            if key.isupper():
                self._config[key] = getattr(default_settings, key)

    def _load_overrides(self, environ: Mapping[str, str]) -> None:
        """
        Applies environment overrides for whitelisted settings.

        :param environ: The mapping of environment variables.
        :raises SettingsError: If a value cannot be converted to the setting's type.
        """
        for key in sorted(self._config["ENV_OVERRIDABLE_SETTINGS"]):
            if key not in environ:
                continue
            self._config[key] = self._coerce(key, environ[key])
            log.debug(f"Overridden setting from environment: {key} = {self._config[key]!r}")

    def _coerce(self, key: str, value: str) -> Any:
        """Coerces a raw string to the type of the setting's default value."""
        original_value = self._config.get(key)
        try:
            if isinstance(original_value, bool):
                return value.strip().lower() in TRUE_VALUES
            if original_value is not None:
                return type(original_value)(value.strip())
            return value
        except (ValueError, TypeError) as e:
            raise SettingsError(f"Could not convert value '{value}' for setting '{key}': {e}") from e

    def __getattr__(self, name: str) -> Any:
        """Allows attribute access to settings, raising an AttributeError if not found."""
        config = self.__dict__.get("_config", {})
        if name in config:
            return config[name]
        raise AttributeError(f"'{self.__class__.__name__}' object has no attribute '{name}'")

    def get(self, item: str, default: Any = None) -> Any:
        """Provides dictionary-like access to settings with a default value."""
        return self._config.get(item, default)

    @property
    def is_worker_mode(self) -> bool:
        """True if the mode flag selects the supervised worker."""
        mode = str(self._config["MODE"]).strip().lower()
        if mode == self._config["WORKER_MODE"]:
            return True
        if mode not in ("", self._config["SERVER_MODE"]):
            log.warning(f"Unknown MODE '{self._config['MODE']}'. Falling back to server mode.")
        return False

    def get_all_settings(self) -> Dict[str, Any]:
        """Returns the entire configuration dictionary."""
        return dict(self._config)
