"""Options loading, key normalization, and storage paths.

Options may be given in snake_case or in camelCase
(``dynamicSetters``, ``initializeFromLocalStorage``, ...).
"""

from __future__ import annotations

import json
import logging
import os
import re
from pathlib import Path
from typing import Any, Mapping

import dacite

from .exceptions import (
    ConfigLoadError,
    ConfigurationError,
    record_error,
)
from .models import Options, StorageOptions, model_to_dict

logger = logging.getLogger(__name__)

# Storage locations
CONFIG_DIR = Path.home() / ".config" / "cantus-firmus"
DEFAULT_STORAGE_DIR = CONFIG_DIR / "storage"
STORAGE_DIR_ENV = "CANTUS_STORAGE_DIR"

# Keys whose snake_case form is not a mechanical conversion
_KEY_ALIASES = {
    "initializeFromLocalStorage": "initialize_from_storage",
}

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])([A-Z])")


def normalize_keys(data: Mapping[str, Any]) -> dict[str, Any]:
    """Convert camelCase option names to snake_case.

    Args:
        data: Option mapping with camelCase and/or snake_case keys.

    Returns:
        New dictionary with snake_case keys.
    """
    normalized: dict[str, Any] = {}
    for key, value in data.items():
        if key in _KEY_ALIASES:
            key = _KEY_ALIASES[key]
        else:
            key = _CAMEL_BOUNDARY.sub(r"_\1", key).lower()
        normalized[key] = value
    return normalized


def _from_dict(data_class: type, data: Mapping[str, Any], section: str) -> Any:
    try:
        return dacite.from_dict(
            data_class=data_class,
            data=normalize_keys(data),
            config=dacite.Config(strict=True),
        )
    except dacite.DaciteError as e:
        logger.error("Invalid %s options: %s", section, e)
        record_error(e)
        raise ConfigurationError(
            f"Invalid {section} options: {e}",
            context={"section": section},
            cause=e,
        ) from e


def load_options(data: Mapping[str, Any] | None = None, **overrides: Any) -> Options:
    """Build accessor generation options.

    Args:
        data: Option mapping; missing keys take their defaults.
        **overrides: Additional options applied on top of ``data``.

    Returns:
        Options instance.

    Raises:
        ConfigurationError: If an option is unknown or has the wrong type.
    """
    merged = {**(data or {}), **overrides}
    return _from_dict(Options, merged, "accessor")


def load_storage_options(
    data: Mapping[str, Any] | None = None, **overrides: Any
) -> StorageOptions:
    """Build and validate a synchronization descriptor.

    The provider window defaults to the storage name.

    Raises:
        ConfigurationError: If no storage name is given, or an option is
            unknown or has the wrong type.
    """
    merged = {**(data or {}), **overrides}
    storage = _from_dict(StorageOptions, merged, "storage")

    if not storage.name:
        raise ConfigurationError(
            "When connecting to shared storage you must provide a unique name "
            "to avoid conflicts with other stored state",
            field="name",
        )

    storage.provider_window = storage.provider_window or storage.name
    return storage


def load_config_file(path: str | Path) -> tuple[Options, StorageOptions | None]:
    """Load options from a JSON file.

    The file holds an ``"options"`` section and an optional ``"storage"``
    section.

    Raises:
        ConfigLoadError: If the file cannot be read or parsed.
        ConfigurationError: If the options are invalid.
    """
    config_path = Path(path)
    try:
        with open(config_path, encoding="utf-8") as f:
            data = json.load(f)
        logger.debug("Loaded options from %s", config_path)
    except json.JSONDecodeError as e:
        logger.error("Invalid JSON in options file: %s", e)
        record_error(e)
        raise ConfigLoadError(
            f"Invalid JSON in options file at line {e.lineno}",
            file_path=str(config_path),
            context={"line": e.lineno, "column": e.colno},
            cause=e,
        ) from e
    except OSError as e:
        logger.error("Failed to read options file: %s", e)
        record_error(e)
        raise ConfigLoadError(
            "Failed to read options file",
            file_path=str(config_path),
            cause=e,
        ) from e

    if not isinstance(data, dict):
        raise ConfigLoadError(
            "Options file must contain a JSON object",
            file_path=str(config_path),
        )

    options = load_options(data.get("options") or {})
    storage_data = data.get("storage")
    storage = load_storage_options(storage_data) if storage_data else None
    return options, storage


def save_config_file(
    path: str | Path,
    options: Options,
    storage: StorageOptions | None = None,
) -> None:
    """Save options to a JSON file readable by `load_config_file`.

    Raises:
        ConfigLoadError: If the file cannot be written.
    """
    config_path = Path(path)
    data: dict[str, Any] = {"options": model_to_dict(options)}
    if storage is not None:
        data["storage"] = model_to_dict(storage)

    try:
        config_path.parent.mkdir(parents=True, exist_ok=True)
        with open(config_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
        logger.debug("Saved options to %s", config_path)
    except OSError as e:
        logger.error("Failed to write options file: %s", e)
        record_error(e)
        raise ConfigLoadError(
            "Failed to write options file",
            file_path=str(config_path),
            cause=e,
        ) from e


def get_storage_dir() -> Path:
    """Return the directory backing the file store.

    ``CANTUS_STORAGE_DIR`` overrides the default location.
    """
    override = os.environ.get(STORAGE_DIR_ENV)
    if override:
        return Path(override).expanduser()
    return DEFAULT_STORAGE_DIR
