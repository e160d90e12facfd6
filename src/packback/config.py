"""Configuration management for packback.

Settings are resolved in a fixed order: an explicit invocation parameter wins,
then a non-empty value from config.json, then the built-in default.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import TYPE_CHECKING, Any, Mapping

from packback.errors import ConfigError

if TYPE_CHECKING:
    from packback.prompts import Prompter
    from packback.vault import SecretValue

logger = logging.getLogger(__name__)

CONFIG_FILE_NAME = "config.json"

DEFAULT_NAME_PATTERN = "{name}-%Y%m%d-%H%M%S"
DEFAULT_COMPRESSION_LEVEL = 9
DEFAULT_ARCHIVE_FORMAT = "7z"
DEFAULT_PASSWORD_MANAGER = "none"
DEFAULT_LOG_LEVEL = "INFO"

VALID_ARCHIVE_FORMATS = ["7z", "zip"]
VALID_PASSWORD_MANAGERS = ["none", "bitwarden"]

# Settings strict mode refuses to take from config.json or defaults
MANDATORY_PARAMETERS = ("source", "destination", "exclude", "encrypt")

CLEAR_LIST_TOKEN = "-"

ZIP_ENCRYPTION_MESSAGE = (
    "The zip format cannot encrypt file names. "
    "Use the 7z format for encrypted backups, or turn encryption off."
)


def packback_home() -> Path:
    """Return the packback home directory. Defaults to ~/.packback/, overridable via PACKBACK_HOME."""
    return Path(os.environ.get("PACKBACK_HOME", Path.home() / ".packback"))


def config_path() -> Path:
    """Return path to the default config.json."""
    return packback_home() / CONFIG_FILE_NAME


def load_config(path: Path | None = None) -> dict[str, Any] | None:
    """Load config.json. Returns None if it doesn't exist.

    Raises:
        ConfigError: If the file is not valid JSON or not a JSON object.
    """
    path = path or config_path()
    if not path.exists():
        logger.debug("No config file at %s", path)
        return None
    try:
        with open(path, encoding="utf-8") as file:
            data = json.load(file)
    except json.JSONDecodeError as error:
        raise ConfigError(f"Malformed config file {path}: {error}") from error
    except OSError as error:
        raise ConfigError(f"Cannot read config file {path}: {error}") from error
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a JSON object.")
    return data


def save_config(config: dict[str, Any], path: Path | None = None) -> Path:
    """Save config.json and return its path."""
    path = path or config_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as file:
        json.dump(config, file, indent=2)
        file.write("\n")
    return path


def default_config() -> dict[str, Any]:
    """Return the config template written by `packback init`."""
    return {
        "source": "",
        "destination": "",
        "exclude": ["*.tmp", "~$*", "Thumbs.db", ".DS_Store"],
        "encrypt": True,
        "name_pattern": DEFAULT_NAME_PATTERN,
        "compression_level": DEFAULT_COMPRESSION_LEVEL,
        "archive_format": DEFAULT_ARCHIVE_FORMAT,
        "keep_local": False,
        "password_manager": DEFAULT_PASSWORD_MANAGER,
        "password_managers": {
            "bitwarden": {
                "item": "",
                "executable": "bw",
            },
        },
        "tools": {
            "sevenzip": "7z",
            "rclone": "rclone",
        },
        "log_level": DEFAULT_LOG_LEVEL,
    }


def init_config(path: Path | None = None, force: bool = False) -> Path:
    """Write the default config template.

    Raises:
        ConfigError: If the file exists and force is not set.
    """
    path = path or config_path()
    if path.exists() and not force:
        raise ConfigError(f"Config file already exists: {path} (use --force to overwrite)")
    save_config(default_config(), path)
    logger.info("Wrote config template to %s", path)
    return path


def _string(data: Mapping[str, Any], key: str) -> str | None:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ConfigError(f"Config key '{key}' must be a string.")
    return value.strip() or None


def _boolean(data: Mapping[str, Any], key: str) -> bool | None:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, bool):
        raise ConfigError(f"Config key '{key}' must be true or false.")
    return value


def _string_list(data: Mapping[str, Any], key: str) -> tuple[str, ...] | None:
    value = data.get(key)
    if value is None:
        return None
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise ConfigError(f"Config key '{key}' must be a list of strings.")
    patterns = tuple(item.strip() for item in value if item.strip())
    return patterns or None


def _integer(data: Mapping[str, Any], key: str) -> int | None:
    value = data.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigError(f"Config key '{key}' must be an integer.")
    return value


def _mapping(data: Mapping[str, Any], key: str) -> dict[str, Any]:
    value = data.get(key)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigError(f"Config key '{key}' must be an object.")
    return value


@dataclass(frozen=True)
class BackupConfig:
    """Typed view of config.json. None means the key was absent or empty."""

    source: str | None = None
    destination: str | None = None
    exclude: tuple[str, ...] | None = None
    encrypt: bool | None = None
    name_pattern: str | None = None
    compression_level: int | None = None
    archive_format: str | None = None
    container: str | None = None
    keep_local: bool | None = None
    password_manager: str | None = None
    password_managers: dict[str, Any] = field(default_factory=dict)
    tools: dict[str, Any] = field(default_factory=dict)
    log_level: str | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> BackupConfig:
        """Build a BackupConfig from parsed JSON, ignoring unknown keys."""
        if not data:
            return cls()
        return cls(
            source=_string(data, "source"),
            destination=_string(data, "destination"),
            exclude=_string_list(data, "exclude"),
            encrypt=_boolean(data, "encrypt"),
            name_pattern=_string(data, "name_pattern"),
            compression_level=_integer(data, "compression_level"),
            archive_format=_string(data, "archive_format"),
            container=_string(data, "container"),
            keep_local=_boolean(data, "keep_local"),
            password_manager=_string(data, "password_manager"),
            password_managers=_mapping(data, "password_managers"),
            tools=_mapping(data, "tools"),
            log_level=_string(data, "log_level"),
        )


@dataclass
class InvocationParameters:
    """Values passed explicitly on the command line. None means not supplied."""

    source: str | None = None
    destination: str | None = None
    exclude: list[str] | None = None
    encrypt: bool | None = None
    password: SecretValue | None = None
    name_pattern: str | None = None
    compression_level: int | None = None
    archive_format: str | None = None
    container: str | None = None
    keep_local: bool | None = None
    password_manager: str | None = None
    item: str | None = None
    session_token: str | None = None

    def supplied(self, name: str) -> bool:
        """Return True if the caller supplied this parameter explicitly."""
        if name == "encrypt" and self.encrypt is None and self.password is not None:
            return True
        return getattr(self, name) is not None


@dataclass(frozen=True)
class ResolvedSettings:
    """Final settings for one run."""

    source: str
    destination: str
    exclude: tuple[str, ...] = ()
    encrypt: bool = False
    name_pattern: str = DEFAULT_NAME_PATTERN
    compression_level: int = DEFAULT_COMPRESSION_LEVEL
    archive_format: str = DEFAULT_ARCHIVE_FORMAT
    container: str | None = None
    keep_local: bool = False
    password_manager: str = DEFAULT_PASSWORD_MANAGER
    item: str | None = None
    session_token: str | None = None
    password_managers: Mapping[str, Any] = field(default_factory=dict)
    tools: Mapping[str, Any] = field(default_factory=dict)

    def provider_settings(self, name: str | None = None) -> dict[str, Any]:
        """Return the nested settings object for a password manager."""
        settings = self.password_managers.get(name or self.password_manager) or {}
        return dict(settings) if isinstance(settings, dict) else {}

    def tool(self, key: str, default: str) -> str:
        """Return the configured executable for an external tool."""
        value = self.tools.get(key)
        return value if isinstance(value, str) and value.strip() else default


def _pick(explicit: Any, configured: Any, default: Any) -> Any:
    if explicit is not None:
        return explicit
    if configured is not None:
        return configured
    return default


def check_strict(parameters: InvocationParameters) -> None:
    """Reject a run that leaves any mandatory setting to config or defaults."""
    missing = [name for name in MANDATORY_PARAMETERS if getattr(parameters, name) is None]
    if missing:
        raise ConfigError(
            "Strict mode requires explicit parameters: " + ", ".join(f"--{name}" for name in missing)
        )


def _validate(settings: ResolvedSettings) -> None:
    if not 0 <= settings.compression_level <= 9:
        raise ConfigError(
            f"Compression level must be between 0 and 9, got {settings.compression_level}."
        )
    if settings.archive_format not in VALID_ARCHIVE_FORMATS:
        raise ConfigError(
            f"Invalid archive format: {settings.archive_format} "
            f"(available: {', '.join(VALID_ARCHIVE_FORMATS)})"
        )
    if settings.password_manager not in VALID_PASSWORD_MANAGERS:
        raise ConfigError(
            f"Invalid password manager: {settings.password_manager} "
            f"(available: {', '.join(VALID_PASSWORD_MANAGERS)})"
        )
    if settings.encrypt and settings.archive_format == "zip":
        raise ConfigError(ZIP_ENCRYPTION_MESSAGE)


def _configured_item(password_managers: Mapping[str, Any], password_manager: str) -> str | None:
    provider_settings = password_managers.get(password_manager)
    if not isinstance(provider_settings, dict):
        return None
    item = provider_settings.get("item")
    if item is not None and not isinstance(item, str):
        raise ConfigError(
            f"Config key 'password_managers.{password_manager}.item' must be a string."
        )
    return (item or "").strip() or None


def resolve_settings(
    parameters: InvocationParameters,
    config: BackupConfig | None = None,
    strict: bool = False,
) -> ResolvedSettings:
    """Merge explicit parameters, config.json and defaults into final settings.

    Args:
        parameters: Explicit invocation values.
        config: Parsed config file, or None when there is none.
        strict: Require the mandatory settings to be explicit.

    Raises:
        ConfigError: On a strict-mode violation or an invalid value.
    """
    if strict:
        check_strict(parameters)

    config = config or BackupConfig()

    encrypt = parameters.encrypt
    if encrypt is None and parameters.password is not None:
        encrypt = True

    password_manager = _pick(
        parameters.password_manager, config.password_manager, DEFAULT_PASSWORD_MANAGER
    )
    configured_item = _configured_item(config.password_managers, password_manager)

    settings = ResolvedSettings(
        source=_pick(parameters.source, config.source, ""),
        destination=_pick(parameters.destination, config.destination, ""),
        exclude=tuple(_pick(parameters.exclude, config.exclude, ())),
        encrypt=_pick(encrypt, config.encrypt, False),
        name_pattern=_pick(parameters.name_pattern, config.name_pattern, DEFAULT_NAME_PATTERN),
        compression_level=_pick(
            parameters.compression_level, config.compression_level, DEFAULT_COMPRESSION_LEVEL
        ),
        archive_format=_pick(
            parameters.archive_format, config.archive_format, DEFAULT_ARCHIVE_FORMAT
        ),
        container=_pick(parameters.container, config.container, None),
        keep_local=_pick(parameters.keep_local, config.keep_local, False),
        password_manager=password_manager,
        item=_pick(parameters.item, configured_item, None),
        session_token=parameters.session_token,
        password_managers=config.password_managers,
        tools=config.tools,
    )
    _validate(settings)
    return settings


def _split_patterns(text: str) -> tuple[str, ...]:
    return tuple(part.strip() for part in text.split(",") if part.strip())


def _ask_compression_level(prompter: Prompter, default: int) -> int:
    while True:
        answer = prompter.ask_text("Compression level (0-9)", default=str(default)).strip()
        if not answer:
            return default
        if answer.isdigit() and 0 <= int(answer) <= 9:
            return int(answer)


def confirm_settings(
    settings: ResolvedSettings,
    parameters: InvocationParameters,
    prompter: Prompter,
) -> ResolvedSettings:
    """Let the user confirm or edit every setting not given explicitly.

    Each prompt is pre-filled with the config-or-default value; pressing enter
    keeps it. A lone "-" clears the exclude list.
    """
    changes: dict[str, Any] = {}

    if not parameters.supplied("source"):
        changes["source"] = prompter.ask_text("Source directory", default=settings.source or None)
    if not parameters.supplied("destination"):
        changes["destination"] = prompter.ask_text(
            "Backup location (folder or remote:path)", default=settings.destination or None
        )
    if not parameters.supplied("exclude"):
        answer = prompter.ask_text(
            f"Exclude patterns (comma-separated, '{CLEAR_LIST_TOKEN}' for none)",
            default=", ".join(settings.exclude),
        )
        changes["exclude"] = () if answer.strip() == CLEAR_LIST_TOKEN else _split_patterns(answer)
    if not parameters.supplied("encrypt"):
        changes["encrypt"] = prompter.ask_yes_no("Encrypt the archive?", default=settings.encrypt)
    if not parameters.supplied("name_pattern"):
        changes["name_pattern"] = (
            prompter.ask_text("Archive name pattern", default=settings.name_pattern).strip()
            or settings.name_pattern
        )
    if not parameters.supplied("compression_level"):
        changes["compression_level"] = _ask_compression_level(
            prompter, settings.compression_level
        )
    if not parameters.supplied("archive_format"):
        changes["archive_format"] = prompter.ask_choice(
            "Archive format", VALID_ARCHIVE_FORMATS, default=settings.archive_format
        )
    if not parameters.supplied("container"):
        answer = prompter.ask_text(
            "Folder name under the backup location (empty for the source name)",
            default=settings.container or "",
        )
        changes["container"] = answer.strip() or None
    if not parameters.supplied("keep_local"):
        changes["keep_local"] = prompter.ask_yes_no(
            "Keep a local copy after uploading?", default=settings.keep_local
        )
    if (
        changes.get("encrypt", settings.encrypt)
        and parameters.password is None
        and not parameters.supplied("password_manager")
    ):
        password_manager = prompter.ask_choice(
            "Password manager", VALID_PASSWORD_MANAGERS, default=settings.password_manager
        )
        changes["password_manager"] = password_manager
        if password_manager != settings.password_manager and not parameters.supplied("item"):
            changes["item"] = _configured_item(settings.password_managers, password_manager)

    for key in ("source", "destination"):
        if key in changes:
            changes[key] = changes[key].strip()

    confirmed = replace(settings, **changes)
    _validate(confirmed)
    return confirmed
