"""Global configuration: collection names, limits, environment settings."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Mapping

from pydantic import BaseModel, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from taskcollab.errors import ConfigError

logger = logging.getLogger(__name__)

# Store collections
COMMENTS_COLLECTION = "comments"
NOTIFICATIONS_COLLECTION = "notifications"
ACTIVITIES_COLLECTION = "activities"

# Activity details and notification previews are cut to this many characters
EXCERPT_LENGTH = 50
ELLIPSIS = "..."

# Newest activities delivered per project timeline snapshot
ACTIVITY_FEED_LIMIT = 50

# Longest string accepted as a single reaction emoji (code points)
MAX_EMOJI_LENGTH = 16

# Per-project settings directory
SETTINGS_DIR = ".taskcollab"

ENV_PREFIX = "TASKCOLLAB_"

# Applied before any file or environment value, selected by the ``env`` setting.
_PROFILES: dict[str, dict[str, Any]] = {
    "development": {"log_level": "DEBUG"},
    "production": {"log_level": "WARNING", "store": "sqlite"},
    "testing": {"log_level": "DEBUG", "store": "memory", "store_path": ":memory:"},
}


class Settings(BaseModel):
    """Resolved runtime settings.

    Each field can be set as ``TASKCOLLAB_<FIELD>`` in the environment, in the
    project's ``.env`` or in ``.taskcollab/config.json``.
    """

    env: str = Field("development", description="Profile: development, testing or production")
    log_level: str = Field("INFO", description="Level for the taskcollab logger")
    store: str = Field("memory", description="Document store back-end: memory, sqlite or none")
    store_path: str = Field("taskcollab.db", description="SQLite file used by the sqlite store")
    activity_limit: int = Field(
        ACTIVITY_FEED_LIMIT, ge=1, description="Newest activities per timeline snapshot",
    )
    excerpt_length: int = Field(
        EXCERPT_LENGTH, ge=1, description="Characters kept in activity details and previews",
    )

    @field_validator("store", mode="before")
    @classmethod
    def _lower_store(cls, value: Any) -> Any:
        return value.lower() if isinstance(value, str) else value


def env_key(field_name: str) -> str:
    """Environment variable name for a :class:`Settings` field."""
    return ENV_PREFIX + field_name.upper()


def _field_values(source: Mapping[str, Any], origin: str) -> dict[str, Any]:
    values: dict[str, Any] = {}
    for key, value in source.items():
        name = key[len(ENV_PREFIX):].lower() if key.startswith(ENV_PREFIX) else ""
        if name in Settings.model_fields:
            values[name] = value
        else:
            logger.debug("Ignoring unknown setting %s from %s", key, origin)
    return values


def _read_json(path: Path) -> dict[str, Any]:
    if not path.is_file():
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, OSError):
        logger.warning("Could not read %s, skipping it", path)
        return {}
    if not isinstance(data, dict):
        logger.warning("%s is not a JSON object, skipping it", path)
        return {}
    return data


def _read_dotenv(path: Path) -> dict[str, str]:
    if not path.is_file():
        return {}
    try:
        text = path.read_text(encoding="utf-8")
    except OSError:
        logger.warning("Could not read %s, skipping it", path)
        return {}
    pairs: dict[str, str] = {}
    for line in text.splitlines():
        key, sep, value = line.strip().partition("=")
        if sep and not key.startswith("#"):
            pairs[key.strip()] = value.strip()
    return pairs


def load_config(
    project_path: str | Path,
    environ: Mapping[str, str] | None = None,
) -> dict[str, Any]:
    """Raw setting values keyed by field name, before validation.

    Later sources win: the profile, ``.taskcollab/config.json``, ``.env``,
    then the process environment.  The profile is picked by the winning
    ``env`` value.
    """
    root = Path(project_path)
    env = os.environ if environ is None else environ

    layered: dict[str, Any] = {}
    layered.update(_field_values(_read_json(root / SETTINGS_DIR / "config.json"), "config.json"))
    layered.update(_field_values(_read_dotenv(root / ".env"), ".env"))
    layered.update(_field_values(
        {k: v for k, v in env.items() if k.startswith(ENV_PREFIX)}, "environment",
    ))

    profile = str(layered.get("env", Settings.model_fields["env"].default))
    if profile not in _PROFILES:
        logger.warning("Unknown profile '%s', using field defaults", profile)
    return {**_PROFILES.get(profile, {}), **layered}


def load_settings(
    project_path: str | Path = ".",
    environ: Mapping[str, str] | None = None,
) -> Settings:
    """Load and validate :class:`Settings` for a project directory.

    Raises
    ------
    ConfigError
        A value does not fit its setting, e.g. a non-integer activity limit.
    """
    values = load_config(project_path, environ)
    try:
        return Settings.model_validate(values)
    except PydanticValidationError as exc:
        problems = "; ".join(
            f"{env_key(str(err['loc'][0]))}={values.get(err['loc'][0])!r}: {err['msg']}"
            for err in exc.errors()
        )
        raise ConfigError(f"Invalid taskcollab settings: {problems}") from exc


def generate_env_template(project_path: str | Path) -> Path:
    """Write ``.env.example`` documenting every setting and its default."""
    lines = ["# taskcollab settings. Copy to .env and change what you need.", ""]
    for name, field in Settings.model_fields.items():
        lines.append(f"# {field.description}")
        lines.append(f"{env_key(name)}={field.default}")
        lines.append("")

    path = Path(project_path) / ".env.example"
    path.write_text("\n".join(lines), encoding="utf-8")
    return path


def configure_logging(settings: Settings) -> None:
    """Apply the configured level to the package logger."""
    level = logging.getLevelName(settings.log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO
    logging.getLogger("taskcollab").setLevel(level)
