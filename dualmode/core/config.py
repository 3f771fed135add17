"""Configuration management for dualmode with Pydantic validation.

Three layers:

* ``Settings``: environment-backed process settings (the tag/environment source
  handed to mode detection).
* ``SafetyConfig``: the marker and placeholder-name sets consumed read-only by the
  production safety validator, loadable from YAML.
* ``ManagerOptions``: per-manager feature switches.
"""

import os
import re
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_TEST_MARKERS = [
    "looneyTunesTest",
    "test_",
    "Test Route",
    "looneytunestest.com",
]

DEFAULT_CHARACTER_NAMES = [
    "Bugs Bunny",
    "Daffy Duck",
    "Porky Pig",
    "Tweety Bird",
    "Sylvester Cat",
    "Pepe Le Pew",
    "Foghorn Leghorn",
    "Marvin Martian",
    "Yosemite Sam",
    "Speedy Gonzales",
]

DEFAULT_DANGEROUS_PATTERNS = [
    r"\b(admin|administrator|root|system|super)\b",
    r"\b(all|every|entire|complete)\b",
    r"\b(production|prod|live|real)\b",
    r"\b(delete|drop|truncate|remove)\s+(all\b|everything\b|\*)",
]

DEFAULT_TEST_ID_PATTERNS = [
    r"^test_",
    r"looneyTunesTest",
    r"_test_",
    r"^[0-9]+_test",
]

DEFAULT_ROUTE_LOCATIONS = ["Cedar Falls", "Winfield", "O'Fallon"]


def _substitute_env_vars(content: str) -> str:
    """Replace ``${VAR_NAME}`` with the environment value, leaving unknown vars untouched."""

    def substitute(match: "re.Match[str]") -> str:
        return os.getenv(match.group(1), match.group(0))

    return re.sub(r"\$\{([^}]+)\}", substitute, content)


def load_yaml_file(path: str) -> Any:
    """Load a YAML file after environment variable substitution."""
    with open(path, "r") as f:
        content = f.read()
    return yaml.safe_load(_substitute_env_vars(content))


class Settings(BaseSettings):
    """Pydantic settings class.

    Attributes:
    ----------
        TEST_MODE (Optional[str]): Explicit mode override (isolated, production, dual).
        NODE_ENV (Optional[str]): Deployment environment hint (production, test, ...).
        API_BASE_URL (Optional[str]): Base URL of the system under test.
        DB_CONFIG (Optional[str]): Connection string of the system under test.
        LOG_LEVEL (str): The logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        CLEANUP_MAX_RETRIES (int): Default retry budget for scheduled cleanup tasks.
        CLEANUP_RETRY_DELAY (float): Seconds to wait before a same-pass retry.
        SAFETY_CONFIG_PATH (Optional[str]): YAML file overriding the safety markers.

    """

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    TEST_MODE: Optional[str] = None
    NODE_ENV: Optional[str] = None
    API_BASE_URL: Optional[str] = None
    DB_CONFIG: Optional[str] = None
    LOG_LEVEL: str = "INFO"
    CLEANUP_MAX_RETRIES: int = Field(3, ge=0)
    CLEANUP_RETRY_DELAY: float = Field(0.0, ge=0.0)
    SAFETY_CONFIG_PATH: Optional[str] = None

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Normalize and validate the log level name."""
        level = v.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"LOG_LEVEL must be a standard logging level, got: {v}")
        return level

    def mode_environment(self) -> Dict[str, str]:
        """Return the environment variables consulted by mode detection and validation."""
        values = {
            "TEST_MODE": self.TEST_MODE,
            "NODE_ENV": self.NODE_ENV,
            "API_BASE_URL": self.API_BASE_URL,
            "DB_CONFIG": self.DB_CONFIG,
        }
        return {key: value for key, value in values.items() if value}

    def load_safety_config(self) -> "SafetyConfig":
        """Load the safety configuration from ``SAFETY_CONFIG_PATH`` or fall back to defaults."""
        if self.SAFETY_CONFIG_PATH:
            return SafetyConfig.from_file(self.SAFETY_CONFIG_PATH)
        return SafetyConfig()


class SafetyConfig(BaseModel):
    """Markers and thresholds used to recognise synthetic test data."""

    model_config = ConfigDict(extra="forbid")

    name_marker: str = Field(
        "looneyTunesTest", description="Literal every production test entity name must contain"
    )
    email_domain: str = Field(
        "looneytunestest.com", description="Domain every production test email must use"
    )
    route_marker: str = Field("Test Route", description="Literal every test route name contains")
    test_markers: List[str] = Field(
        default_factory=lambda: list(DEFAULT_TEST_MARKERS),
        description="Case-insensitive substrings proving an entity is synthetic",
    )
    character_names: List[str] = Field(
        default_factory=lambda: list(DEFAULT_CHARACTER_NAMES),
        description="Placeholder character names used as synthetic customer names",
    )
    dangerous_patterns: List[str] = Field(
        default_factory=lambda: list(DEFAULT_DANGEROUS_PATTERNS),
        description="Case-insensitive regular expressions flagging dangerous targets",
    )
    test_id_patterns: List[str] = Field(
        default_factory=lambda: list(DEFAULT_TEST_ID_PATTERNS),
        description="Case-insensitive regular expressions matching synthetic ids",
    )
    route_locations: List[str] = Field(
        default_factory=lambda: list(DEFAULT_ROUTE_LOCATIONS),
        description="Locations production test routes may be placed in",
    )
    bulk_delete_threshold: int = Field(
        10, ge=0, description="Deletes allowed in one batch before it is flagged"
    )

    @field_validator("test_markers", "character_names")
    @classmethod
    def validate_not_empty(cls, v: List[str]) -> List[str]:
        """Reject empty marker lists and blank entries."""
        cleaned = [item for item in v if item and item.strip()]
        if not cleaned:
            raise ValueError("marker lists must contain at least one non-blank entry")
        return cleaned

    @field_validator("dangerous_patterns", "test_id_patterns")
    @classmethod
    def validate_patterns(cls, v: List[str]) -> List[str]:
        """Ensure every pattern compiles."""
        for pattern in v:
            try:
                re.compile(pattern)
            except re.error as e:
                raise ValueError(f"Invalid regular expression '{pattern}': {e}") from e
        return v

    @model_validator(mode="after")
    def validate_marker_consistency(self) -> "SafetyConfig":
        """The name marker must itself be a recognised test marker."""
        lowered = [marker.lower() for marker in self.test_markers]
        if self.name_marker.lower() not in lowered:
            self.test_markers.append(self.name_marker)
        return self

    @classmethod
    def from_file(cls, config_path: str) -> "SafetyConfig":
        """Load and validate the safety configuration from a YAML file."""
        data = load_yaml_file(config_path) or {}
        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SafetyConfig":
        """Create the safety configuration from a dictionary.

        Accepts either the flat field names or the whole document nested under a
        ``safety`` key.
        """
        data = dict(data)
        if "safety" in data and isinstance(data["safety"], dict):
            data = dict(data["safety"])
        return cls(**data)


class ManagerOptions(BaseModel):
    """Feature switches for ``TestContextManager``."""

    model_config = ConfigDict(extra="forbid")

    enable_production_safety: bool = Field(
        True, description="Vet production cleanup through the safety validator"
    )
    auto_cleanup: bool = Field(True, description="Execute cleanup tasks on teardown")
    track_data_creation: bool = Field(True, description="Record created entities per run")
