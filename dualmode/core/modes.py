"""Test mode detection from tags and environment.

Detection is a pure function of its inputs: the caller resolves the environment
(see ``Settings.mode_environment``) and passes it in, so repeated calls with the
same arguments always agree. Detection never raises; anything it cannot make
sense of degrades to the default mode with a recorded ``fallback_reason``.
"""

import re
from enum import Enum
from typing import Iterable, List, Literal, Mapping, Optional

from pydantic import BaseModel, Field


class TestMode(str, Enum):
    """Kind of environment a test runs against."""

    ISOLATED = "isolated"
    PRODUCTION = "production"
    DUAL = "dual"


DEFAULT_MODE = TestMode.ISOLATED

TAG_ISOLATED = "@isolated"
TAG_PRODUCTION = "@production"
TAG_DUAL = "@dual"

ENV_TEST_MODE = "TEST_MODE"
ENV_NODE_ENV = "NODE_ENV"
ENV_API_BASE_URL = "API_BASE_URL"
ENV_DB_CONFIG = "DB_CONFIG"

# Explicit tags, most guarded first; a conflict resolves to the earliest entry
_EXPLICIT_TAGS = (
    (TAG_PRODUCTION, TestMode.PRODUCTION),
    (TAG_DUAL, TestMode.DUAL),
    (TAG_ISOLATED, TestMode.ISOLATED),
)

_DB_CONFIG_PATTERNS = (
    re.compile(r"Server=.+;Database=.+;User Id=.+;Password=.+", re.IGNORECASE),
    re.compile(r"host=.+", re.IGNORECASE),
    re.compile(r"server=.+", re.IGNORECASE),
    re.compile(r"data source=.+", re.IGNORECASE),
    re.compile(r"^[a-z][a-z0-9+]*://.+", re.IGNORECASE),
)


class ModeDetectionResult(BaseModel):
    """Outcome of mode detection, with an explanation of where it came from."""

    mode: TestMode
    confidence: float = Field(..., ge=0.0)
    source: Literal["tags", "environment", "default"]
    fallback_reason: Optional[str] = None


class TestDefinition(BaseModel):
    """Modes a test declares it can run under."""

    name: str
    tags: List[str] = Field(default_factory=list)
    requirements: List[str] = Field(default_factory=list)
    supported_modes: List[TestMode] = Field(default_factory=list)


class EnvironmentValidation(BaseModel):
    """Result of checking that the environment can support a mode."""

    is_valid: bool
    issues: List[str] = Field(default_factory=list)


def _normalize(tags: Iterable[str]) -> List[str]:
    return [str(tag).strip().lower() for tag in tags if tag is not None]


def _from_tags(tags: List[str]) -> Optional[ModeDetectionResult]:
    found = [mode for tag, mode in _EXPLICIT_TAGS if tag in tags]
    if not found:
        return None

    reason = None
    if len(found) > 1:
        reason = (
            f"Conflicting mode tags ({', '.join(m.value for m in found)}); "
            f"using the most guarded mode: {found[0].value}"
        )
    return ModeDetectionResult(mode=found[0], confidence=1.1, source="tags", fallback_reason=reason)


def _from_environment(
    environ: Mapping[str, str], notes: List[str]
) -> Optional[ModeDetectionResult]:
    test_mode = (environ.get(ENV_TEST_MODE) or "").strip()
    if test_mode:
        try:
            return ModeDetectionResult(
                mode=TestMode(test_mode.lower()), confidence=1.0, source="environment"
            )
        except ValueError:
            notes.append(f"Invalid {ENV_TEST_MODE} value: {test_mode}")

    node_env = (environ.get(ENV_NODE_ENV) or "").strip().lower()
    if node_env in ("production", "prod"):
        return ModeDetectionResult(mode=TestMode.PRODUCTION, confidence=0.7, source="environment")
    if node_env in ("test", "testing"):
        return ModeDetectionResult(mode=TestMode.ISOLATED, confidence=0.6, source="environment")

    return None


def _from_tag_hints(tags: List[str]) -> Optional[ModeDetectionResult]:
    if any("api" in tag or "integration" in tag for tag in tags):
        return ModeDetectionResult(
            mode=TestMode.DUAL,
            confidence=0.4,
            source="tags",
            fallback_reason="API/Integration tests typically benefit from dual mode",
        )
    if any("navigation" in tag for tag in tags):
        return ModeDetectionResult(
            mode=TestMode.ISOLATED,
            confidence=0.3,
            source="tags",
            fallback_reason="Navigation tests often work well with isolated data",
        )
    return None


def detect_mode(
    test_name: str,
    tags: Iterable[str],
    run_id: Optional[str] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> ModeDetectionResult:
    """Detect the test mode.

    Resolution order, first match wins: explicit mode tag, environment override
    (``TEST_MODE`` then ``NODE_ENV``), implicit tag hints, default (ISOLATED).

    Args:
        test_name: Name of the test; only used in explanations
        tags: Raw tag list declared on the test
        run_id: Identifier of the run being initialized
        environ: Resolved environment variables; ``None`` means an empty environment

    Returns:
        The detection result
    """
    normalized = _normalize(tags or [])
    environ = environ or {}
    notes: List[str] = []

    result = _from_tags(normalized)
    if result:
        return result

    result = _from_environment(environ, notes)
    if result:
        return result

    result = _from_tag_hints(normalized)
    if result:
        if notes:
            result.fallback_reason = "; ".join(notes + [result.fallback_reason])
        return result

    subject = f"'{test_name}'" + (f" (run {run_id})" if run_id else "")
    notes.append(f"No mode-specific tags or environment found for {subject}")
    return ModeDetectionResult(
        mode=DEFAULT_MODE,
        confidence=1.0,
        source="default",
        fallback_reason="; ".join(notes) + f". Using default {DEFAULT_MODE.value} mode.",
    )


def get_default_mode() -> TestMode:
    """Return the mode used when nothing else applies."""
    return DEFAULT_MODE


def get_fallback_mode(primary: TestMode) -> Optional[TestMode]:
    """Return the mode to fall back to when ``primary`` cannot be used."""
    if primary in (TestMode.PRODUCTION, TestMode.DUAL):
        return TestMode.ISOLATED
    return None


def create_test_definition(
    name: str, tags: Iterable[str], requirements: Optional[List[str]] = None
) -> TestDefinition:
    """Build a test definition whose supported modes come from explicit tags."""
    tags = list(tags or [])
    normalized = _normalize(tags)
    supported = [mode for tag, mode in reversed(_EXPLICIT_TAGS) if tag in normalized]
    if not supported:
        supported = [TestMode.DUAL]
    return TestDefinition(
        name=name, tags=tags, requirements=requirements or [], supported_modes=supported
    )


def validate_mode_compatibility(mode: TestMode, test: TestDefinition) -> bool:
    """Check whether ``test`` can run under ``mode``; DUAL support accepts any mode."""
    if TestMode.DUAL in test.supported_modes:
        return True
    return mode in test.supported_modes


def is_valid_db_config(value: Optional[str]) -> bool:
    """Loose format check for a database connection string."""
    if not value or not isinstance(value, str):
        return False
    return any(pattern.search(value) for pattern in _DB_CONFIG_PATTERNS)


def validate_environment_configuration(
    mode: TestMode, environ: Optional[Mapping[str, str]] = None
) -> EnvironmentValidation:
    """Check that the environment carries what ``mode`` needs.

    ISOLATED needs nothing. PRODUCTION needs ``API_BASE_URL`` and a well-formed
    ``DB_CONFIG``. DUAL needs whatever PRODUCTION needs.
    """
    environ = environ or {}
    issues: List[str] = []

    if mode in (TestMode.PRODUCTION, TestMode.DUAL):
        prefix = "Dual mode production validation failed: " if mode == TestMode.DUAL else ""
        if not environ.get(ENV_API_BASE_URL):
            issues.append(f"{prefix}{ENV_API_BASE_URL} is required for production mode")
        db_config = environ.get(ENV_DB_CONFIG)
        if not db_config:
            issues.append(f"{prefix}{ENV_DB_CONFIG} is required for production mode")
        elif not is_valid_db_config(db_config):
            issues.append(f"{prefix}{ENV_DB_CONFIG} has invalid format")

    return EnvironmentValidation(is_valid=not issues, issues=issues)
