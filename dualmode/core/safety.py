"""Production safety classification for test operations.

The validator reports risk, it never raises: callers decide whether a given
``RiskLevel`` is fatal. Outside PRODUCTION mode every single operation is low
risk, since isolated data is disposable; the bulk delete threshold applies in
every mode.
"""

import re
from enum import Enum, IntEnum
from typing import Any, Dict, Iterable, List, Optional

from pydantic import BaseModel, Field, field_serializer, field_validator

from dualmode.core.config import SafetyConfig
from dualmode.core.modes import TestMode


class RiskLevel(IntEnum):
    """Ordered risk classification; escalation takes the maximum."""

    LOW = 0
    MEDIUM = 1
    HIGH = 2
    CRITICAL = 3

    @property
    def label(self) -> str:
        """Lowercase name, as used in reports."""
        return self.name.lower()

    @classmethod
    def parse(cls, value: Any) -> "RiskLevel":
        """Accept a RiskLevel, its integer value or its (case-insensitive) name."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls[value.strip().upper()]
            except KeyError:
                raise ValueError(f"Unknown risk level: {value}") from None
        return cls(value)


class OperationKind(str, Enum):
    """Kind of mutation applied to test entities."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    RESTORE = "restore"


class TestOperation(BaseModel):
    """An operation proposed against a target entity."""

    type: OperationKind
    entity_type: str = ""
    target_entity: Optional[Dict[str, Any]] = None
    entity_name: Optional[str] = None

    @field_validator("type", mode="before")
    @classmethod
    def normalize_type(cls, v: Any) -> Any:
        """Accept operation kinds in any case."""
        if isinstance(v, str):
            return v.strip().lower()
        return v


class SafetyValidationResult(BaseModel):
    """Outcome of a safety validation pass."""

    is_valid: bool = True
    issues: List[str] = Field(default_factory=list)
    risk_level: RiskLevel = RiskLevel.LOW

    @field_validator("risk_level", mode="before")
    @classmethod
    def parse_risk_level(cls, v: Any) -> RiskLevel:
        """Allow risk levels to be given by name."""
        return RiskLevel.parse(v)

    @field_serializer("risk_level")
    def serialize_risk_level(self, risk_level: RiskLevel) -> str:
        """Serialize risk levels by name."""
        return risk_level.label

    def escalate(self, other: "SafetyValidationResult") -> None:
        """Fold a failed sub-check into this result; never downgrades the risk."""
        if other.is_valid:
            return
        self.issues.extend(other.issues)
        self.risk_level = max(self.risk_level, other.risk_level)
        self.is_valid = False

    def is_blocking(self, threshold: RiskLevel = RiskLevel.HIGH) -> bool:
        """True when the risk reaches ``threshold``."""
        return self.risk_level >= threshold


def _failed(issues: List[str], risk_level: RiskLevel) -> SafetyValidationResult:
    if not issues:
        return SafetyValidationResult()
    return SafetyValidationResult(is_valid=False, issues=issues, risk_level=risk_level)


def _entity_kind(entity_type: Optional[str]) -> str:
    """Singular lowercase entity kind, so ``customers`` and ``Customer`` compare equal."""
    kind = (entity_type or "").strip().lower()
    if kind.endswith("s") and not kind.endswith("ss"):
        kind = kind[:-1]
    return kind


class ProductionSafetyValidator:
    """Validates operations to ensure production safety.

    Four independent checks run for every PRODUCTION operation: entity safety,
    operation type, naming convention and dangerous patterns. All of them always
    run so the caller sees the complete list of issues in one pass.
    """

    def __init__(self, config: Optional[SafetyConfig] = None) -> None:
        """Initialize the validator.

        Args:
            config: Marker and pattern configuration; defaults to ``SafetyConfig()``
        """
        self.config = config or SafetyConfig()
        self._dangerous = [re.compile(p, re.IGNORECASE) for p in self.config.dangerous_patterns]
        self._test_ids = [re.compile(p, re.IGNORECASE) for p in self.config.test_id_patterns]

    # ------------------------------------------------------------------ public

    def validate_operation(
        self, operation: TestOperation, mode: TestMode
    ) -> SafetyValidationResult:
        """Validate a single operation for the given mode."""
        if mode != TestMode.PRODUCTION:
            return SafetyValidationResult()

        result = SafetyValidationResult()
        result.escalate(self._validate_entity_safety(operation))
        result.escalate(self._validate_operation_type(operation))
        result.escalate(self._validate_naming_conventions(operation))
        result.escalate(self._validate_dangerous_patterns(operation))
        return result

    def validate_bulk_operation(
        self, operations: Iterable[TestOperation], mode: TestMode
    ) -> SafetyValidationResult:
        """Validate a batch; too many deletes in one batch is high risk in any mode."""
        operations = list(operations)
        result = SafetyValidationResult()
        deletes = sum(1 for op in operations if op.type == OperationKind.DELETE)
        if deletes > self.config.bulk_delete_threshold:
            result.escalate(
                _failed(
                    [f"Bulk delete operation with {deletes} items - high risk"], RiskLevel.HIGH
                )
            )

        if mode != TestMode.PRODUCTION:
            return result
        for operation in operations:
            result.escalate(self.validate_operation(operation, mode))
        return result

    def has_test_markers(self, entity: Optional[Dict[str, Any]]) -> bool:
        """Check the textual fields of ``entity`` for a recognised test marker."""
        if not entity:
            return False
        for field in ("name", "email", "identifier", "title"):
            value = entity.get(field)
            if not isinstance(value, str) or not value:
                continue
            lowered = value.lower()
            if any(marker.lower() in lowered for marker in self.config.test_markers):
                return True
        return False

    def has_character_name(self, name: Optional[str]) -> bool:
        """Check whether ``name`` contains a placeholder character name (case-sensitive)."""
        if not isinstance(name, str):
            return False
        return any(character in name for character in self.config.character_names)

    def looks_like_test_id(self, value: Any) -> bool:
        """Check whether an identifier follows a synthetic id pattern."""
        if value is None:
            return False
        return any(pattern.search(str(value)) for pattern in self._test_ids)

    def is_test_entity(self, entity: Optional[Dict[str, Any]]) -> bool:
        """An entity is synthetic if it carries a marker, a character name or a test id."""
        if not entity:
            return False
        if self.has_test_markers(entity):
            return True
        if self.has_character_name(entity.get("name")):
            return True
        return self.looks_like_test_id(entity.get("id"))

    def get_test_markers(self) -> List[str]:
        """Return a copy of the recognised test markers."""
        return list(self.config.test_markers)

    def get_character_names(self) -> List[str]:
        """Return a copy of the recognised placeholder character names."""
        return list(self.config.character_names)

    # ------------------------------------------------------------------ checks

    @staticmethod
    def _target(operation: TestOperation) -> Optional[Dict[str, Any]]:
        if operation.target_entity:
            return operation.target_entity
        if operation.entity_name:
            return {"name": operation.entity_name}
        return None

    def _validate_entity_safety(self, operation: TestOperation) -> SafetyValidationResult:
        target = self._target(operation)
        result = SafetyValidationResult()

        if target is not None and not self.is_test_entity(target):
            name = operation.entity_name or target.get("name") or "unknown"
            result.escalate(
                _failed(
                    [f'Entity "{name}" lacks test markers - potential production data'],
                    RiskLevel.HIGH,
                )
            )

        if operation.entity_type:
            result.escalate(self._validate_entity_type(operation.entity_type, target))
        return result

    def _validate_entity_type(
        self, entity_type: str, entity: Optional[Dict[str, Any]]
    ) -> SafetyValidationResult:
        entity = entity or {}
        kind = _entity_kind(entity_type)

        if kind in ("customer", "user"):
            email = entity.get("email")
            if email and self.config.email_domain not in email:
                return _failed(
                    [f"Customer email must use {self.config.email_domain} domain"],
                    RiskLevel.MEDIUM,
                )
        elif kind == "route":
            name = entity.get("name")
            if name and self.config.route_marker not in name:
                return _failed(
                    [f'Route name must include "{self.config.route_marker}" marker'],
                    RiskLevel.MEDIUM,
                )
        elif kind == "ticket":
            customer_id = entity.get("customerId") or entity.get("customer_id")
            if customer_id and not self.looks_like_test_id(customer_id):
                return _failed(["Ticket references non-test customer ID"], RiskLevel.HIGH)

        return SafetyValidationResult()

    def _validate_operation_type(self, operation: TestOperation) -> SafetyValidationResult:
        is_test = self.is_test_entity(self._target(operation))

        if operation.type == OperationKind.DELETE and not is_test:
            return _failed(["Delete operation targets non-test entity"], RiskLevel.CRITICAL)
        if operation.type in (OperationKind.UPDATE, OperationKind.RESTORE) and not is_test:
            return _failed(
                [f"{operation.type.value.capitalize()} operation targets non-test entity"],
                RiskLevel.HIGH,
            )
        return SafetyValidationResult()

    def _validate_naming_conventions(self, operation: TestOperation) -> SafetyValidationResult:
        target = operation.target_entity or {}
        name = operation.entity_name or target.get("name")
        marker = self.config.name_marker
        issues: List[str] = []

        if name:
            if marker not in name:
                issues.append(f'Entity name "{name}" doesn\'t follow {marker} convention')
            if _entity_kind(operation.entity_type) in ("customer", "user"):
                if not self.has_character_name(name):
                    issues.append(f'Customer name "{name}" should include a placeholder character')
            email = target.get("email")
            if email and self.config.email_domain not in email:
                issues.append(f'Email "{email}" doesn\'t use {self.config.email_domain} domain')

        return _failed(issues, RiskLevel.MEDIUM)

    def _validate_dangerous_patterns(self, operation: TestOperation) -> SafetyValidationResult:
        target = operation.target_entity or {}
        parts = [
            operation.entity_name,
            target.get("name"),
            target.get("email"),
            target.get("identifier"),
        ]
        text = " ".join(str(part) for part in parts if part)

        issues = [
            f"Dangerous pattern detected: {pattern.pattern}"
            for pattern in self._dangerous
            if pattern.search(text)
        ]
        return _failed(issues, RiskLevel.CRITICAL)
