"""
Structured diagnostics shared by inference, validation and suggestion handling
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional


class FindingSeverity(str, Enum):
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


class FindingCode(str, Enum):
    """Machine-readable finding codes"""
    # Tabular input
    NO_DATA = "NO_DATA"
    EMPTY_HEADERS = "EMPTY_HEADERS"
    DUPLICATE_HEADERS = "DUPLICATE_HEADERS"
    SQL_RESERVED_WORD = "SQL_RESERVED_WORD"
    HEADER_NAMING = "HEADER_NAMING"
    HEADER_TOO_LONG = "HEADER_TOO_LONG"
    EMPTY_ROWS = "EMPTY_ROWS"
    HIGH_MISSING_DATA = "HIGH_MISSING_DATA"
    MODERATE_MISSING_DATA = "MODERATE_MISSING_DATA"
    INCONSISTENT_FORMAT = "INCONSISTENT_FORMAT"

    # Naming
    INVALID_TABLE_NAME = "INVALID_TABLE_NAME"
    INVALID_COLUMN_NAME = "INVALID_COLUMN_NAME"
    NAME_TOO_LONG = "NAME_TOO_LONG"
    RESERVED_WORD = "RESERVED_WORD"
    DUPLICATE_TABLE = "DUPLICATE_TABLE"
    DUPLICATE_COLUMN = "DUPLICATE_COLUMN"
    MIXED_NAMING_CONVENTION = "MIXED_NAMING_CONVENTION"

    # Keys
    NO_PRIMARY_KEY = "NO_PRIMARY_KEY"
    MULTIPLE_PRIMARY_KEYS = "MULTIPLE_PRIMARY_KEYS"
    PK_NULLABLE = "PK_NULLABLE"
    ID_NOT_UUID = "ID_NOT_UUID"

    # Column shape
    MISSING_LENGTH = "MISSING_LENGTH"
    LENGTH_TOO_LARGE = "LENGTH_TOO_LARGE"
    INVALID_PRECISION_SCALE = "INVALID_PRECISION_SCALE"
    UNKNOWN_TYPE = "UNKNOWN_TYPE"
    MISSING_ENUM_VALUES = "MISSING_ENUM_VALUES"

    # Relationships
    MISSING_SOURCE_TABLE = "MISSING_SOURCE_TABLE"
    MISSING_TARGET_TABLE = "MISSING_TARGET_TABLE"
    MISSING_SOURCE_COLUMN = "MISSING_SOURCE_COLUMN"
    MISSING_TARGET_COLUMN = "MISSING_TARGET_COLUMN"
    ONE_TO_ONE_NOT_UNIQUE = "ONE_TO_ONE_NOT_UNIQUE"
    SELF_REF_SAME_COLUMN = "SELF_REF_SAME_COLUMN"
    TYPE_MISMATCH = "TYPE_MISMATCH"
    UNRESOLVED_FOREIGN_KEY = "UNRESOLVED_FOREIGN_KEY"
    CIRCULAR_DEPENDENCY = "CIRCULAR_DEPENDENCY"

    # Indexes and policies
    INDEX_UNKNOWN_COLUMN = "INDEX_UNKNOWN_COLUMN"
    POLICY_UNKNOWN_TABLE = "POLICY_UNKNOWN_TABLE"
    POLICY_SHAPE = "POLICY_SHAPE"

    # Layout
    TABLE_OVERLAP = "TABLE_OVERLAP"

    # Suggestion boundary
    UPSTREAM_SUGGESTION_FAILED = "UPSTREAM_SUGGESTION_FAILED"
    UNPARSED_CONSTRAINT = "UNPARSED_CONSTRAINT"


@dataclass(frozen=True)
class Finding:
    """A severity-tagged diagnostic with an optional fix suggestion"""
    severity: FindingSeverity
    code: str
    message: str
    table: Optional[str] = None
    column: Optional[str] = None
    suggestion: Optional[str] = None
    auto_fixable: bool = False

    def __post_init__(self):
        if isinstance(self.code, FindingCode):
            object.__setattr__(self, "code", self.code.value)

    @classmethod
    def error(cls, code: str, message: str, **kwargs: Any) -> "Finding":
        return cls(FindingSeverity.ERROR, code, message, **kwargs)

    @classmethod
    def warning(cls, code: str, message: str, **kwargs: Any) -> "Finding":
        return cls(FindingSeverity.WARNING, code, message, **kwargs)

    @classmethod
    def info(cls, code: str, message: str, **kwargs: Any) -> "Finding":
        return cls(FindingSeverity.INFO, code, message, **kwargs)

    @property
    def is_error(self) -> bool:
        return self.severity == FindingSeverity.ERROR

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "severity": self.severity.value,
            "code": self.code,
            "message": self.message,
            "auto_fixable": self.auto_fixable,
        }
        for key in ("table", "column", "suggestion"):
            value = getattr(self, key)
            if value is not None:
                data[key] = value
        return data

    def __str__(self) -> str:
        location = ".".join(p for p in (self.table, self.column) if p)
        where = f" ({location})" if location else ""
        return f"{self.severity.value.upper()} {self.code}{where}: {self.message}"


@dataclass
class ValidationResult:
    """Outcome of a validation pass"""
    errors: List[Finding] = field(default_factory=list)
    warnings: List[Finding] = field(default_factory=list)
    infos: List[Finding] = field(default_factory=list)

    @classmethod
    def from_findings(cls, findings: Iterable[Finding]) -> "ValidationResult":
        result = cls()
        for finding in findings:
            result.add(finding)
        return result

    def add(self, finding: Finding) -> None:
        if finding.severity == FindingSeverity.ERROR:
            self.errors.append(finding)
        elif finding.severity == FindingSeverity.WARNING:
            self.warnings.append(finding)
        else:
            self.infos.append(finding)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    @property
    def findings(self) -> List[Finding]:
        return [*self.errors, *self.warnings, *self.infos]

    def codes(self) -> List[str]:
        return [f.code for f in self.findings]

    def has_code(self, code: str) -> bool:
        code = code.value if isinstance(code, FindingCode) else code
        return any(f.code == code for f in self.findings)

    def copy(self) -> "ValidationResult":
        return ValidationResult(list(self.errors), list(self.warnings), list(self.infos))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "is_valid": self.is_valid,
            "errors": [f.to_dict() for f in self.errors],
            "warnings": [f.to_dict() for f in self.warnings],
            "infos": [f.to_dict() for f in self.infos],
        }
