"""
Error Handling Module for SchemaForge
Defines custom exceptions and error handling utilities

Structural problems found in data or schemas are reported as findings
(see ``schemaforge.schema.findings``); exceptions here are reserved for
conditions that abort an operation.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


class ErrorSeverity(str, Enum):
    """Error severity levels"""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorCategory(str, Enum):
    """Error categories for classification"""
    INPUT = "input"
    SCHEMA = "schema"
    VALIDATION = "validation"
    EMISSION = "emission"
    SUGGESTION = "suggestion"
    CONFIGURATION = "configuration"
    INTERNAL = "internal"


@dataclass
class ErrorContext:
    """Additional context for errors"""
    run_id: Optional[str] = None
    schema_id: Optional[str] = None
    stage: Optional[str] = None
    table_name: Optional[str] = None
    column_name: Optional[str] = None
    target: Optional[str] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "run_id": self.run_id,
            "schema_id": self.schema_id,
            "stage": self.stage,
            "table_name": self.table_name,
            "column_name": self.column_name,
            "target": self.target,
            "timestamp": self.timestamp.isoformat(),
            "metadata": self.metadata,
        }


class SchemaForgeError(Exception):
    """Base exception for SchemaForge"""

    def __init__(
        self,
        message: str,
        category: ErrorCategory = ErrorCategory.INTERNAL,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        context: Optional[ErrorContext] = None,
        recoverable: bool = True,
        suggestions: Optional[List[str]] = None,
        original_error: Optional[Exception] = None
    ):
        super().__init__(message)
        self.message = message
        self.category = category
        self.severity = severity
        self.context = context or ErrorContext()
        self.recoverable = recoverable
        self.suggestions = suggestions or []
        self.original_error = original_error

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "severity": self.severity.value,
            "recoverable": self.recoverable,
            "suggestions": self.suggestions,
            "context": self.context.to_dict(),
            "original_error": str(self.original_error) if self.original_error else None,
        }

    def __str__(self) -> str:
        return f"[{self.category.value}] {self.message}"


class InputError(SchemaForgeError):
    """Tabular input could not be read"""

    def __init__(
        self,
        message: str,
        file_name: Optional[str] = None,
        context: Optional[ErrorContext] = None,
        original_error: Optional[Exception] = None
    ):
        suggestions = ["Check that the file exists and is UTF-8 encoded CSV"]
        if file_name:
            suggestions.append(f"Inspect the header row of '{file_name}'")

        super().__init__(
            message=message,
            category=ErrorCategory.INPUT,
            severity=ErrorSeverity.HIGH,
            context=context,
            recoverable=False,
            suggestions=suggestions,
            original_error=original_error
        )
        self.file_name = file_name


class SchemaError(SchemaForgeError):
    """A schema transformation cannot be applied"""

    def __init__(
        self,
        message: str,
        table_name: Optional[str] = None,
        column_name: Optional[str] = None,
        context: Optional[ErrorContext] = None,
        original_error: Optional[Exception] = None
    ):
        suggestions = ["Verify table/column names exist in the schema"]
        if table_name:
            suggestions.append(f"Check if table '{table_name}' exists")
        if column_name:
            suggestions.append(f"Check if column '{column_name}' exists")

        context = context or ErrorContext()
        context.table_name = context.table_name or table_name
        context.column_name = context.column_name or column_name

        super().__init__(
            message=message,
            category=ErrorCategory.SCHEMA,
            severity=ErrorSeverity.MEDIUM,
            context=context,
            recoverable=True,
            suggestions=suggestions,
            original_error=original_error
        )
        self.table_name = table_name
        self.column_name = column_name


class UnmappableTypeError(SchemaForgeError):
    """A column type has no representation in the requested target"""

    def __init__(
        self,
        message: str,
        type_name: Optional[str] = None,
        target: Optional[str] = None,
        table_name: Optional[str] = None,
        column_name: Optional[str] = None,
        context: Optional[ErrorContext] = None,
    ):
        suggestions = ["Use one of the supported PostgreSQL column types"]
        if type_name:
            suggestions.append(f"Replace type '{type_name}' before exporting")

        context = context or ErrorContext()
        context.target = context.target or target
        context.table_name = context.table_name or table_name
        context.column_name = context.column_name or column_name

        super().__init__(
            message=message,
            category=ErrorCategory.EMISSION,
            severity=ErrorSeverity.HIGH,
            context=context,
            recoverable=False,
            suggestions=suggestions,
        )
        self.type_name = type_name
        self.target = target
        self.table_name = table_name
        self.column_name = column_name


class UpstreamSuggestionError(SchemaForgeError):
    """The schema suggestion collaborator failed or was not confident enough"""

    def __init__(
        self,
        message: str,
        confidence: Optional[float] = None,
        context: Optional[ErrorContext] = None,
        original_error: Optional[Exception] = None
    ):
        super().__init__(
            message=message,
            category=ErrorCategory.SUGGESTION,
            severity=ErrorSeverity.LOW,
            context=context,
            recoverable=True,
            suggestions=[
                "A rule-based schema is used instead",
                "Review the generated schema before exporting",
            ],
            original_error=original_error
        )
        self.confidence = confidence


class ValidationError(SchemaForgeError):
    """Raised when a caller chooses to block on validation errors"""

    def __init__(
        self,
        message: str,
        failed_rules: Optional[List[str]] = None,
        context: Optional[ErrorContext] = None,
        original_error: Optional[Exception] = None
    ):
        suggestions = ["Review validation findings"]
        if failed_rules:
            suggestions.extend([f"Fix validation: {rule}" for rule in failed_rules])

        super().__init__(
            message=message,
            category=ErrorCategory.VALIDATION,
            severity=ErrorSeverity.MEDIUM,
            context=context,
            recoverable=True,
            suggestions=suggestions,
            original_error=original_error
        )
        self.failed_rules = failed_rules or []


class ConfigurationError(SchemaForgeError):
    """Configuration errors"""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        context: Optional[ErrorContext] = None,
        original_error: Optional[Exception] = None
    ):
        suggestions = ["Review configuration settings"]
        if config_key:
            suggestions.append(f"Check configuration for key: {config_key}")

        super().__init__(
            message=message,
            category=ErrorCategory.CONFIGURATION,
            severity=ErrorSeverity.HIGH,
            context=context,
            recoverable=False,
            suggestions=suggestions,
            original_error=original_error
        )
        self.config_key = config_key


def format_error(error: SchemaForgeError) -> str:
    """Format an error for terminal output"""
    lines = [
        f"Error Type: {error.__class__.__name__}",
        f"Category: {error.category.value}",
        f"Message: {error.message}",
    ]

    if error.suggestions:
        lines.append("Suggestions:")
        for suggestion in error.suggestions:
            lines.append(f"  - {suggestion}")

    if error.original_error:
        lines.append(f"Original Error: {str(error.original_error)}")

    return "\n".join(lines)
