"""
Utilities Package for SchemaForge
"""
from .logging import (
    setup_logging,
    get_logger,
    set_run_id,
    get_run_id,
    set_schema_id,
    get_schema_id,
    set_stage,
    clear_context,
    log_context,
    log_operation,
)

from .errors import (
    ErrorSeverity,
    ErrorCategory,
    ErrorContext,
    SchemaForgeError,
    InputError,
    SchemaError,
    UnmappableTypeError,
    UpstreamSuggestionError,
    ValidationError,
    ConfigurationError,
    format_error,
)

from .metrics import (
    MetricsCollector,
    get_metrics_collector,
    counter,
    gauge,
    histogram,
    timer,
    time_operation,
    SchemaForgeMetrics,
)

__all__ = [
    # Logging
    "setup_logging",
    "get_logger",
    "set_run_id",
    "get_run_id",
    "set_schema_id",
    "get_schema_id",
    "set_stage",
    "clear_context",
    "log_context",
    "log_operation",
    # Errors
    "ErrorSeverity",
    "ErrorCategory",
    "ErrorContext",
    "SchemaForgeError",
    "InputError",
    "SchemaError",
    "UnmappableTypeError",
    "UpstreamSuggestionError",
    "ValidationError",
    "ConfigurationError",
    "format_error",
    # Metrics
    "MetricsCollector",
    "get_metrics_collector",
    "counter",
    "gauge",
    "histogram",
    "timer",
    "time_operation",
    "SchemaForgeMetrics",
]
