"""
SchemaForge
===========

Infers a PostgreSQL schema from CSV files, validates it, orders its tables
by dependency and renders it as SQL migrations, Prisma, TypeScript,
Mermaid or DBML.

Features:
- Column type inference from sampled values (UUID, email, URL, integers,
  decimals, booleans, dates, JSON)
- Structural checks on headers and rows
- Immutable schema model with a cached, advisory validator
- Naming-convention relationship discovery and cycle-safe table ordering
- Emitters built on small syntax trees rendered by per-target printers
- Optional external schema suggestions with a rule-based fallback

Quick Start:
------------

    from schemaforge import create_pipeline

    pipeline = create_pipeline(include_down=True)
    result = pipeline.run_paths(
        ["customers.csv", "orders.csv"],
        targets=["migration", "typescript"],
    )
    result.write("generated")

Working with the model directly:
--------------------------------

    from schemaforge import load_csv, SchemaBuilder, validate_schema, emit

    files = [load_csv("customers.csv")]
    outcome = SchemaBuilder().build(files)
    report = validate_schema(outcome.schema)
    artifacts = emit(outcome.schema, "prisma")
"""

__version__ = "1.0.0"
__author__ = "SchemaForge Team"

# Utilities
from .utils import (
    setup_logging,
    get_logger,
    SchemaForgeError,
    InputError,
    SchemaError,
    UnmappableTypeError,
    UpstreamSuggestionError,
    ValidationError,
    ConfigurationError,
    get_metrics_collector,
    SchemaForgeMetrics,
)

# Configuration
from .config import (
    LogLevel,
    InferenceConfig,
    BuilderConfig,
    SuggestionConfig,
    EmitterConfig,
    ValidationConfig,
    SystemConfig,
    get_config,
    set_config,
)

# Schema model
from .schema import (
    AccessPolicy,
    Cardinality,
    Column,
    Constraint,
    ConstraintType,
    Finding,
    FindingCode,
    FindingSeverity,
    Index,
    IndexMethod,
    PolicyOperation,
    PostgresType,
    ReferentialAction,
    Relationship,
    RelationshipOrigin,
    Schema,
    Table,
    ValidationResult,
)

# Relationships and ordering
from .resolver import (
    DependencyOrder,
    DependencyResolver,
    resolve_dependencies,
    infer_relationships,
)

# Validation and transformations
from .schema.validator import SchemaValidator, ValidationCache, validate_schema
from .schema.transforms import add_relationship, add_table, remove_table, rename_column

# Type inference
from .inference import (
    FileDescriptor,
    ColumnDescriptor,
    FileAnalysis,
    InferenceResult,
    TypeInferrer,
    analyze_file,
    infer_column_type,
    load_csv,
    read_csv_text,
)

# Code emission
from .emit import (
    Artifact,
    EmitOptions,
    TargetFormat,
    TargetInfo,
    available_targets,
    emit,
    parse_create_tables,
)

# Suggestion boundary
from .suggestion import (
    BuildOutcome,
    SchemaBuilder,
    SchemaSource,
    SchemaSuggestion,
    StaticSuggestionProvider,
    CallableSuggestionProvider,
    SuggestionProvider,
    build_rule_based_schema,
    normalize_suggestion,
)

# Orchestration
from .pipeline import (
    SchemaPipeline,
    PipelineResult,
    PipelineBuilder,
    create_pipeline,
)

__all__ = [
    # Version
    "__version__",
    # Utilities
    "setup_logging",
    "get_logger",
    "SchemaForgeError",
    "InputError",
    "SchemaError",
    "UnmappableTypeError",
    "UpstreamSuggestionError",
    "ValidationError",
    "ConfigurationError",
    "get_metrics_collector",
    "SchemaForgeMetrics",
    # Configuration
    "LogLevel",
    "InferenceConfig",
    "BuilderConfig",
    "SuggestionConfig",
    "EmitterConfig",
    "ValidationConfig",
    "SystemConfig",
    "get_config",
    "set_config",
    # Schema model
    "AccessPolicy",
    "Cardinality",
    "Column",
    "Constraint",
    "ConstraintType",
    "Finding",
    "FindingCode",
    "FindingSeverity",
    "Index",
    "IndexMethod",
    "PolicyOperation",
    "PostgresType",
    "ReferentialAction",
    "Relationship",
    "RelationshipOrigin",
    "Schema",
    "Table",
    "ValidationResult",
    # Relationships and ordering
    "DependencyOrder",
    "DependencyResolver",
    "resolve_dependencies",
    "infer_relationships",
    # Validation and transformations
    "SchemaValidator",
    "ValidationCache",
    "validate_schema",
    "add_relationship",
    "add_table",
    "remove_table",
    "rename_column",
    # Type inference
    "FileDescriptor",
    "ColumnDescriptor",
    "FileAnalysis",
    "InferenceResult",
    "TypeInferrer",
    "analyze_file",
    "infer_column_type",
    "load_csv",
    "read_csv_text",
    # Code emission
    "Artifact",
    "EmitOptions",
    "TargetFormat",
    "TargetInfo",
    "available_targets",
    "emit",
    "parse_create_tables",
    # Suggestion boundary
    "BuildOutcome",
    "SchemaBuilder",
    "SchemaSource",
    "SchemaSuggestion",
    "StaticSuggestionProvider",
    "CallableSuggestionProvider",
    "SuggestionProvider",
    "build_rule_based_schema",
    "normalize_suggestion",
    # Orchestration
    "SchemaPipeline",
    "PipelineResult",
    "PipelineBuilder",
    "create_pipeline",
]
