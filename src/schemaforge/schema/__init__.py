"""
Schema model package

The validator and transformations live in ``schemaforge.schema.validator``
and ``schemaforge.schema.transforms``.
"""
from .findings import Finding, FindingCode, FindingSeverity, ValidationResult
from .models import (
    AccessPolicy,
    Cardinality,
    Column,
    ColumnType,
    Constraint,
    ConstraintType,
    Index,
    IndexMethod,
    PolicyOperation,
    PostgresType,
    ReferentialAction,
    Relationship,
    RelationshipOrigin,
    Schema,
    Table,
    types_compatible,
)

__all__ = [
    "Finding",
    "FindingCode",
    "FindingSeverity",
    "ValidationResult",
    "AccessPolicy",
    "Cardinality",
    "Column",
    "ColumnType",
    "Constraint",
    "ConstraintType",
    "Index",
    "IndexMethod",
    "PolicyOperation",
    "PostgresType",
    "ReferentialAction",
    "Relationship",
    "RelationshipOrigin",
    "Schema",
    "Table",
    "types_compatible",
]
