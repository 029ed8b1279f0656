"""
Schema Validator

Checks a Schema for structural correctness independent of how it was
produced. Validation is advisory: it never mutates the schema, and
callers decide whether errors block further processing.
"""
from __future__ import annotations

import hashlib
import json
import threading
import time
from collections import OrderedDict
from typing import Callable, List, Optional

from ..config import ValidationConfig
from ..resolver.dependencies import resolve_dependencies
from ..utils import SchemaForgeMetrics, get_logger
from .findings import Finding, FindingCode, ValidationResult
from .models import (
    AccessPolicy,
    Cardinality,
    Column,
    PolicyOperation,
    PostgresType,
    Relationship,
    Schema,
    Table,
    types_compatible,
)
from .naming import (
    IDENTIFIER_PATTERN,
    MAX_IDENTIFIER_LENGTH,
    NamingConvention,
    detect_naming_convention,
    is_reserved_word,
)

logger = get_logger(__name__)

MAX_VARCHAR_LENGTH = 65535
MAX_NUMERIC_PRECISION = 1000

# Diagram node footprint used for overlap warnings
TABLE_BOX_WIDTH = 280
TABLE_BOX_HEIGHT = 200


def schema_fingerprint(schema: Schema) -> str:
    """
    Structural identity of a schema

    Identity, version and timestamps are excluded so that two snapshots
    with the same tables, relationships and policies share a fingerprint.
    """
    payload = {
        "tables": [t.to_dict() for t in schema.tables],
        "relationships": [r.to_dict() for r in schema.relationships],
        "policies": [p.to_dict() for p in schema.policies],
    }
    encoded = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(encoded.encode("utf-8")).hexdigest()


class ValidationCache:
    """Bounded LRU store of validation results keyed by schema fingerprint"""

    def __init__(self, max_entries: int = 256):
        self.max_entries = max_entries
        self._entries: "OrderedDict[str, ValidationResult]" = OrderedDict()
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def get(self, key: str) -> Optional[ValidationResult]:
        with self._lock:
            result = self._entries.get(key)
            if result is None:
                self.misses += 1
                return None
            self._entries.move_to_end(key)
            self.hits += 1
            return result.copy()

    def put(self, key: str, result: ValidationResult) -> None:
        with self._lock:
            self._entries[key] = result.copy()
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_entries:
                self._entries.popitem(last=False)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self.hits = 0
            self.misses = 0

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries


class SchemaValidator:
    """
    Runs every structural check over a schema

    Each check is an independent method returning its own findings, so
    individual checks can be run in isolation (e.g. while editing a
    single table).
    """

    def __init__(
        self,
        cache: Optional[ValidationCache] = None,
        config: Optional[ValidationConfig] = None,
    ):
        self.config = config or ValidationConfig()
        if cache is None and self.config.enable_cache:
            cache = ValidationCache(self.config.max_cache_entries)
        self.cache = cache

    def cache_key(self, schema: Schema) -> str:
        """Fingerprint plus the settings that change which findings are produced"""
        return f"{schema_fingerprint(schema)}:uuid_id={int(self.config.require_uuid_id)}"

    @property
    def checks(self) -> List[Callable[[Schema], List[Finding]]]:
        return [
            self.check_names,
            self.check_duplicates,
            self.check_primary_keys,
            self.check_column_types,
            self.check_relationships,
            self.check_indexes,
            self.check_cycles,
            self.check_policies,
            self.check_naming_consistency,
            self.check_layout,
        ]

    def validate(self, schema: Schema) -> ValidationResult:
        """Validate a schema, reusing a cached result when the structure is unchanged"""
        key = self.cache_key(schema) if self.cache is not None else None

        if key is not None:
            cached = self.cache.get(key)
            SchemaForgeMetrics.record_cache_lookup(cached is not None)
            if cached is not None:
                logger.debug(f"Validation cache hit for schema '{schema.name}'")
                return cached

        start = time.perf_counter()
        result = ValidationResult()
        for check in self.checks:
            for finding in check(schema):
                result.add(finding)

        SchemaForgeMetrics.record_validation(
            time.perf_counter() - start, result.is_valid, len(result.errors), len(result.warnings)
        )
        logger.info(
            f"Validated schema '{schema.name}': {len(result.errors)} errors, {len(result.warnings)} warnings",
            extra={"extra_fields": {
                "schema": schema.name,
                "tables": len(schema.tables),
                "errors": len(result.errors),
                "warnings": len(result.warnings),
            }},
        )

        if key is not None:
            self.cache.put(key, result)
        return result

    def clear_cache(self) -> None:
        if self.cache is not None:
            self.cache.clear()

    # Naming

    def check_names(self, schema: Schema) -> List[Finding]:
        findings: List[Finding] = []
        for table in schema.tables:
            findings.extend(self._check_identifier(table.name, FindingCode.INVALID_TABLE_NAME, table.name))
            for column in table.columns:
                findings.extend(
                    self._check_identifier(column.name, FindingCode.INVALID_COLUMN_NAME, table.name, column.name)
                )
        return findings

    def _check_identifier(
        self,
        name: str,
        invalid_code: FindingCode,
        table: str,
        column: Optional[str] = None,
    ) -> List[Finding]:
        kind = "Column" if column is not None else "Table"
        if not name or not IDENTIFIER_PATTERN.match(name):
            return [Finding.error(
                invalid_code,
                f"{kind} name {name!r} must start with a letter and contain only letters, digits and underscores",
                table=table, column=column,
                suggestion="Use lowercase letters, numbers, and underscores only. Start with a letter.",
            )]
        if len(name) > MAX_IDENTIFIER_LENGTH:
            return [Finding.error(
                FindingCode.NAME_TOO_LONG,
                f"{kind} name {name!r} exceeds {MAX_IDENTIFIER_LENGTH} characters",
                table=table, column=column,
                suggestion="Shorten the name or use abbreviations",
            )]
        if is_reserved_word(name):
            return [Finding.error(
                FindingCode.RESERVED_WORD,
                f"{kind} name {name!r} is a PostgreSQL reserved word",
                table=table, column=column,
                suggestion=f"Rename to {name.lower()}_value",
                auto_fixable=True,
            )]
        return []

    def check_duplicates(self, schema: Schema) -> List[Finding]:
        findings: List[Finding] = []
        seen_tables = set()
        for table in schema.tables:
            if table.name in seen_tables:
                findings.append(Finding.error(
                    FindingCode.DUPLICATE_TABLE,
                    f"Table {table.name!r} is defined more than once",
                    table=table.name,
                ))
            seen_tables.add(table.name)

            seen_columns = set()
            for column in table.columns:
                if column.name in seen_columns:
                    findings.append(Finding.error(
                        FindingCode.DUPLICATE_COLUMN,
                        f"Column {column.name!r} appears more than once in table {table.name!r}",
                        table=table.name, column=column.name,
                        suggestion="Rename or remove the duplicate column",
                    ))
                seen_columns.add(column.name)
        return findings

    # Keys

    def check_primary_keys(self, schema: Schema) -> List[Finding]:
        findings: List[Finding] = []
        for table in schema.tables:
            pks = table.primary_key_columns
            if not table.is_join_table:
                if not pks:
                    findings.append(Finding.error(
                        FindingCode.NO_PRIMARY_KEY,
                        f"Table {table.name!r} has no primary key",
                        table=table.name,
                        suggestion="Add an id UUID PRIMARY KEY DEFAULT gen_random_uuid() column",
                        auto_fixable=True,
                    ))
                elif len(pks) > 1:
                    findings.append(Finding.error(
                        FindingCode.MULTIPLE_PRIMARY_KEYS,
                        f"Table {table.name!r} has {len(pks)} primary key columns: "
                        f"{', '.join(c.name for c in pks)}",
                        table=table.name,
                        suggestion="Keep one primary key and mark the others UNIQUE, or flag the table as a join table",
                    ))

            for column in pks:
                if column.nullable:
                    findings.append(Finding.error(
                        FindingCode.PK_NULLABLE,
                        "Primary key columns cannot be nullable",
                        table=table.name, column=column.name,
                        suggestion="Set nullable to false for primary key columns",
                        auto_fixable=True,
                    ))
                if (
                    self.config.require_uuid_id
                    and column.name.lower() == "id"
                    and column.data_type != PostgresType.UUID
                ):
                    findings.append(Finding.error(
                        FindingCode.ID_NOT_UUID,
                        f"Primary key 'id' is {column.type_name}; identifiers must be UUID",
                        table=table.name, column=column.name,
                        suggestion="Use UUID with DEFAULT gen_random_uuid() and keep the original value in source_id",
                    ))
        return findings

    # Column shape

    def check_column_types(self, schema: Schema) -> List[Finding]:
        findings: List[Finding] = []
        for table in schema.tables:
            for column in table.columns:
                findings.extend(self.validate_column(column, table.name))
        return findings

    def validate_column(self, column: Column, table_name: Optional[str] = None) -> List[Finding]:
        """Check a single column's type parameters"""
        findings: List[Finding] = []
        loc = {"table": table_name, "column": column.name}

        if not column.is_known_type:
            findings.append(Finding.error(
                FindingCode.UNKNOWN_TYPE,
                f"Unsupported column type {column.type_name!r}",
                suggestion="Use one of: " + ", ".join(t.value for t in PostgresType),
                **loc,
            ))
            return findings

        data_type = column.data_type
        if data_type.requires_length:
            if column.length is None or column.length < 1:
                findings.append(Finding.error(
                    FindingCode.MISSING_LENGTH,
                    f"{data_type.value} columns must specify a positive length",
                    suggestion="Add a length specification, e.g., VARCHAR(255)",
                    **loc,
                ))
            elif column.length > MAX_VARCHAR_LENGTH:
                findings.append(Finding.error(
                    FindingCode.LENGTH_TOO_LARGE,
                    f"{data_type.value} length ({column.length}) exceeds maximum ({MAX_VARCHAR_LENGTH})",
                    suggestion="Use TEXT type for longer strings",
                    **loc,
                ))

        if data_type.is_numeric_exact:
            precision, scale = column.precision, column.scale
            bad = (
                (precision is not None and not 1 <= precision <= MAX_NUMERIC_PRECISION)
                or (scale is not None and scale < 0)
                or (scale is not None and precision is None)
                or (precision is not None and scale is not None and scale > precision)
            )
            if bad:
                findings.append(Finding.error(
                    FindingCode.INVALID_PRECISION_SCALE,
                    f"Invalid precision/scale ({precision}, {scale})",
                    suggestion="Scale must be between 0 and precision",
                    **loc,
                ))

        if data_type == PostgresType.ARRAY and column.element_type is not None:
            if not isinstance(column.element_type, PostgresType) or column.element_type == PostgresType.ARRAY:
                findings.append(Finding.error(
                    FindingCode.UNKNOWN_TYPE,
                    f"Unsupported array element type {column.element_type!r}",
                    **loc,
                ))

        if data_type == PostgresType.ENUM and not column.enum_values:
            findings.append(Finding.error(
                FindingCode.MISSING_ENUM_VALUES,
                "ENUM columns must list their allowed values",
                **loc,
            ))

        return findings

    # Relationships

    def check_relationships(self, schema: Schema) -> List[Finding]:
        findings: List[Finding] = []
        for rel in schema.relationships:
            findings.extend(self.validate_relationship(rel, schema))
        return findings

    def validate_relationship(self, rel: Relationship, schema: Schema) -> List[Finding]:
        findings: List[Finding] = []
        source_table = schema.get_table(rel.source_table)
        target_table = schema.get_table(rel.target_table)

        if source_table is None:
            findings.append(Finding.error(
                FindingCode.MISSING_SOURCE_TABLE,
                f"Relationship {rel.name!r}: source table {rel.source_table!r} not found",
                table=rel.source_table,
            ))
        if target_table is None:
            findings.append(Finding.error(
                FindingCode.MISSING_TARGET_TABLE,
                f"Relationship {rel.name!r}: target table {rel.target_table!r} not found",
                table=rel.target_table,
            ))

        source_column = source_table.get_column(rel.source_column) if source_table else None
        target_column = target_table.get_column(rel.target_column) if target_table else None

        if source_table is not None and source_column is None:
            findings.append(Finding.error(
                FindingCode.MISSING_SOURCE_COLUMN,
                f"Relationship {rel.name!r}: source column {rel.source_column!r} not found",
                table=rel.source_table, column=rel.source_column,
            ))
        if target_table is not None and target_column is None:
            findings.append(Finding.error(
                FindingCode.MISSING_TARGET_COLUMN,
                f"Relationship {rel.name!r}: target column {rel.target_column!r} not found",
                table=rel.target_table, column=rel.target_column,
            ))

        if (
            target_column is not None
            and rel.cardinality == Cardinality.ONE_TO_ONE
            and not target_column.is_unique
        ):
            findings.append(Finding.error(
                FindingCode.ONE_TO_ONE_NOT_UNIQUE,
                "One-to-one relationships require the target column to be unique or primary key",
                table=rel.target_table, column=rel.target_column,
                suggestion="Add a UNIQUE constraint to the target column",
                auto_fixable=True,
            ))

        if rel.is_self_reference and rel.source_column == rel.target_column:
            findings.append(Finding.error(
                FindingCode.SELF_REF_SAME_COLUMN,
                "Self-referencing relationship cannot use the same column",
                table=rel.source_table, column=rel.source_column,
            ))

        if source_column is not None and target_column is not None:
            if source_column.type_name != target_column.type_name:
                compatible = types_compatible(source_column.data_type, target_column.data_type)
                make = Finding.warning if compatible else Finding.error
                findings.append(make(
                    FindingCode.TYPE_MISMATCH,
                    f"Type mismatch in relationship {rel.name!r}: "
                    f"{source_column.type_name} -> {target_column.type_name}",
                    table=rel.source_table, column=rel.source_column,
                    suggestion="Ensure related columns have compatible types",
                ))

        return findings

    def check_indexes(self, schema: Schema) -> List[Finding]:
        findings: List[Finding] = []
        for table in schema.tables:
            for index in table.indexes:
                for name in index.columns:
                    if not table.has_column(name):
                        findings.append(Finding.error(
                            FindingCode.INDEX_UNKNOWN_COLUMN,
                            f"Index {index.name!r} references unknown column {name!r}",
                            table=table.name, column=name,
                        ))
        return findings

    def check_cycles(self, schema: Schema) -> List[Finding]:
        findings: List[Finding] = []
        for cycle in resolve_dependencies(schema).cycles:
            findings.append(Finding.error(
                FindingCode.CIRCULAR_DEPENDENCY,
                f"Circular dependency detected: {' -> '.join(cycle)}",
                table=cycle[0],
                suggestion="Make one of the foreign keys nullable and set it after both rows exist, "
                           "or move it to a join table",
            ))
        return findings

    # Policies

    def check_policies(self, schema: Schema) -> List[Finding]:
        findings: List[Finding] = []
        for policy in schema.policies:
            if not schema.has_table(policy.table_name):
                findings.append(Finding.error(
                    FindingCode.POLICY_UNKNOWN_TABLE,
                    f"Policy {policy.name!r} targets unknown table {policy.table_name!r}",
                    table=policy.table_name,
                ))
            problem = policy_shape_problem(policy)
            if problem:
                findings.append(Finding.error(
                    FindingCode.POLICY_SHAPE,
                    f"Policy {policy.name!r} ({policy.operation.value}): {problem}",
                    table=policy.table_name,
                ))
        return findings

    # Warnings

    def check_naming_consistency(self, schema: Schema) -> List[Finding]:
        names = list(schema.table_names)
        for table in schema.tables:
            names.extend(table.column_names)
        conventions = {detect_naming_convention(n) for n in names if "_" in n or any(c.isupper() for c in n)}
        if NamingConvention.SNAKE_CASE in conventions and NamingConvention.CAMEL_CASE in conventions:
            return [Finding.warning(
                FindingCode.MIXED_NAMING_CONVENTION,
                "Mixed naming conventions detected (snake_case and camelCase)",
                suggestion="Use consistent naming convention throughout schema",
            )]
        return []

    def check_layout(self, schema: Schema) -> List[Finding]:
        findings: List[Finding] = []
        placed = [t for t in schema.tables if t.position is not None]
        for i, first in enumerate(placed):
            for second in placed[i + 1:]:
                if (
                    abs(first.position[0] - second.position[0]) < TABLE_BOX_WIDTH
                    and abs(first.position[1] - second.position[1]) < TABLE_BOX_HEIGHT
                ):
                    findings.append(Finding.info(
                        FindingCode.TABLE_OVERLAP,
                        f"Tables {first.name!r} and {second.name!r} may be overlapping",
                        table=first.name,
                        suggestion="Rearrange tables for better visibility",
                    ))
        return findings


def policy_shape_problem(policy: AccessPolicy) -> Optional[str]:
    """Describe why a policy's predicates don't fit its operation, or None"""
    has_using = bool(policy.using and policy.using.strip())
    has_check = bool(policy.with_check and policy.with_check.strip())
    op = policy.operation

    if op == PolicyOperation.INSERT:
        if has_using:
            return "INSERT policies cannot have a USING predicate"
        if not has_check:
            return "INSERT policies require a WITH CHECK predicate"
    elif op == PolicyOperation.UPDATE:
        if not (has_using and has_check):
            return "UPDATE policies require both USING and WITH CHECK predicates"
    elif op in (PolicyOperation.SELECT, PolicyOperation.DELETE):
        if has_check:
            return f"{op.value} policies cannot have a WITH CHECK predicate"
        if not has_using:
            return f"{op.value} policies require a USING predicate"
    elif not (has_using or has_check):
        return "ALL policies require at least one predicate"
    return None


def validate_schema(schema: Schema, cache: Optional[ValidationCache] = None) -> ValidationResult:
    """Validate a schema with a fresh validator"""
    return SchemaValidator(cache=cache).validate(schema)
