"""
Rule-based schema construction

Used when no suggestion service is configured or when its answer cannot
be trusted. The schema is built directly from inference output: one table
per file, a synthetic UUID primary key, audit timestamps and
relationships inferred from column names and sampled values.
"""
from __future__ import annotations

from dataclasses import replace
from typing import Callable, Dict, List, Optional, Sequence, Set

from ..config import BuilderConfig
from ..inference.descriptors import is_missing
from ..inference.structural import FileAnalysis
from ..resolver.relationships import ColumnProfile, ProfileMap, infer_relationships
from ..schema.findings import Finding, FindingCode
from ..schema.models import (
    INTEGER_WIDTHS,
    AccessPolicy,
    Cardinality,
    Column,
    ColumnType,
    Constraint,
    Index,
    PolicyOperation,
    PostgresType,
    Relationship,
    Schema,
    Table,
    types_compatible,
)
from ..schema.naming import index_name, singularize, unique_names
from ..utils import get_logger

logger = get_logger(__name__)

MULTI_TABLE_SCHEMA_NAME = "multi_table_schema"
LEGACY_KEY_COLUMN = "source_id"


def primary_key_column() -> Column:
    return Column(
        name="id",
        data_type=PostgresType.UUID,
        nullable=False,
        default="gen_random_uuid()",
        constraints=(Constraint.primary_key(),),
        comment="Primary key (UUID)",
    )


def audit_columns() -> List[Column]:
    return [
        Column(
            name=name,
            data_type=PostgresType.TIMESTAMPTZ,
            nullable=False,
            default="now()",
            comment=comment,
        )
        for name, comment in (
            ("created_at", "Row creation time"),
            ("updated_at", "Last modification time"),
        )
    ]


def _inferred_name(name: str, taken: Set[str]) -> str:
    # A source "id" column is kept as data next to the synthetic key
    base = LEGACY_KEY_COLUMN if name == "id" else name
    candidate, n = base, 2
    while candidate in taken:
        candidate = f"{base}_{n}"
        n += 1
    taken.add(candidate)
    return candidate


def build_table(analysis: FileAnalysis, table_name: str, config: BuilderConfig) -> Table:
    """One table for one analyzed file"""
    synthetic = [primary_key_column()]
    audit = audit_columns() if config.include_audit_columns else []
    taken = {c.name for c in synthetic + audit}

    columns = list(synthetic)
    for column in analysis.columns:
        name = _inferred_name(column.column_name, taken)
        inferred = column.result.to_column(name, source_column=column.header)
        columns.append(replace(inferred, comment=f"Source column: {column.header}"))
    columns.extend(audit)

    return Table(
        name=table_name,
        columns=tuple(columns),
        comment=f"Generated from CSV file: {analysis.file.file_name}",
    )


def column_profiles(analyses: Sequence[FileAnalysis], tables: Sequence[Table]) -> ProfileMap:
    """Sampled statistics for every inferred column, keyed by (table, column)"""
    profiles: ProfileMap = {}
    for analysis, table in zip(analyses, tables):
        inferred = [c for c in table.columns if c.source_column is not None]
        for column, source, descriptor in zip(inferred, analysis.columns, analysis.file.columns):
            values = frozenset(v.strip() for v in descriptor.sample_values if not is_missing(v))
            profiles[(table.name, column.name)] = ColumnProfile(
                values=values,
                uniqueness_ratio=source.result.uniqueness_ratio,
                null_ratio=source.result.null_ratio,
                sample_count=source.result.sample_count,
            )
    return profiles


def _compatible_key(
    table: Table,
    source: Column,
    profiles: ProfileMap,
    exclude: Optional[str] = None,
) -> Optional[Column]:
    # Preserved source key first, then the table's own <name>_id, then declared keys
    preferred = [LEGACY_KEY_COLUMN, f"{singularize(table.name)}_id"]
    ordered = [table.get_column(n) for n in preferred]
    ordered += [c for c in table.columns if c.is_unique and c.name not in preferred]
    for column in ordered:
        if column is None or column.name == exclude:
            continue
        if not types_compatible(source.data_type, column.data_type):
            continue
        profile = profiles.get((table.name, column.name))
        if column.is_unique or (profile is not None and profile.all_distinct):
            return column
    return None


def _wider(a: ColumnType, b: ColumnType) -> ColumnType:
    if a in INTEGER_WIDTHS and b in INTEGER_WIDTHS:
        return max(a, b, key=INTEGER_WIDTHS.index)
    return b


def align_foreign_keys(
    schema: Schema,
    relationships: List[Relationship],
    profiles: Optional[ProfileMap] = None,
    findings: Optional[List[Finding]] = None,
) -> Schema:
    """
    Make every inferred foreign key reference a column it can hold

    A CSV column such as ``customer_id`` usually holds the source system's
    key, not the synthetic UUID. When the types belong to different
    families the relationship is pointed at a compatible unique column of
    the referenced table (the preserved ``source_id``, or ``<table>_id``).
    If there is none the relationship is dropped and reported. Referenced
    data columns become UNIQUE, integer keys are widened so both ends share
    one type, and one-to-one sources become UNIQUE.
    """
    profiles = profiles or {}
    tables: Dict[str, Table] = {t.name: t for t in schema.tables}

    def update(table_name: str, column_name: str, change: Callable[[Column], Column]) -> None:
        table = tables[table_name]
        tables[table_name] = replace(table, columns=tuple(
            change(c) if c.name == column_name else c for c in table.columns
        ))

    kept = []
    for rel in relationships:
        source = tables[rel.source_table].get_column(rel.source_column)
        target_table = tables[rel.target_table]
        target = target_table.get_column(rel.target_column)
        if source is None or target is None:
            continue
        if not types_compatible(source.data_type, target.data_type):
            exclude = rel.source_column if rel.is_self_reference else None
            key = _compatible_key(target_table, source, profiles, exclude=exclude)
            if key is None:
                message = (
                    f"No key of {rel.target_table!r} can hold {rel.source_table}.{rel.source_column} "
                    f"({source.type_name}); relationship {rel.name!r} was not created"
                )
                logger.warning(message, extra={"extra_fields": {
                    "relationship": rel.name,
                    "source_type": source.type_name,
                    "target_type": target.type_name,
                }})
                if findings is not None:
                    findings.append(Finding.warning(
                        FindingCode.UNRESOLVED_FOREIGN_KEY,
                        message,
                        table=rel.source_table, column=rel.source_column,
                        suggestion=f"Add a unique {source.type_name} key to {rel.target_table!r} or declare the relationship by hand",
                    ))
                continue
            rel = replace(rel, target_column=key.name)
            logger.debug(f"Relationship {rel.name} now references {rel.target_table}.{key.name}")
        kept.append(rel)

    for rel in kept:
        source = tables[rel.source_table].get_column(rel.source_column)
        target = tables[rel.target_table].get_column(rel.target_column)
        widest = _wider(source.data_type, target.data_type)
        update(rel.target_table, rel.target_column, lambda c: replace(
            c.with_constraint(Constraint.unique()) if not c.is_primary_key else c,
            data_type=widest,
        ))
        if rel.cardinality == Cardinality.ONE_TO_ONE:
            update(rel.source_table, rel.source_column, lambda c: c.with_constraint(Constraint.unique()))

    # Keys only ever widen above, so a second pass settles every source on its key's final type
    for rel in kept:
        final = tables[rel.target_table].get_column(rel.target_column).data_type
        if final in INTEGER_WIDTHS:
            update(rel.source_table, rel.source_column, lambda c: replace(c, data_type=final))

    return replace(
        schema,
        tables=tuple(tables[t.name] for t in schema.tables),
        relationships=tuple(kept),
    )


def add_foreign_key_indexes(schema: Schema) -> Schema:
    """Index every foreign key column that no index already starts with"""
    tables = []
    for table in schema.tables:
        leading = {index.columns[0] for index in table.indexes if index.columns}
        leading.update(c.name for c in table.primary_key_columns)
        indexes = list(table.indexes)
        for rel in schema.relationships_from(table.name):
            if rel.source_column in leading:
                continue
            leading.add(rel.source_column)
            indexes.append(Index(name=index_name(table.name, (rel.source_column,)), columns=(rel.source_column,)))
        tables.append(replace(table, indexes=tuple(indexes)))
    return replace(schema, tables=tuple(tables))


def default_policies(table_name: str, config: BuilderConfig) -> List[AccessPolicy]:
    predicate = config.default_policy_using
    roles = tuple(config.default_policy_roles)
    shapes = (
        (PolicyOperation.SELECT, predicate, None),
        (PolicyOperation.INSERT, None, predicate),
        (PolicyOperation.UPDATE, predicate, predicate),
        (PolicyOperation.DELETE, predicate, None),
    )
    return [
        AccessPolicy(
            table_name=table_name,
            name=f"{table_name}_{operation.value.lower()}_policy",
            operation=operation,
            using=using,
            with_check=with_check,
            roles=roles,
        )
        for operation, using, with_check in shapes
    ]


def build_rule_based_schema(
    analyses: Sequence[FileAnalysis],
    name: Optional[str] = None,
    config: Optional[BuilderConfig] = None,
    findings: Optional[List[Finding]] = None,
) -> Schema:
    """
    Build a schema straight from inference output

    Args:
        analyses: One FileAnalysis per input file
        name: Schema name; defaults to the table name for a single file
        config: Builder options
        findings: Receives a finding for every relationship that had to be dropped

    Returns:
        Schema with one table per file plus inferred relationships
    """
    config = config or BuilderConfig()
    table_names = unique_names([a.table_name for a in analyses], "table")
    tables = [build_table(a, n, config) for a, n in zip(analyses, table_names)]

    if name is None:
        name = table_names[0] if len(table_names) == 1 else MULTI_TABLE_SCHEMA_NAME
    schema = Schema(name=name, tables=tuple(tables))

    profiles = column_profiles(analyses, tables)
    relationships = infer_relationships(schema, profiles)
    schema = align_foreign_keys(schema, relationships, profiles, findings)
    if config.include_fk_indexes:
        schema = add_foreign_key_indexes(schema)
    if config.include_default_policies:
        policies = [p for t in schema.tables for p in default_policies(t.name, config)]
        schema = replace(schema, policies=tuple(policies))

    logger.info(
        f"Built rule-based schema '{schema.name}' with {len(schema.tables)} tables",
        extra={"extra_fields": {
            "tables": len(schema.tables),
            "relationships": len(schema.relationships),
            "policies": len(schema.policies),
        }},
    )
    return schema
