"""
SQL emitters

The schema is first lowered to a flat list of statement nodes, in the
order PostgreSQL needs them: extensions, enum types, tables (dependency
order), comments, foreign keys, indexes, row level security. ``SqlPrinter``
turns that list into text. Foreign keys are always added with
``ALTER TABLE`` after every table exists, so circular references still
apply cleanly.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable, Dict, List, NamedTuple, Optional, Sequence, Tuple

from ..resolver.dependencies import DependencyOrder
from ..schema.models import (
    AccessPolicy,
    Column,
    PolicyOperation,
    PostgresType,
    ReferentialAction,
    Schema,
    Table,
)
from ..schema.naming import IDENTIFIER_PATTERN
from .base import (
    Artifact,
    BaseEmitter,
    EmitOptions,
    TargetFormat,
    file_stem,
    foreign_keys,
    migration_stamp,
    register_emitter,
)
from .type_maps import enum_type_name, sql_type

SQL_MIME_TYPE = "application/sql"

# Default expressions that need an extension, and the extension providing them
EXTENSION_FUNCTIONS = (
    ("uuid_generate_v", "uuid-ossp"),
    ("gen_random_uuid", "pgcrypto"),
)


# Statement nodes

@dataclass(frozen=True)
class HeaderComment:
    lines: Tuple[str, ...]


@dataclass(frozen=True)
class Section:
    title: str


@dataclass(frozen=True)
class CreateSchema:
    name: str


@dataclass(frozen=True)
class CreateExtension:
    name: str


@dataclass(frozen=True)
class CreateEnumType:
    name: str
    values: Tuple[str, ...]


@dataclass(frozen=True)
class ColumnDef:
    name: str
    type_sql: str
    primary_key: bool = False
    unique: bool = False
    not_null: bool = False
    default: Optional[str] = None
    checks: Tuple[str, ...] = ()


@dataclass(frozen=True)
class CreateTable:
    name: str
    columns: Tuple[ColumnDef, ...]
    primary_key: Tuple[str, ...] = ()
    comment: Optional[str] = None


@dataclass(frozen=True)
class CommentOn:
    table: str
    text: str
    column: Optional[str] = None


@dataclass(frozen=True)
class AddForeignKey:
    table: str
    name: str
    column: str
    ref_table: str
    ref_column: str
    on_delete: Optional[ReferentialAction] = None
    on_update: Optional[ReferentialAction] = None


@dataclass(frozen=True)
class CreateIndex:
    name: str
    table: str
    columns: Tuple[str, ...]
    unique: bool = False
    method: Optional[str] = None


@dataclass(frozen=True)
class EnableRowLevelSecurity:
    table: str


@dataclass(frozen=True)
class CreatePolicy:
    name: str
    table: str
    operation: PolicyOperation
    roles: Tuple[str, ...] = ()
    using: Optional[str] = None
    with_check: Optional[str] = None


@dataclass(frozen=True)
class DropTable:
    name: str


@dataclass(frozen=True)
class DropType:
    name: str


def quote_identifier(name: str) -> str:
    return '"' + name.replace('"', '""') + '"'


def quote_literal(text: str) -> str:
    return "'" + text.replace("'", "''") + "'"


class SqlPrinter:
    """Renders statement nodes as PostgreSQL text"""

    def __init__(self, schema_name: str = "public"):
        self.schema_name = schema_name
        self._handlers: Dict[type, Callable] = {
            HeaderComment: self._header,
            Section: self._section,
            CreateSchema: self._create_schema,
            CreateExtension: self._create_extension,
            CreateEnumType: self._create_enum,
            CreateTable: self._create_table,
            CommentOn: self._comment_on,
            AddForeignKey: self._add_foreign_key,
            CreateIndex: self._create_index,
            EnableRowLevelSecurity: self._enable_rls,
            CreatePolicy: self._create_policy,
            DropTable: self._drop_table,
            DropType: self._drop_type,
        }

    def print(self, statements: Sequence[object]) -> str:
        lines: List[str] = []
        previous = None
        for node in statements:
            handler = self._handlers.get(type(node))
            if handler is None:
                raise TypeError(f"Unsupported statement node: {type(node).__name__}")
            if lines and (
                isinstance(node, Section)
                or (isinstance(node, CreateTable) and not isinstance(previous, Section))
            ):
                lines.append("")
            lines.append(handler(node))
            previous = node
        return "\n".join(lines) + "\n"

    def qualified(self, name: str) -> str:
        if self.schema_name and self.schema_name != "public":
            return f"{quote_identifier(self.schema_name)}.{quote_identifier(name)}"
        return quote_identifier(name)

    def _header(self, node: HeaderComment) -> str:
        return "\n".join(f"-- {line}".rstrip() for line in node.lines)

    def _section(self, node: Section) -> str:
        return f"-- {node.title}"

    def _create_schema(self, node: CreateSchema) -> str:
        return f"CREATE SCHEMA IF NOT EXISTS {quote_identifier(node.name)};"

    def _create_extension(self, node: CreateExtension) -> str:
        return f"CREATE EXTENSION IF NOT EXISTS {quote_identifier(node.name)};"

    def _create_enum(self, node: CreateEnumType) -> str:
        values = ", ".join(quote_literal(v) for v in node.values)
        return f"CREATE TYPE {self.qualified(node.name)} AS ENUM ({values});"

    def _column(self, column: ColumnDef) -> str:
        parts = [quote_identifier(column.name), column.type_sql]
        if column.primary_key:
            parts.append("PRIMARY KEY")
        if column.unique:
            parts.append("UNIQUE")
        if column.not_null:
            parts.append("NOT NULL")
        if column.default is not None:
            parts.append(f"DEFAULT {column.default}")
        for check in column.checks:
            parts.append(f"CHECK ({check})")
        return " ".join(parts)

    def _create_table(self, node: CreateTable) -> str:
        items = [self._column(c) for c in node.columns]
        if node.primary_key:
            items.append(f"PRIMARY KEY ({', '.join(quote_identifier(c) for c in node.primary_key)})")
        lines = []
        if node.comment:
            lines.append(f"-- {node.comment}")
        lines.append(f"CREATE TABLE {self.qualified(node.name)} (")
        lines.append(",\n".join(f"  {item}" for item in items))
        lines.append(");")
        return "\n".join(lines)

    def _comment_on(self, node: CommentOn) -> str:
        if node.column is None:
            return f"COMMENT ON TABLE {self.qualified(node.table)} IS {quote_literal(node.text)};"
        target = f"{self.qualified(node.table)}.{quote_identifier(node.column)}"
        return f"COMMENT ON COLUMN {target} IS {quote_literal(node.text)};"

    def _add_foreign_key(self, node: AddForeignKey) -> str:
        sql = (
            f"ALTER TABLE {self.qualified(node.table)} ADD CONSTRAINT {quote_identifier(node.name)} "
            f"FOREIGN KEY ({quote_identifier(node.column)}) "
            f"REFERENCES {self.qualified(node.ref_table)}({quote_identifier(node.ref_column)})"
        )
        if node.on_delete:
            sql += f" ON DELETE {node.on_delete.value}"
        if node.on_update:
            sql += f" ON UPDATE {node.on_update.value}"
        return sql + ";"

    def _create_index(self, node: CreateIndex) -> str:
        unique = "UNIQUE " if node.unique else ""
        method = f" USING {node.method.lower()}" if node.method else ""
        columns = ", ".join(quote_identifier(c) for c in node.columns)
        return (
            f"CREATE {unique}INDEX IF NOT EXISTS {quote_identifier(node.name)} "
            f"ON {self.qualified(node.table)}{method} ({columns});"
        )

    def _enable_rls(self, node: EnableRowLevelSecurity) -> str:
        return f"ALTER TABLE {self.qualified(node.table)} ENABLE ROW LEVEL SECURITY;"

    def _create_policy(self, node: CreatePolicy) -> str:
        sql = (
            f"CREATE POLICY {quote_identifier(node.name)} ON {self.qualified(node.table)} "
            f"FOR {node.operation.value}"
        )
        if node.roles:
            sql += " TO " + ", ".join(
                r if IDENTIFIER_PATTERN.match(r) else quote_identifier(r) for r in node.roles
            )
        if node.using is not None:
            sql += f" USING ({node.using})"
        if node.with_check is not None:
            sql += f" WITH CHECK ({node.with_check})"
        return sql + ";"

    def _drop_table(self, node: DropTable) -> str:
        return f"DROP TABLE IF EXISTS {self.qualified(node.name)} CASCADE;"

    def _drop_type(self, node: DropType) -> str:
        return f"DROP TYPE IF EXISTS {self.qualified(node.name)};"


def policy_predicates(policy: AccessPolicy) -> Tuple[Optional[str], Optional[str]]:
    """
    USING / WITH CHECK clauses for a policy, shaped for its operation

    INSERT gets only WITH CHECK, UPDATE gets both, SELECT and DELETE only
    USING. A missing predicate is taken from the other one, or ``true``.
    """
    using = policy.using.strip() if policy.using and policy.using.strip() else None
    check = policy.with_check.strip() if policy.with_check and policy.with_check.strip() else None
    op = policy.operation

    if op == PolicyOperation.INSERT:
        return None, check or using or "true"
    if op == PolicyOperation.UPDATE:
        return using or check or "true", check or using or "true"
    if op in (PolicyOperation.SELECT, PolicyOperation.DELETE):
        return using or check or "true", None
    if using is None and check is None:
        using = "true"
    return using, check


def required_extensions(schema: Schema) -> List[str]:
    found: List[str] = []
    for table in schema.tables:
        for column in table.columns:
            default = (column.default_expression or "").lower()
            for function, extension in EXTENSION_FUNCTIONS:
                if function in default and extension not in found:
                    found.append(extension)
    return found


def enum_columns(schema: Schema, order: DependencyOrder) -> List[Tuple[Table, Column]]:
    return [
        (table, column)
        for table in order.sort_tables(schema.tables)
        for column in table.columns
        if column.data_type == PostgresType.ENUM
    ]


def column_definition(table: Table, column: Column, inline_pk: bool, schema_name: str = "public") -> ColumnDef:
    primary_key = inline_pk and column.is_primary_key
    type_sql = sql_type(column, table.name)
    # enum types live in the same namespace as the tables
    if column.data_type == PostgresType.ENUM and schema_name != "public":
        type_sql = f"{quote_identifier(schema_name)}.{type_sql}"
    return ColumnDef(
        name=column.name,
        type_sql=type_sql,
        primary_key=primary_key,
        unique=column.is_unique and not column.is_primary_key,
        not_null=not column.effective_nullable and not primary_key,
        default=column.default_expression,
        checks=tuple(column.check_expressions),
    )


def create_table(table: Table, include_comments: bool, schema_name: str = "public") -> CreateTable:
    pk_columns = table.primary_key_columns
    inline_pk = len(pk_columns) == 1
    return CreateTable(
        name=table.name,
        columns=tuple(column_definition(table, c, inline_pk, schema_name) for c in table.columns),
        primary_key=tuple(c.name for c in pk_columns) if len(pk_columns) > 1 else (),
        comment=table.comment if include_comments else None,
    )


def schema_statements(schema: Schema, order: DependencyOrder, options: EmitOptions) -> List[object]:
    """Lower a schema to the ordered statement list shared by all SQL targets"""
    nodes: List[object] = []
    tables = order.sort_tables(schema.tables)

    if options.schema_name != "public":
        nodes.append(Section("Create schema"))
        nodes.append(CreateSchema(options.schema_name))

    extensions = required_extensions(schema) if options.include_extensions else []
    if extensions:
        nodes.append(Section("Enable required extensions"))
        nodes.extend(CreateExtension(name) for name in extensions)

    enums = enum_columns(schema, order)
    if enums:
        nodes.append(Section("Create enum types"))
        nodes.extend(
            CreateEnumType(enum_type_name(t.name, c.name), c.enum_values) for t, c in enums
        )

    nodes.append(Section("Create tables"))
    nodes.extend(create_table(t, options.include_comments, options.schema_name) for t in tables)

    if options.include_comments:
        comments: List[object] = []
        for table in tables:
            if table.comment:
                comments.append(CommentOn(table.name, table.comment))
            comments.extend(
                CommentOn(table.name, c.comment, column=c.name) for c in table.columns if c.comment
            )
        if comments:
            nodes.append(Section("Comments"))
            nodes.extend(comments)

    keys = order.sort_relationships(foreign_keys(schema))
    if keys:
        nodes.append(Section("Add foreign key constraints"))
        nodes.extend(
            AddForeignKey(
                table=rel.source_table,
                name=rel.name,
                column=rel.source_column,
                ref_table=rel.target_table,
                ref_column=rel.target_column,
                on_delete=rel.on_delete,
                on_update=rel.on_update,
            )
            for rel in keys
        )

    if options.include_indexes:
        indexes = [
            CreateIndex(
                name=index.name,
                table=table.name,
                columns=index.columns,
                unique=index.unique,
                method=index.method.value if index.method else None,
            )
            for table in tables
            for index in table.indexes
        ]
        if indexes:
            nodes.append(Section("Create indexes"))
            nodes.extend(indexes)

    if options.include_policies and schema.policies:
        policy_tables = [t.name for t in tables if schema.policies_for(t.name)]
        nodes.append(Section("Enable row level security"))
        nodes.extend(EnableRowLevelSecurity(name) for name in policy_tables)
        nodes.append(Section("Create row level security policies"))
        for policy in sorted(schema.policies, key=lambda p: order.position(p.table_name)):
            using, with_check = policy_predicates(policy)
            nodes.append(CreatePolicy(
                name=policy.name,
                table=policy.table_name,
                operation=policy.operation,
                roles=policy.roles,
                using=using,
                with_check=with_check,
            ))

    return nodes


def drop_statements(schema: Schema, order: DependencyOrder) -> List[object]:
    nodes: List[object] = [Section("Drop tables in reverse dependency order")]
    nodes.extend(DropTable(name) for name in order.reverse())
    enums = enum_columns(schema, order)
    if enums:
        nodes.append(Section("Drop enum types"))
        nodes.extend(DropType(enum_type_name(t.name, c.name)) for t, c in reversed(enums))
    return nodes


def _summary_lines(schema: Schema, order: DependencyOrder) -> List[str]:
    lines = [
        f"Schema version: {schema.version}",
        f"Snapshot: {schema.updated_at.isoformat()}",
        f"Tables: {len(schema.tables)}",
        f"Relationships: {len(schema.relationships)}",
        f"Indexes: {sum(len(t.indexes) for t in schema.tables)}",
        f"Row level security policies: {len(schema.policies)}",
    ]
    for cycle in order.cycles:
        lines.append(f"Circular dependency: {' -> '.join(cycle)}")
    return lines


@register_emitter(TargetFormat.MIGRATION)
class MigrationEmitter(BaseEmitter):
    """Timestamped migration file, plus an optional down migration"""

    description = "PostgreSQL migration (Supabase CLI layout)"
    extension = ".sql"
    mime_type = SQL_MIME_TYPE

    def render(self, schema: Schema, order: DependencyOrder) -> List[Artifact]:
        stamp = migration_stamp(schema, self.options)
        stem = file_stem(schema)
        printer = SqlPrinter(self.options.schema_name)

        up: List[object] = []
        if self.options.include_comments:
            up.append(HeaderComment(tuple([f"Migration: Create {schema.name} Schema"] + _summary_lines(schema, order))))
        up.extend(schema_statements(schema, order, self.options))
        artifacts = [self.artifact(f"{stamp}_create_{stem}_schema.sql", printer.print(up))]

        if self.options.include_down:
            down: List[object] = []
            if self.options.include_comments:
                down.append(HeaderComment((f"Migration: Drop {schema.name} Schema",)))
            down.extend(drop_statements(schema, order))
            artifacts.append(self.artifact(f"{stamp}_drop_{stem}_schema.sql", printer.print(down)))

        return artifacts


@register_emitter(TargetFormat.DECLARATIVE)
class DeclarativeEmitter(BaseEmitter):
    """Single SQL file describing the whole schema"""

    description = "Declarative PostgreSQL schema file"
    extension = ".sql"
    mime_type = SQL_MIME_TYPE

    def render(self, schema: Schema, order: DependencyOrder) -> List[Artifact]:
        statements: List[object] = []
        if self.options.include_comments:
            statements.append(HeaderComment(tuple([f"{schema.name} Database Schema"] + _summary_lines(schema, order))))
        statements.extend(schema_statements(schema, order, self.options))
        content = SqlPrinter(self.options.schema_name).print(statements)
        return [self.artifact(f"{file_stem(schema)}_schema.sql", content)]


# Reading emitted DDL back

class ParsedColumn(NamedTuple):
    name: str
    type: str
    nullable: bool


_CREATE_TABLE = re.compile(
    r'CREATE\s+TABLE\s+(?:IF\s+NOT\s+EXISTS\s+)?'
    r'(?P<name>(?:"(?:[^"]|"")+"|\w+)(?:\s*\.\s*(?:"(?:[^"]|"")+"|\w+))?)\s*\(',
    re.IGNORECASE,
)
_COLUMN_NAME = re.compile(r'^\s*(?:"((?:[^"]|"")+)"|(\w+))\s+(.*)$', re.DOTALL)
_QUOTED_NAME = r'"(?:[^"]|"")+"'
# Enum types may carry a schema qualifier, quoted or not
_COLUMN_TYPE = re.compile(
    rf'^((?:(?:{_QUOTED_NAME}|[A-Za-z_]\w*)\s*\.\s*)?{_QUOTED_NAME}(?:\[\])?'
    r'|[A-Za-z_]\w*(?:\s*\.\s*[A-Za-z_]\w*)?(?:\s+PRECISION)?(?:\s*\([^)]*\))?(?:\[\])?)',
    re.IGNORECASE,
)
_TABLE_CONSTRAINT = re.compile(r"^\s*(CONSTRAINT|PRIMARY\s+KEY|FOREIGN\s+KEY|UNIQUE|CHECK|EXCLUDE)\b", re.IGNORECASE)
_TABLE_PRIMARY_KEY = re.compile(r"^\s*(?:CONSTRAINT\s+\S+\s+)?PRIMARY\s+KEY\s*\((.*)\)\s*$", re.IGNORECASE | re.DOTALL)


def _unquote(name: str) -> str:
    name = name.strip()
    if name.startswith('"') and name.endswith('"'):
        return name[1:-1].replace('""', '"')
    return name


def _scan(text: str, start: int = 0):
    """Yield (index, char, depth) for characters outside quoted strings"""
    depth = 0
    quote = None
    i = start
    while i < len(text):
        ch = text[i]
        if quote:
            if ch == quote:
                if i + 1 < len(text) and text[i + 1] == quote:
                    i += 2
                    continue
                quote = None
        elif ch in ("'", '"'):
            quote = ch
        else:
            if ch == "(":
                depth += 1
            elif ch == ")":
                depth -= 1
            yield i, ch, depth
        i += 1


def _split_top_level(body: str) -> List[str]:
    items, start = [], 0
    for i, ch, depth in _scan(body):
        if ch == "," and depth == 0:
            items.append(body[start:i])
            start = i + 1
    items.append(body[start:])
    return [item.strip() for item in items if item.strip()]


def _strip_nested(text: str) -> str:
    """Drop quoted strings and parenthesized groups, keeping top-level words"""
    kept = []
    inside = set(i for i, ch, depth in _scan(text) if depth == 0 and ch != ")")
    for i, ch in enumerate(text):
        kept.append(ch if i in inside else " ")
    return "".join(kept)


def parse_create_tables(sql: str) -> Dict[str, List[ParsedColumn]]:
    """
    Read the column lists of ``CREATE TABLE`` statements

    Returns table name (without schema qualifier) to ordered columns. Only
    understands the column forms this package emits; table-level
    constraints are skipped except for a composite PRIMARY KEY, which marks
    its columns NOT NULL.
    """
    tables: Dict[str, List[ParsedColumn]] = {}
    for match in _CREATE_TABLE.finditer(sql):
        qualified = match.group("name")
        name = _unquote(re.split(r'\s*\.\s*(?=(?:"|\w))', qualified)[-1])

        open_paren = match.end() - 1
        end = None
        for i, ch, depth in _scan(sql, open_paren):
            if ch == ")" and depth == 0:
                end = i
                break
        if end is None:
            raise ValueError(f"Unterminated CREATE TABLE statement for {name}")

        columns: List[ParsedColumn] = []
        composite_pk: List[str] = []
        for item in _split_top_level(sql[open_paren + 1:end]):
            if _TABLE_CONSTRAINT.match(item):
                pk = _TABLE_PRIMARY_KEY.match(item)
                if pk:
                    composite_pk.extend(_unquote(c) for c in _split_top_level(pk.group(1)))
                continue
            column_match = _COLUMN_NAME.match(item)
            if not column_match:
                continue
            column_name = column_match.group(1).replace('""', '"') if column_match.group(1) else column_match.group(2)
            rest = column_match.group(3).strip()
            type_match = _COLUMN_TYPE.match(rest)
            if not type_match:
                continue
            type_text = " ".join(type_match.group(1).split())
            modifiers = _strip_nested(rest[type_match.end():]).upper()
            nullable = not re.search(r"\bNOT\s+NULL\b|\bPRIMARY\s+KEY\b", modifiers)
            columns.append(ParsedColumn(column_name, type_text, nullable))

        if composite_pk:
            columns = [
                c._replace(nullable=False) if c.name in composite_pk else c for c in columns
            ]
        tables[name] = columns
    return tables
