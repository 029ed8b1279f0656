"""
TypeScript bindings emitter

Produces a ``Database`` interface in the layout ``supabase gen types``
uses: per table a ``Row`` type, an ``Insert`` type where nullable and
defaulted columns are optional, an ``Update`` type where every column is
optional, and the table's outgoing relationships. Standalone aliases are
exported for each table as well.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import List, Tuple

from ..resolver.dependencies import DependencyOrder
from ..schema.models import Cardinality, PostgresType, Schema, Table
from ..schema.naming import singularize, to_pascal_case
from .base import Artifact, BaseEmitter, TargetFormat, foreign_keys, register_emitter
from .type_maps import enum_type_name, typescript_type

JSON_TYPE = """export type Json =
  | string
  | number
  | boolean
  | null
  | { [key: string]: Json | undefined }
  | Json[]"""

_RESERVED_ALIASES = {"Json", "Database", "Tables", "TablesInsert", "TablesUpdate", "Enums"}
_PLAIN_KEY = re.compile(r"^[A-Za-z_$][A-Za-z0-9_$]*$")
_EMPTY = "[_ in never]: never"


@dataclass
class TsProperty:
    name: str
    type: str
    optional: bool = False


@dataclass
class TsRelationship:
    foreign_key_name: str
    columns: Tuple[str, ...]
    is_one_to_one: bool
    referenced_relation: str
    referenced_columns: Tuple[str, ...]


@dataclass
class TsTable:
    name: str
    alias: str
    row: List[TsProperty] = field(default_factory=list)
    insert: List[TsProperty] = field(default_factory=list)
    update: List[TsProperty] = field(default_factory=list)
    relationships: List[TsRelationship] = field(default_factory=list)


@dataclass
class TsDatabase:
    schema_name: str
    tables: List[TsTable] = field(default_factory=list)
    enums: List[Tuple[str, Tuple[str, ...]]] = field(default_factory=list)


def property_key(name: str) -> str:
    return name if _PLAIN_KEY.match(name) else f'"{name}"'


def string_literal(text: str) -> str:
    return '"' + text.replace("\\", "\\\\").replace('"', '\\"') + '"'


class TypeScriptPrinter:
    """Prints a TsDatabase with two-space indentation"""

    def __init__(self):
        self.lines: List[str] = []

    def print(self, database: TsDatabase) -> str:
        self.lines = [JSON_TYPE, "", "export interface Database {"]
        self._open(1, f"{property_key(database.schema_name)}: {{")
        self._open(2, "Tables: {")
        if database.tables:
            for table in database.tables:
                self._table(table)
        else:
            self._line(3, _EMPTY)
        self._close(2)
        self._empty_block(2, "Views")
        self._empty_block(2, "Functions")
        self._open(2, "Enums: {")
        if database.enums:
            for name, values in database.enums:
                union = " | ".join(string_literal(v) for v in values) or "never"
                self._line(3, f"{property_key(name)}: {union}")
        else:
            self._line(3, _EMPTY)
        self._close(2)
        self._empty_block(2, "CompositeTypes")
        self._close(1)
        self.lines.append("}")
        self.lines.append("")
        self._helpers(database.schema_name)
        for table in database.tables:
            self._aliases(table)
        return "\n".join(self.lines) + "\n"

    def _line(self, depth: int, text: str) -> None:
        self.lines.append("  " * depth + text)

    def _open(self, depth: int, text: str) -> None:
        self._line(depth, text)

    def _close(self, depth: int, text: str = "}") -> None:
        self._line(depth, text)

    def _empty_block(self, depth: int, name: str) -> None:
        self._open(depth, f"{name}: {{")
        self._line(depth + 1, _EMPTY)
        self._close(depth)

    def _properties(self, depth: int, label: str, properties: List[TsProperty]) -> None:
        self._open(depth, f"{label}: {{")
        for prop in properties:
            optional = "?" if prop.optional else ""
            self._line(depth + 1, f"{property_key(prop.name)}{optional}: {prop.type}")
        self._close(depth)

    def _table(self, table: TsTable) -> None:
        self._open(3, f"{property_key(table.name)}: {{")
        self._properties(4, "Row", table.row)
        self._properties(4, "Insert", table.insert)
        self._properties(4, "Update", table.update)
        if not table.relationships:
            self._line(4, "Relationships: []")
        else:
            self._open(4, "Relationships: [")
            for rel in table.relationships:
                self._open(5, "{")
                self._line(6, f"foreignKeyName: {string_literal(rel.foreign_key_name)}")
                self._line(6, f"columns: [{', '.join(string_literal(c) for c in rel.columns)}]")
                self._line(6, f"isOneToOne: {'true' if rel.is_one_to_one else 'false'}")
                self._line(6, f"referencedRelation: {string_literal(rel.referenced_relation)}")
                self._line(
                    6, f"referencedColumns: [{', '.join(string_literal(c) for c in rel.referenced_columns)}]"
                )
                self._close(5)
            self._close(4, "]")
        self._close(3)

    def _helpers(self, schema_name: str) -> None:
        root = f"Database[{string_literal(schema_name)}]"
        for name, part in (("Tables", "Row"), ("TablesInsert", "Insert"), ("TablesUpdate", "Update")):
            self.lines.append(
                f"export type {name}<T extends keyof {root}[\"Tables\"]> = "
                f"{root}[\"Tables\"][T][\"{part}\"]"
            )
        self.lines.append(
            f"export type Enums<T extends keyof {root}[\"Enums\"]> = {root}[\"Enums\"][T]"
        )

    def _aliases(self, table: TsTable) -> None:
        name = string_literal(table.name)
        self.lines.append("")
        self.lines.append(f"export type {table.alias} = Tables<{name}>")
        self.lines.append(f"export type {table.alias}Insert = TablesInsert<{name}>")
        self.lines.append(f"export type {table.alias}Update = TablesUpdate<{name}>")


def type_alias(table_name: str, taken: set) -> str:
    alias = to_pascal_case(singularize(table_name)) or "Table"
    if alias[0].isdigit():
        alias = f"T{alias}"
    if alias in _RESERVED_ALIASES:
        alias = f"{alias}Row"
    candidate, n = alias, 2
    while candidate in taken:
        candidate = f"{alias}{n}"
        n += 1
    taken.add(candidate)
    return candidate


def build_database(schema: Schema, order: DependencyOrder, schema_name: str) -> TsDatabase:
    database = TsDatabase(schema_name=schema_name)
    keys = foreign_keys(schema)
    taken: set = set()

    for table in order.sort_tables(schema.tables):
        database.tables.append(_build_table(table, keys, taken))
        for column in table.columns:
            if column.data_type == PostgresType.ENUM:
                database.enums.append((enum_type_name(table.name, column.name), column.enum_values))
    return database


def _build_table(table: Table, keys, taken: set) -> TsTable:
    ts_table = TsTable(name=table.name, alias=type_alias(table.name, taken))
    for column in table.columns:
        base = typescript_type(column, table.name)
        nullable = column.effective_nullable
        full = f"{base} | null" if nullable else base
        ts_table.row.append(TsProperty(column.name, full))
        ts_table.insert.append(TsProperty(column.name, full, optional=nullable or column.has_default))
        ts_table.update.append(TsProperty(column.name, full, optional=True))
    for rel in keys:
        if rel.source_table != table.name:
            continue
        ts_table.relationships.append(TsRelationship(
            foreign_key_name=rel.name,
            columns=(rel.source_column,),
            is_one_to_one=rel.cardinality == Cardinality.ONE_TO_ONE,
            referenced_relation=rel.target_table,
            referenced_columns=(rel.target_column,),
        ))
    return ts_table


@register_emitter(TargetFormat.TYPESCRIPT)
class TypeScriptEmitter(BaseEmitter):
    """Supabase-style TypeScript database types"""

    description = "TypeScript database types (Supabase layout)"
    extension = ".ts"
    mime_type = "application/typescript"

    def render(self, schema: Schema, order: DependencyOrder) -> List[Artifact]:
        database = build_database(schema, order, self.options.schema_name)
        return [self.artifact("database.types.ts", TypeScriptPrinter().print(database))]
