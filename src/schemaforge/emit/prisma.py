"""
Prisma schema emitter

One model per table (PascalCase, singular, ``@@map`` to the table name),
camelCase fields mapped back to column names, and both sides of every
relation so the file passes ``prisma validate``.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set

from ..resolver.dependencies import DependencyOrder
from ..schema.models import Cardinality, Column, PostgresType, ReferentialAction, Relationship, Schema, Table
from ..schema.naming import singularize, to_camel_case, to_pascal_case
from .base import Artifact, BaseEmitter, TargetFormat, foreign_keys, register_emitter
from .type_maps import enum_model_name, enum_type_name, prisma_native_attribute, prisma_type

_UUID_DEFAULTS = ("gen_random_uuid()", "uuid_generate_v4()")
_NOW_DEFAULTS = ("now()", "current_timestamp", "current_timestamp()")
_NUMBER = re.compile(r"^-?\d+(\.\d+)?$")
_STRING_LITERAL = re.compile(r"^'((?:[^']|'')*)'(?:::[\w ]+)?$")

_REFERENTIAL_ACTIONS = {
    ReferentialAction.CASCADE: "Cascade",
    ReferentialAction.SET_NULL: "SetNull",
    ReferentialAction.RESTRICT: "Restrict",
    ReferentialAction.NO_ACTION: "NoAction",
}


@dataclass
class PrismaField:
    name: str
    type: str
    optional: bool = False
    attributes: List[str] = field(default_factory=list)


@dataclass
class PrismaModel:
    name: str
    fields: List[PrismaField] = field(default_factory=list)
    block_attributes: List[str] = field(default_factory=list)
    documentation: Optional[str] = None


@dataclass
class PrismaEnum:
    name: str
    values: List[PrismaField]
    db_name: str


@dataclass
class PrismaDocument:
    provider: str = "postgresql"
    enums: List[PrismaEnum] = field(default_factory=list)
    models: List[PrismaModel] = field(default_factory=list)


class PrismaPrinter:
    """Prints a PrismaDocument with column-aligned fields"""

    def print(self, document: PrismaDocument) -> str:
        blocks = [
            "generator client {\n  provider = \"prisma-client-js\"\n}",
            "datasource db {\n"
            f"  provider = \"{document.provider}\"\n"
            "  url      = env(\"DATABASE_URL\")\n"
            "}",
        ]
        blocks.extend(self._enum(e) for e in document.enums)
        blocks.extend(self._model(m) for m in document.models)
        return "\n\n".join(blocks) + "\n"

    def _enum(self, enum: PrismaEnum) -> str:
        lines = [f"enum {enum.name} {{"]
        lines.extend(self._aligned(enum.values, with_type=False))
        lines.append(f"  @@map(\"{enum.db_name}\")")
        lines.append("}")
        return "\n".join(lines)

    def _model(self, model: PrismaModel) -> str:
        lines = []
        if model.documentation:
            lines.append(f"/// {model.documentation}")
        lines.append(f"model {model.name} {{")
        lines.extend(self._aligned(model.fields))
        if model.block_attributes:
            lines.append("")
            lines.extend(f"  {attribute}" for attribute in model.block_attributes)
        lines.append("}")
        return "\n".join(lines)

    def _aligned(self, fields: List[PrismaField], with_type: bool = True) -> List[str]:
        if not fields:
            return []
        name_width = max(len(f.name) for f in fields)
        type_width = max(len(self._type(f)) for f in fields) if with_type else 0
        lines = []
        for f in fields:
            parts = [f.name.ljust(name_width)]
            if with_type:
                parts.append(self._type(f).ljust(type_width))
            if f.attributes:
                parts.append(" ".join(f.attributes))
            lines.append("  " + " ".join(parts).rstrip())
        return lines

    @staticmethod
    def _type(f: PrismaField) -> str:
        return f.type + ("?" if f.optional else "")


def model_name(table_name: str) -> str:
    return to_pascal_case(singularize(table_name)) or to_pascal_case(table_name)


def field_name(column_name: str) -> str:
    name = to_camel_case(column_name)
    if not name or name[0].isdigit():
        name = f"f{to_pascal_case(column_name)}"
    return name


def default_attribute(expression: str) -> str:
    """Translate a SQL default into a Prisma ``@default``"""
    text = expression.strip()
    lower = text.lower()
    if lower in _UUID_DEFAULTS:
        return "@default(uuid())"
    if lower in _NOW_DEFAULTS:
        return "@default(now())"
    if lower in ("true", "false") or _NUMBER.match(text):
        return f"@default({lower if lower in ('true', 'false') else text})"
    literal = _STRING_LITERAL.match(text)
    if literal:
        value = literal.group(1).replace("''", "'").replace("\\", "\\\\").replace('"', '\\"')
        return f"@default(\"{value}\")"
    escaped = text.replace("\\", "\\\\").replace('"', '\\"')
    return f"@default(dbgenerated(\"{escaped}\"))"


class _ModelBuilder:
    """Builds the Prisma models of one schema"""

    def __init__(self, schema: Schema, order: DependencyOrder):
        self.schema = schema
        self.tables = order.sort_tables(schema.tables)
        self.keys = foreign_keys(schema)
        self.models: Dict[str, PrismaModel] = {}
        self.used_names: Dict[str, Set[str]] = {}

    def build(self, include_comments: bool) -> PrismaDocument:
        document = PrismaDocument()
        for table in self.tables:
            model = PrismaModel(
                name=model_name(table.name),
                documentation=table.comment if include_comments else None,
            )
            self.models[table.name] = model
            self.used_names[table.name] = set()
            for column in table.columns:
                model.fields.append(self._scalar_field(table, column))
                if column.data_type == PostgresType.ENUM:
                    document.enums.append(self._enum(table, column))

        for rel in self.keys:
            self._relation_fields(rel)

        for table in self.tables:
            self._block_attributes(table, self.models[table.name])
            document.models.append(self.models[table.name])
        return document

    def _claim(self, table_name: str, name: str) -> str:
        used = self.used_names[table_name]
        candidate, n = name, 2
        while candidate in used:
            candidate = f"{name}{n}"
            n += 1
        used.add(candidate)
        return candidate

    def _scalar_field(self, table: Table, column: Column) -> PrismaField:
        name = self._claim(table.name, field_name(column.name))
        attributes: List[str] = []
        pk_columns = table.primary_key_columns
        if column.is_primary_key and len(pk_columns) == 1:
            attributes.append("@id")
        elif column.is_unique and not column.is_primary_key:
            attributes.append("@unique")
        if column.has_default:
            attributes.append(default_attribute(column.default_expression))
        if name != column.name:
            attributes.append(f"@map(\"{column.name}\")")
        native = prisma_native_attribute(column, table.name)
        if native:
            attributes.append(native)
        is_list = column.data_type == PostgresType.ARRAY
        return PrismaField(
            name=name,
            type=prisma_type(column, table.name),
            optional=column.effective_nullable and not is_list,
            attributes=attributes,
        )

    def _enum(self, table: Table, column: Column) -> PrismaEnum:
        values = []
        for value in column.enum_values:
            identifier = re.sub(r"\W", "_", value)
            if not identifier or identifier[0].isdigit():
                identifier = f"v_{identifier}"
            attributes = [f"@map(\"{value}\")"] if identifier != value else []
            values.append(PrismaField(name=identifier, type="", attributes=attributes))
        return PrismaEnum(
            name=enum_model_name(table.name, column.name),
            values=values,
            db_name=enum_type_name(table.name, column.name),
        )

    def _scalar_name(self, table_name: str, column_name: str) -> str:
        table = self.schema.get_table(table_name)
        index = table.column_names.index(column_name)
        return self.models[table_name].fields[index].name

    def _relation_fields(self, rel: Relationship) -> None:
        source = self.schema.get_table(rel.source_table)
        source_column = source.get_column(rel.source_column)
        target_model = self.models[rel.target_table]
        source_model = self.models[rel.source_table]

        base = rel.source_column[:-3] if rel.source_column.lower().endswith("_id") else rel.target_table
        forward_name = self._claim(rel.source_table, to_camel_case(base) or to_camel_case(rel.target_table))
        actions = (
            f"onDelete: {_REFERENTIAL_ACTIONS[rel.on_delete]}, "
            f"onUpdate: {_REFERENTIAL_ACTIONS[rel.on_update]}"
        )
        source_model.fields.append(PrismaField(
            name=forward_name,
            type=target_model.name,
            optional=source_column.effective_nullable,
            attributes=[
                f"@relation(\"{rel.name}\", "
                f"fields: [{self._scalar_name(rel.source_table, rel.source_column)}], "
                f"references: [{self._scalar_name(rel.target_table, rel.target_column)}], "
                f"{actions})"
            ],
        ))

        one_to_one = rel.cardinality == Cardinality.ONE_TO_ONE
        back_base = singularize(rel.source_table) if one_to_one else rel.source_table
        if rel.is_self_reference:
            back_base = f"{back_base}_by_{base}"
        back_name = self._claim(rel.target_table, to_camel_case(back_base))
        target_model.fields.append(PrismaField(
            name=back_name,
            type=source_model.name if one_to_one else f"{source_model.name}[]",
            optional=one_to_one,
            attributes=[f"@relation(\"{rel.name}\")"],
        ))

    def _block_attributes(self, table: Table, model: PrismaModel) -> None:
        pk_columns = table.primary_key_columns
        if len(pk_columns) > 1:
            names = ", ".join(self._scalar_name(table.name, c.name) for c in pk_columns)
            model.block_attributes.append(f"@@id([{names}])")
        for index in table.indexes:
            if not all(table.has_column(c) for c in index.columns):
                continue
            names = ", ".join(self._scalar_name(table.name, c) for c in index.columns)
            kind = "@@unique" if index.unique else "@@index"
            model.block_attributes.append(f"{kind}([{names}], map: \"{index.name}\")")
        model.block_attributes.append(f"@@map(\"{table.name}\")")


@register_emitter(TargetFormat.PRISMA)
class PrismaEmitter(BaseEmitter):
    """Prisma ORM schema"""

    description = "Prisma ORM schema"
    extension = ".prisma"
    mime_type = "text/plain"

    def render(self, schema: Schema, order: DependencyOrder) -> List[Artifact]:
        document = _ModelBuilder(schema, order).build(self.options.include_comments)
        return [self.artifact("schema.prisma", PrismaPrinter().print(document))]
