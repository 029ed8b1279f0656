"""
Diagram emitters: Mermaid and PlantUML ER diagrams, and DBML
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from ..resolver.dependencies import DependencyOrder
from ..schema.models import Cardinality, Column, IndexMethod, PostgresType, ReferentialAction, Schema, Table
from .base import Artifact, BaseEmitter, TargetFormat, file_stem, foreign_keys, register_emitter
from .type_maps import dbml_type, enum_type_name, mermaid_type, sql_type

# Mermaid edge notation, written parent first
MERMAID_EDGES = {
    Cardinality.ONE_TO_ONE: "||--||",
    Cardinality.ONE_TO_MANY: "||--o{",
    Cardinality.MANY_TO_MANY: "}o--o{",
}

# DBML ref operators, written child first
DBML_OPERATORS = {
    Cardinality.ONE_TO_ONE: "-",
    Cardinality.ONE_TO_MANY: ">",
    Cardinality.MANY_TO_MANY: "<>",
}

_PLAIN_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_NUMBER = re.compile(r"^-?\d+(\.\d+)?$")
_STRING_LITERAL = re.compile(r"^'((?:[^']|'')*)'$")


# Mermaid

@dataclass
class MermaidAttribute:
    type: str
    name: str
    keys: Tuple[str, ...] = ()
    comment: Optional[str] = None


@dataclass
class MermaidEntity:
    name: str
    attributes: List[MermaidAttribute] = field(default_factory=list)


@dataclass
class MermaidEdge:
    parent: str
    child: str
    notation: str
    label: str


@dataclass
class MermaidDiagram:
    entities: List[MermaidEntity] = field(default_factory=list)
    edges: List[MermaidEdge] = field(default_factory=list)


class MermaidPrinter:
    def print(self, diagram: MermaidDiagram) -> str:
        lines = ["erDiagram"]
        for entity in diagram.entities:
            lines.append(f"    {entity.name} {{")
            for attr in entity.attributes:
                parts = [attr.type, attr.name]
                if attr.keys:
                    parts.append(", ".join(attr.keys))
                if attr.comment:
                    parts.append(f"\"{attr.comment}\"")
                lines.append("        " + " ".join(parts))
            lines.append("    }")
        for edge in diagram.edges:
            lines.append(f"    {edge.parent} {edge.notation} {edge.child} : \"{edge.label}\"")
        return "\n".join(lines) + "\n"


def mermaid_entity_name(table_name: str) -> str:
    return re.sub(r"\W", "_", table_name).upper()


def mermaid_attribute_name(column_name: str) -> str:
    return re.sub(r"[^\w-]", "_", column_name)


def build_mermaid(schema: Schema, order: DependencyOrder, include_comments: bool) -> MermaidDiagram:
    diagram = MermaidDiagram()
    keys = foreign_keys(schema)
    fk_columns = {(r.source_table, r.source_column) for r in keys}

    for table in order.sort_tables(schema.tables):
        entity = MermaidEntity(mermaid_entity_name(table.name))
        for column in table.columns:
            flags = []
            if column.is_primary_key:
                flags.append("PK")
            if (table.name, column.name) in fk_columns:
                flags.append("FK")
            if column.is_unique and not column.is_primary_key:
                flags.append("UK")
            comment = column.comment.replace('"', "'") if include_comments and column.comment else None
            entity.attributes.append(MermaidAttribute(
                type=mermaid_type(column, table.name),
                name=mermaid_attribute_name(column.name),
                keys=tuple(flags),
                comment=comment,
            ))
        diagram.entities.append(entity)

    for rel in order.sort_relationships(keys):
        diagram.edges.append(MermaidEdge(
            parent=mermaid_entity_name(rel.target_table),
            child=mermaid_entity_name(rel.source_table),
            notation=MERMAID_EDGES[rel.cardinality],
            label=rel.source_column,
        ))
    return diagram


@register_emitter(TargetFormat.MERMAID)
class MermaidEmitter(BaseEmitter):
    """Mermaid entity-relationship diagram"""

    description = "Mermaid ER diagram"
    extension = ".mmd"
    mime_type = "text/plain"

    def render(self, schema: Schema, order: DependencyOrder) -> List[Artifact]:
        diagram = build_mermaid(schema, order, self.options.include_comments)
        return [self.artifact(f"{file_stem(schema)}.mmd", MermaidPrinter().print(diagram))]


# DBML

@dataclass
class DbmlColumn:
    name: str
    type: str
    settings: List[str] = field(default_factory=list)


@dataclass
class DbmlIndex:
    columns: Tuple[str, ...]
    settings: List[str] = field(default_factory=list)


@dataclass
class DbmlTable:
    name: str
    columns: List[DbmlColumn] = field(default_factory=list)
    indexes: List[DbmlIndex] = field(default_factory=list)
    note: Optional[str] = None


@dataclass
class DbmlEnum:
    name: str
    values: Tuple[str, ...]


@dataclass
class DbmlRef:
    name: str
    source: str
    operator: str
    target: str
    settings: List[str] = field(default_factory=list)


@dataclass
class DbmlDocument:
    project: str
    note: Optional[str] = None
    enums: List[DbmlEnum] = field(default_factory=list)
    tables: List[DbmlTable] = field(default_factory=list)
    refs: List[DbmlRef] = field(default_factory=list)


def dbml_name(name: str) -> str:
    return name if _PLAIN_NAME.match(name) else '"' + name.replace('"', '\\"') + '"'


def dbml_string(text: str) -> str:
    return "'" + text.replace("\\", "\\\\").replace("'", "\\'") + "'"


def dbml_default(expression: str) -> str:
    text = expression.strip()
    lower = text.lower()
    if lower in ("true", "false", "null") or _NUMBER.match(text):
        return lower if lower in ("true", "false", "null") else text
    literal = _STRING_LITERAL.match(text)
    if literal:
        return dbml_string(literal.group(1).replace("''", "'"))
    return f"`{text}`"


class DbmlPrinter:
    def print(self, document: DbmlDocument) -> str:
        blocks = [self._project(document)]
        blocks.extend(self._enum(e) for e in document.enums)
        blocks.extend(self._table(t) for t in document.tables)
        if document.refs:
            blocks.append("\n".join(self._ref(r) for r in document.refs))
        return "\n\n".join(blocks) + "\n"

    def _project(self, document: DbmlDocument) -> str:
        lines = [f"Project {dbml_name(document.project)} {{", "  database_type: 'PostgreSQL'"]
        if document.note:
            lines.append(f"  Note: {dbml_string(document.note)}")
        lines.append("}")
        return "\n".join(lines)

    def _enum(self, enum: DbmlEnum) -> str:
        lines = [f"Enum {dbml_name(enum.name)} {{"]
        lines.extend(f"  {dbml_name(v)}" for v in enum.values)
        lines.append("}")
        return "\n".join(lines)

    def _table(self, table: DbmlTable) -> str:
        lines = [f"Table {dbml_name(table.name)} {{"]
        for column in table.columns:
            settings = f" [{', '.join(column.settings)}]" if column.settings else ""
            lines.append(f"  {dbml_name(column.name)} {column.type}{settings}")
        if table.indexes:
            lines.append("")
            lines.append("  indexes {")
            for index in table.indexes:
                columns = ", ".join(dbml_name(c) for c in index.columns)
                target = columns if len(index.columns) == 1 else f"({columns})"
                settings = f" [{', '.join(index.settings)}]" if index.settings else ""
                lines.append(f"    {target}{settings}")
            lines.append("  }")
        if table.note:
            lines.append("")
            lines.append(f"  Note: {dbml_string(table.note)}")
        lines.append("}")
        return "\n".join(lines)

    def _ref(self, ref: DbmlRef) -> str:
        settings = f" [{', '.join(ref.settings)}]" if ref.settings else ""
        return f"Ref {dbml_name(ref.name)}: {ref.source} {ref.operator} {ref.target}{settings}"


def _column_settings(table: Table, column: Column, include_comments: bool) -> List[str]:
    settings = []
    single_pk = len(table.primary_key_columns) == 1
    if column.is_primary_key and single_pk:
        settings.append("pk")
    elif not column.effective_nullable:
        settings.append("not null")
    if column.is_unique and not column.is_primary_key:
        settings.append("unique")
    if column.has_default:
        settings.append(f"default: {dbml_default(column.default_expression)}")
    if include_comments and column.comment:
        settings.append(f"note: {dbml_string(column.comment)}")
    return settings


def _action(action: ReferentialAction) -> str:
    return action.value.lower()


def build_dbml(schema: Schema, order: DependencyOrder, include_comments: bool) -> DbmlDocument:
    document = DbmlDocument(
        project=schema.name,
        note=f"Schema version {schema.version}" if include_comments else None,
    )
    tables = order.sort_tables(schema.tables)

    for table in tables:
        dbml_table = DbmlTable(name=table.name, note=table.comment if include_comments else None)
        for column in table.columns:
            if column.data_type == PostgresType.ENUM:
                document.enums.append(DbmlEnum(enum_type_name(table.name, column.name), column.enum_values))
            dbml_table.columns.append(DbmlColumn(
                name=column.name,
                type=dbml_type(column, table.name),
                settings=_column_settings(table, column, include_comments),
            ))
        pk_columns = table.primary_key_columns
        if len(pk_columns) > 1:
            dbml_table.indexes.append(DbmlIndex(tuple(c.name for c in pk_columns), ["pk"]))
        for index in table.indexes:
            settings = [f"name: {dbml_string(index.name)}"]
            if index.unique:
                settings.append("unique")
            if index.method in (IndexMethod.BTREE, IndexMethod.HASH):
                settings.append(f"type: {index.method.value.lower()}")
            dbml_table.indexes.append(DbmlIndex(index.columns, settings))
        document.tables.append(dbml_table)

    for rel in order.sort_relationships(foreign_keys(schema)):
        document.refs.append(DbmlRef(
            name=rel.name,
            source=f"{dbml_name(rel.source_table)}.{dbml_name(rel.source_column)}",
            operator=DBML_OPERATORS[rel.cardinality],
            target=f"{dbml_name(rel.target_table)}.{dbml_name(rel.target_column)}",
            settings=[f"delete: {_action(rel.on_delete)}", f"update: {_action(rel.on_update)}"],
        ))
    return document


@register_emitter(TargetFormat.DBML)
class DbmlEmitter(BaseEmitter):
    """DBML for dbdiagram.io and dbdocs"""

    description = "DBML (dbdiagram.io)"
    extension = ".dbml"
    mime_type = "text/plain"

    def render(self, schema: Schema, order: DependencyOrder) -> List[Artifact]:
        document = build_dbml(schema, order, self.options.include_comments)
        return [self.artifact(f"{file_stem(schema)}.dbml", DbmlPrinter().print(document))]


# PlantUML

# Same crow's foot notation as Mermaid, written parent first
PLANTUML_EDGES = dict(MERMAID_EDGES)


@dataclass
class PlantUmlAttribute:
    name: str
    type: str
    mandatory: bool = False
    stereotypes: Tuple[str, ...] = ()


@dataclass
class PlantUmlEntity:
    name: str
    alias: str
    keys: List[PlantUmlAttribute] = field(default_factory=list)
    attributes: List[PlantUmlAttribute] = field(default_factory=list)
    note: Optional[str] = None


@dataclass
class PlantUmlDiagram:
    title: str
    entities: List[PlantUmlEntity] = field(default_factory=list)
    edges: List[MermaidEdge] = field(default_factory=list)


class PlantUmlPrinter:
    def print(self, diagram: PlantUmlDiagram) -> str:
        lines = [f"@startuml {plantuml_alias(diagram.title)}", "hide circle", "skinparam linetype ortho", ""]
        for entity in diagram.entities:
            lines.append(f"entity \"{entity.name}\" as {entity.alias} {{")
            lines.extend(self._attribute(a) for a in entity.keys)
            if entity.keys and entity.attributes:
                lines.append("  --")
            lines.extend(self._attribute(a) for a in entity.attributes)
            lines.append("}")
            if entity.note:
                lines.append(f"note right of {entity.alias} : {entity.note}")
            lines.append("")
        for edge in diagram.edges:
            lines.append(f"{edge.parent} {edge.notation} {edge.child} : {edge.label}")
        lines.append("@enduml")
        return "\n".join(lines) + "\n"

    @staticmethod
    def _attribute(attr: PlantUmlAttribute) -> str:
        marker = "* " if attr.mandatory else ""
        stereotypes = "".join(f" <<{s}>>" for s in attr.stereotypes)
        return f"  {marker}{attr.name} : {attr.type}{stereotypes}"


def plantuml_alias(name: str) -> str:
    alias = re.sub(r"\W", "_", name)
    return alias if alias and not alias[0].isdigit() else f"_{alias}"


def build_plantuml(schema: Schema, order: DependencyOrder, include_comments: bool) -> PlantUmlDiagram:
    diagram = PlantUmlDiagram(title=schema.name)
    keys = foreign_keys(schema)
    fk_columns = {(r.source_table, r.source_column) for r in keys}

    for table in order.sort_tables(schema.tables):
        entity = PlantUmlEntity(
            name=table.name,
            alias=plantuml_alias(table.name),
            note=" ".join(table.comment.split()) if include_comments and table.comment else None,
        )
        for column in table.columns:
            stereotypes = []
            if column.is_primary_key:
                stereotypes.append("PK")
            if (table.name, column.name) in fk_columns:
                stereotypes.append("FK")
            if column.is_unique and not column.is_primary_key:
                stereotypes.append("UK")
            attribute = PlantUmlAttribute(
                name=column.name,
                type=sql_type(column, table.name).replace('"', ""),
                mandatory=not column.effective_nullable,
                stereotypes=tuple(stereotypes),
            )
            (entity.keys if column.is_primary_key else entity.attributes).append(attribute)
        diagram.entities.append(entity)

    for rel in order.sort_relationships(keys):
        diagram.edges.append(MermaidEdge(
            parent=plantuml_alias(rel.target_table),
            child=plantuml_alias(rel.source_table),
            notation=PLANTUML_EDGES[rel.cardinality],
            label=rel.source_column,
        ))
    return diagram


@register_emitter(TargetFormat.PLANTUML)
class PlantUmlEmitter(BaseEmitter):
    """PlantUML entity-relationship diagram"""

    description = "PlantUML ER diagram"
    extension = ".puml"
    mime_type = "text/plain"

    def render(self, schema: Schema, order: DependencyOrder) -> List[Artifact]:
        diagram = build_plantuml(schema, order, self.options.include_comments)
        return [self.artifact(f"{file_stem(schema)}.puml", PlantUmlPrinter().print(diagram))]
