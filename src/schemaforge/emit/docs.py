"""
Markdown documentation emitter

A data dictionary: schema statistics, a table of contents,
then per table its columns, indexes, outgoing references and access
policies, followed by a summary of every relationship.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import List, Sequence

from ..resolver.dependencies import DependencyOrder
from ..schema.models import Column, Relationship, Schema, Table
from .base import Artifact, BaseEmitter, TargetFormat, file_stem, foreign_keys, register_emitter
from .type_maps import sql_type


@dataclass
class MarkdownTable:
    headers: Sequence[str]
    rows: List[Sequence[str]] = field(default_factory=list)


@dataclass
class MarkdownSection:
    title: str
    level: int = 2
    paragraphs: List[str] = field(default_factory=list)
    tables: List[MarkdownTable] = field(default_factory=list)
    items: List[str] = field(default_factory=list)


class MarkdownPrinter:
    def print(self, title: str, sections: List[MarkdownSection]) -> str:
        blocks = [f"# {title}"]
        for section in sections:
            blocks.append(f"{'#' * section.level} {section.title}")
            blocks.extend(section.paragraphs)
            blocks.extend(self._table(t) for t in section.tables)
            if section.items:
                blocks.append("\n".join(f"- {item}" for item in section.items))
        return "\n\n".join(blocks) + "\n"

    @staticmethod
    def _table(table: MarkdownTable) -> str:
        lines = [
            "| " + " | ".join(table.headers) + " |",
            "|" + "|".join("---" for _ in table.headers) + "|",
        ]
        lines.extend("| " + " | ".join(cell(c) for c in row) + " |" for row in table.rows)
        return "\n".join(lines)


def cell(text: str) -> str:
    return " ".join(str(text).split()).replace("|", "\\|")


def code(text: str) -> str:
    return f"`{text}`" if text else ""


def anchor(title: str) -> str:
    """GitHub heading anchor"""
    slug = re.sub(r"[^\w\- ]", "", title.strip().lower())
    return slug.replace(" ", "-")


def _constraints(column: Column, fk_targets: dict) -> str:
    parts = []
    if column.is_primary_key:
        parts.append("PK")
    if column.is_unique and not column.is_primary_key:
        parts.append("UNIQUE")
    if column.name in fk_targets:
        parts.append(f"FK {fk_targets[column.name]}")
    parts.extend(f"CHECK ({e})" for e in column.check_expressions)
    return ", ".join(parts)


def table_section(
    schema: Schema,
    table: Table,
    outgoing: List[Relationship],
    include_comments: bool,
    include_policies: bool,
) -> MarkdownSection:
    section = MarkdownSection(title=table.name, level=3)
    if include_comments and table.comment:
        section.paragraphs.append(table.comment)

    fk_targets = {r.source_column: f"{r.target_table}.{r.target_column}" for r in outgoing}
    headers = ["Column", "Type", "Nullable", "Default", "Constraints"]
    if include_comments:
        headers.append("Description")
    columns = MarkdownTable(headers=headers)
    for column in table.columns:
        row = [
            code(column.name),
            code(sql_type(column, table.name).replace('"', "")),
            "yes" if column.effective_nullable else "no",
            code(column.default_expression or ""),
            _constraints(column, fk_targets),
        ]
        if include_comments:
            row.append(column.comment or "")
        columns.rows.append(row)
    section.tables.append(columns)

    for index in table.indexes:
        kind = "unique index" if index.unique else "index"
        method = f" using {index.method.value}" if index.method else ""
        section.items.append(f"{kind} {code(index.name)} on ({', '.join(index.columns)}){method}")
    for rel in outgoing:
        section.items.append(
            f"{code(rel.source_column)} references {code(f'{rel.target_table}.{rel.target_column}')} "
            f"({rel.cardinality.value}, on delete {rel.on_delete.value})"
        )
    if include_policies:
        for policy in schema.policies_for(table.name):
            clauses = []
            if policy.using:
                clauses.append(f"USING {code(policy.using)}")
            if policy.with_check:
                clauses.append(f"WITH CHECK {code(policy.with_check)}")
            roles = ", ".join(policy.roles) or "public"
            detail = f": {'; '.join(clauses)}" if clauses else ""
            section.items.append(
                f"policy {code(policy.name)} for {policy.operation.value} to {roles}{detail}"
            )
    return section


def build_sections(
    schema: Schema,
    order: DependencyOrder,
    include_comments: bool,
    include_policies: bool,
) -> List[MarkdownSection]:
    tables = order.sort_tables(schema.tables)
    keys = order.sort_relationships(foreign_keys(schema))

    statistics = MarkdownTable(headers=["Metric", "Count"], rows=[
        ["Tables", str(len(tables))],
        ["Columns", str(sum(len(t.columns) for t in tables))],
        ["Relationships", str(len(keys))],
        ["Indexes", str(sum(len(t.indexes) for t in tables))],
        ["Policies", str(len(schema.policies))],
    ])
    overview = MarkdownSection(
        title="Statistics",
        paragraphs=[f"Version {schema.version}, updated {schema.updated_at.strftime('%Y-%m-%d %H:%M UTC')}."],
        tables=[statistics],
    )
    contents = MarkdownSection(
        title="Tables",
        items=[f"[{t.name}](#{anchor(t.name)})" for t in tables],
    )
    sections = [overview, contents]
    for table in tables:
        outgoing = [r for r in keys if r.source_table == table.name]
        sections.append(table_section(schema, table, outgoing, include_comments, include_policies))

    if keys:
        relationships = MarkdownTable(headers=["Name", "From", "To", "Cardinality", "On delete", "On update"])
        for rel in keys:
            relationships.rows.append([
                code(rel.name),
                code(f"{rel.source_table}.{rel.source_column}"),
                code(f"{rel.target_table}.{rel.target_column}"),
                rel.cardinality.value,
                rel.on_delete.value,
                rel.on_update.value,
            ])
        sections.append(MarkdownSection(title="Relationships", tables=[relationships]))
    return sections


@register_emitter(TargetFormat.MARKDOWN)
class MarkdownEmitter(BaseEmitter):
    """Markdown data dictionary"""

    description = "Markdown documentation"
    extension = ".md"
    mime_type = "text/markdown"

    def render(self, schema: Schema, order: DependencyOrder) -> List[Artifact]:
        sections = build_sections(
            schema, order, self.options.include_comments, self.options.include_policies
        )
        content = MarkdownPrinter().print(schema.name, sections)
        return [self.artifact(f"{file_stem(schema)}_schema.md", content)]
