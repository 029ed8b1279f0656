"""
JSON Schema emitter

A draft-07 document with one definition per table describing a row, and a
top-level property per table holding an array of such rows. Foreign keys
are recorded as ``x-references`` on the source column.
"""
from __future__ import annotations

import json
from typing import Any, Dict, List

from ..resolver.dependencies import DependencyOrder
from ..schema.models import Column, Schema, Table
from .base import (
    NOT_LITERAL,
    Artifact,
    BaseEmitter,
    TargetFormat,
    file_stem,
    foreign_keys,
    literal_default,
    register_emitter,
)
from .type_maps import json_schema_type

DRAFT = "http://json-schema.org/draft-07/schema#"


def column_schema(table: Table, column: Column, include_comments: bool) -> Dict[str, Any]:
    fragment = json_schema_type(column, table.name)
    if column.effective_nullable:
        if "type" in fragment:
            fragment["type"] = [fragment["type"], "null"]
        if "enum" in fragment:
            fragment["enum"] = fragment["enum"] + [None]
    if include_comments and column.comment:
        fragment["description"] = column.comment
    if column.has_default:
        value = literal_default(column.default_expression)
        if value is not NOT_LITERAL:
            fragment["default"] = value
    return fragment


def table_schema(table: Table, references: Dict[str, str], include_comments: bool) -> Dict[str, Any]:
    properties: Dict[str, Any] = {}
    for column in table.columns:
        prop = column_schema(table, column, include_comments)
        if column.name in references:
            prop["x-references"] = references[column.name]
        properties[column.name] = prop
    definition: Dict[str, Any] = {"type": "object", "title": table.name}
    if include_comments and table.comment:
        definition["description"] = table.comment
    definition["properties"] = properties
    required = [c.name for c in table.columns if not c.effective_nullable]
    if required:
        definition["required"] = required
    definition["additionalProperties"] = False
    return definition


def build_document(schema: Schema, order: DependencyOrder, include_comments: bool) -> Dict[str, Any]:
    references: Dict[str, Dict[str, str]] = {}
    for rel in foreign_keys(schema):
        target = f"{rel.target_table}.{rel.target_column}"
        references.setdefault(rel.source_table, {})[rel.source_column] = target

    tables = order.sort_tables(schema.tables)
    document: Dict[str, Any] = {
        "$schema": DRAFT,
        "$id": f"{file_stem(schema)}.schema.json",
        "title": schema.name,
    }
    if include_comments:
        document["description"] = f"Schema version {schema.version}"
    document["type"] = "object"
    document["definitions"] = {
        t.name: table_schema(t, references.get(t.name, {}), include_comments) for t in tables
    }
    document["properties"] = {
        t.name: {"type": "array", "items": {"$ref": f"#/definitions/{t.name}"}} for t in tables
    }
    document["additionalProperties"] = False
    return document


@register_emitter(TargetFormat.JSON_SCHEMA)
class JsonSchemaEmitter(BaseEmitter):
    """JSON Schema (draft-07) describing the rows of every table"""

    description = "JSON Schema (draft-07)"
    extension = ".json"
    mime_type = "application/schema+json"

    def render(self, schema: Schema, order: DependencyOrder) -> List[Artifact]:
        document = build_document(schema, order, self.options.include_comments)
        content = json.dumps(document, indent=2, ensure_ascii=False)
        return [self.artifact(f"{file_stem(schema)}.schema.json", content)]
