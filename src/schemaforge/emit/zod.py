"""
Zod validation schema emitter

Per table a row schema, an insert schema where nullable and defaulted
columns may be omitted, an update schema where every column may be
omitted, and the inferred TypeScript types. Keys are the column names, as
in the rows the database returns.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import List

from ..resolver.dependencies import DependencyOrder
from ..schema.models import PostgresType, Schema, Table
from .base import Artifact, BaseEmitter, TargetFormat, register_emitter
from .type_maps import zod_type
from .typescript import property_key, type_alias

JSON_SCHEMA = """const literalSchema = z.union([z.string(), z.number(), z.boolean(), z.null()]);
type Literal = z.infer<typeof literalSchema>;
type Json = Literal | { [key: string]: Json } | Json[];
const jsonSchema: z.ZodType<Json> = z.lazy(() =>
  z.union([literalSchema, z.array(jsonSchema), z.record(jsonSchema)])
);"""


@dataclass
class ZodField:
    name: str
    type: str
    optional_on_insert: bool = False


@dataclass
class ZodObject:
    alias: str
    table_name: str
    fields: List[ZodField] = field(default_factory=list)

    @property
    def prefix(self) -> str:
        return self.alias[:1].lower() + self.alias[1:]


@dataclass
class ZodDocument:
    uses_json: bool = False
    objects: List[ZodObject] = field(default_factory=list)


class ZodPrinter:
    def print(self, document: ZodDocument) -> str:
        blocks = ["import { z } from 'zod';"]
        if document.uses_json:
            blocks.append(JSON_SCHEMA)
        blocks.extend(self._object(o) for o in document.objects)
        return "\n\n".join(blocks) + "\n"

    def _object(self, obj: ZodObject) -> str:
        variable = f"{obj.prefix}Schema"
        lines = [f"/** Row of {obj.table_name} */", f"export const {variable} = z.object({{"]
        lines.extend(f"  {property_key(f.name)}: {f.type}," for f in obj.fields)
        lines.append("});")

        omittable = [f for f in obj.fields if f.optional_on_insert]
        insert = f"{obj.prefix}InsertSchema"
        if omittable:
            keys = ", ".join(f"{property_key(f.name)}: true" for f in omittable)
            lines.append(f"export const {insert} = {variable}.partial({{ {keys} }});")
        else:
            lines.append(f"export const {insert} = {variable};")
        update = f"{obj.prefix}UpdateSchema"
        lines.append(f"export const {update} = {variable}.partial();")
        lines.append("")
        lines.append(f"export type {obj.alias} = z.infer<typeof {variable}>;")
        lines.append(f"export type {obj.alias}Insert = z.infer<typeof {insert}>;")
        lines.append(f"export type {obj.alias}Update = z.infer<typeof {update}>;")
        return "\n".join(lines)


def build_object(table: Table, alias: str) -> ZodObject:
    obj = ZodObject(alias=alias, table_name=table.name)
    for column in table.columns:
        base = zod_type(column, table.name)
        nullable = column.effective_nullable
        obj.fields.append(ZodField(
            name=column.name,
            type=f"{base}.nullable()" if nullable else base,
            optional_on_insert=nullable or column.has_default,
        ))
    return obj


def _uses_json(table: Table) -> bool:
    json_types = (PostgresType.JSON, PostgresType.JSONB)
    return any(
        c.data_type in json_types or (c.data_type == PostgresType.ARRAY and c.element_type in json_types)
        for c in table.columns
    )


@register_emitter(TargetFormat.ZOD)
class ZodEmitter(BaseEmitter):
    """Zod runtime validation schemas"""

    description = "Zod validation schemas (TypeScript)"
    extension = ".ts"
    mime_type = "application/typescript"

    def render(self, schema: Schema, order: DependencyOrder) -> List[Artifact]:
        document = ZodDocument()
        # type names declared by the JSON helper
        taken: set = {"Literal", "Json"}
        for table in order.sort_tables(schema.tables):
            document.objects.append(build_object(table, type_alias(table.name, taken)))
            document.uses_json = document.uses_json or _uses_json(table)
        return [self.artifact("schemas.ts", ZodPrinter().print(document))]
