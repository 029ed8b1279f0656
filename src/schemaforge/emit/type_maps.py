"""
Per-target type mappings

Each map covers every member of ``PostgresType``. A column whose type is
outside that set (or an ARRAY whose element type is) raises
``UnmappableTypeError``; nothing is silently rendered as text.
"""
from __future__ import annotations

import json
from typing import Any, Dict, Mapping, Optional

from ..schema.models import Column, PostgresType
from ..schema.naming import to_camel_case, to_pascal_case
from ..utils import UnmappableTypeError

P = PostgresType

SQL_TYPES: Dict[PostgresType, str] = {
    P.TEXT: "TEXT",
    P.VARCHAR: "VARCHAR",
    P.CHAR: "CHAR",
    P.SMALLINT: "SMALLINT",
    P.INTEGER: "INTEGER",
    P.BIGINT: "BIGINT",
    P.NUMERIC: "NUMERIC",
    P.DECIMAL: "DECIMAL",
    P.REAL: "REAL",
    P.DOUBLE_PRECISION: "DOUBLE PRECISION",
    P.BOOLEAN: "BOOLEAN",
    P.DATE: "DATE",
    P.TIME: "TIME",
    P.TIMESTAMP: "TIMESTAMP",
    P.TIMESTAMPTZ: "TIMESTAMPTZ",
    P.UUID: "UUID",
    P.JSON: "JSON",
    P.JSONB: "JSONB",
    P.ARRAY: "{element}[]",
    P.ENUM: '"{enum}"',
}

PRISMA_TYPES: Dict[PostgresType, str] = {
    P.TEXT: "String",
    P.VARCHAR: "String",
    P.CHAR: "String",
    P.SMALLINT: "Int",
    P.INTEGER: "Int",
    P.BIGINT: "BigInt",
    P.NUMERIC: "Decimal",
    P.DECIMAL: "Decimal",
    P.REAL: "Float",
    P.DOUBLE_PRECISION: "Float",
    P.BOOLEAN: "Boolean",
    P.DATE: "DateTime",
    P.TIME: "DateTime",
    P.TIMESTAMP: "DateTime",
    P.TIMESTAMPTZ: "DateTime",
    P.UUID: "String",
    P.JSON: "Json",
    P.JSONB: "Json",
    P.ARRAY: "{element}[]",
    P.ENUM: "{enum}",
}

# Native database attributes that pin the Prisma scalar to the exact column type
PRISMA_NATIVE: Dict[PostgresType, Optional[str]] = {
    P.TEXT: None,
    P.VARCHAR: "@db.VarChar({length})",
    P.CHAR: "@db.Char({length})",
    P.SMALLINT: "@db.SmallInt",
    P.INTEGER: None,
    P.BIGINT: None,
    P.NUMERIC: "@db.Decimal({precision}, {scale})",
    P.DECIMAL: "@db.Decimal({precision}, {scale})",
    P.REAL: "@db.Real",
    P.DOUBLE_PRECISION: None,
    P.BOOLEAN: None,
    P.DATE: "@db.Date",
    P.TIME: "@db.Time",
    P.TIMESTAMP: "@db.Timestamp",
    P.TIMESTAMPTZ: "@db.Timestamptz",
    P.UUID: "@db.Uuid",
    P.JSON: "@db.Json",
    P.JSONB: None,
    P.ARRAY: None,
    P.ENUM: None,
}

TYPESCRIPT_TYPES: Dict[PostgresType, str] = {
    P.TEXT: "string",
    P.VARCHAR: "string",
    P.CHAR: "string",
    P.SMALLINT: "number",
    P.INTEGER: "number",
    P.BIGINT: "number",
    P.NUMERIC: "number",
    P.DECIMAL: "number",
    P.REAL: "number",
    P.DOUBLE_PRECISION: "number",
    P.BOOLEAN: "boolean",
    P.DATE: "string",
    P.TIME: "string",
    P.TIMESTAMP: "string",
    P.TIMESTAMPTZ: "string",
    P.UUID: "string",
    P.JSON: "Json",
    P.JSONB: "Json",
    P.ARRAY: "{element}[]",
    P.ENUM: "{enum}",
}

MERMAID_TYPES: Dict[PostgresType, str] = {
    P.TEXT: "text",
    P.VARCHAR: "string",
    P.CHAR: "string",
    P.SMALLINT: "int",
    P.INTEGER: "int",
    P.BIGINT: "bigint",
    P.NUMERIC: "decimal",
    P.DECIMAL: "decimal",
    P.REAL: "float",
    P.DOUBLE_PRECISION: "float",
    P.BOOLEAN: "boolean",
    P.DATE: "date",
    P.TIME: "time",
    P.TIMESTAMP: "timestamp",
    P.TIMESTAMPTZ: "timestamp",
    P.UUID: "uuid",
    P.JSON: "json",
    P.JSONB: "json",
    P.ARRAY: "array",
    P.ENUM: "enum",
}

DBML_TYPES: Dict[PostgresType, str] = {
    P.TEXT: "text",
    P.VARCHAR: "varchar",
    P.CHAR: "char",
    P.SMALLINT: "smallint",
    P.INTEGER: "integer",
    P.BIGINT: "bigint",
    P.NUMERIC: "numeric",
    P.DECIMAL: "decimal",
    P.REAL: "real",
    P.DOUBLE_PRECISION: "float8",
    P.BOOLEAN: "boolean",
    P.DATE: "date",
    P.TIME: "time",
    P.TIMESTAMP: "timestamp",
    P.TIMESTAMPTZ: "timestamptz",
    P.UUID: "uuid",
    P.JSON: "json",
    P.JSONB: "jsonb",
    P.ARRAY: '"{element}[]"',
    P.ENUM: "{enum}",
}

# Drizzle pg-core column builders
DRIZZLE_TYPES: Dict[PostgresType, str] = {
    P.TEXT: "text",
    P.VARCHAR: "varchar",
    P.CHAR: "char",
    P.SMALLINT: "smallint",
    P.INTEGER: "integer",
    P.BIGINT: "bigint",
    P.NUMERIC: "numeric",
    P.DECIMAL: "numeric",
    P.REAL: "real",
    P.DOUBLE_PRECISION: "doublePrecision",
    P.BOOLEAN: "boolean",
    P.DATE: "date",
    P.TIME: "time",
    P.TIMESTAMP: "timestamp",
    P.TIMESTAMPTZ: "timestamp",
    P.UUID: "uuid",
    P.JSON: "json",
    P.JSONB: "jsonb",
    P.ARRAY: "{element}",
    P.ENUM: "{enum}",
}

ZOD_TYPES: Dict[PostgresType, str] = {
    P.TEXT: "z.string()",
    P.VARCHAR: "z.string()",
    P.CHAR: "z.string()",
    P.SMALLINT: "z.number().int()",
    P.INTEGER: "z.number().int()",
    P.BIGINT: "z.number().int()",
    P.NUMERIC: "z.number()",
    P.DECIMAL: "z.number()",
    P.REAL: "z.number()",
    P.DOUBLE_PRECISION: "z.number()",
    P.BOOLEAN: "z.boolean()",
    P.DATE: "z.string().date()",
    P.TIME: "z.string().time()",
    P.TIMESTAMP: "z.string().datetime({ local: true })",
    P.TIMESTAMPTZ: "z.string().datetime({ offset: true })",
    P.UUID: "z.string().uuid()",
    P.JSON: "jsonSchema",
    P.JSONB: "jsonSchema",
    P.ARRAY: "z.array({element})",
    P.ENUM: "z.enum([{enum}])",
}

# JSON Schema fragments; JSON columns accept any value
JSON_SCHEMA_TYPES: Dict[PostgresType, Dict[str, Any]] = {
    P.TEXT: {"type": "string"},
    P.VARCHAR: {"type": "string"},
    P.CHAR: {"type": "string"},
    P.SMALLINT: {"type": "integer", "minimum": -32768, "maximum": 32767},
    P.INTEGER: {"type": "integer", "minimum": -2147483648, "maximum": 2147483647},
    P.BIGINT: {"type": "integer"},
    P.NUMERIC: {"type": "number"},
    P.DECIMAL: {"type": "number"},
    P.REAL: {"type": "number"},
    P.DOUBLE_PRECISION: {"type": "number"},
    P.BOOLEAN: {"type": "boolean"},
    P.DATE: {"type": "string", "format": "date"},
    P.TIME: {"type": "string", "format": "time"},
    P.TIMESTAMP: {"type": "string", "format": "date-time"},
    P.TIMESTAMPTZ: {"type": "string", "format": "date-time"},
    P.UUID: {"type": "string", "format": "uuid"},
    P.JSON: {},
    P.JSONB: {},
    P.ARRAY: {"type": "array"},
    P.ENUM: {"type": "string"},
}

TYPE_MAPS: Dict[str, Mapping[PostgresType, Any]] = {
    "sql": SQL_TYPES,
    "prisma": PRISMA_TYPES,
    "typescript": TYPESCRIPT_TYPES,
    "mermaid": MERMAID_TYPES,
    "dbml": DBML_TYPES,
    "drizzle": DRIZZLE_TYPES,
    "zod": ZOD_TYPES,
    "json-schema": JSON_SCHEMA_TYPES,
}


def enum_type_name(table_name: str, column_name: str) -> str:
    """Database type name for an ENUM column"""
    return f"{table_name}_{column_name}_enum"


def enum_model_name(table_name: str, column_name: str) -> str:
    return to_pascal_case(enum_type_name(table_name, column_name))


def lookup(target: str, column: Column, table_name: Optional[str] = None) -> PostgresType:
    """Return the column's PostgresType, or raise if ``target`` cannot express it"""
    mapping = TYPE_MAPS[target]
    data_type = column.data_type
    if not isinstance(data_type, PostgresType) or data_type not in mapping:
        raise UnmappableTypeError(
            f"Type {column.type_name!r} of column {table_name}.{column.name} has no {target} mapping",
            type_name=column.type_name,
            target=target,
            table_name=table_name,
            column_name=column.name,
        )
    if data_type == PostgresType.ARRAY:
        element = column.element_type or PostgresType.TEXT
        if not isinstance(element, PostgresType) or element in (PostgresType.ARRAY, PostgresType.ENUM):
            element_name = str(getattr(element, "value", element))
            raise UnmappableTypeError(
                f"Array element type {element_name!r} of column {table_name}.{column.name} "
                f"has no {target} mapping",
                type_name=element_name,
                target=target,
                table_name=table_name,
                column_name=column.name,
            )
    return data_type


def sql_type(column: Column, table_name: Optional[str] = None) -> str:
    """Full SQL type of a column, including length, precision and array suffix"""
    data_type = lookup("sql", column, table_name)
    base = SQL_TYPES[data_type]

    if data_type == PostgresType.ARRAY:
        element = column.element_type or PostgresType.TEXT
        return base.format(element=SQL_TYPES[element])
    if data_type == PostgresType.ENUM:
        return base.format(enum=enum_type_name(table_name or "", column.name))
    if data_type.requires_length:
        length = column.length or (255 if data_type == PostgresType.VARCHAR else 1)
        return f"{base}({length})"
    if data_type.is_numeric_exact and column.precision:
        if column.scale is not None:
            return f"{base}({column.precision},{column.scale})"
        return f"{base}({column.precision})"
    return base


def prisma_type(column: Column, table_name: Optional[str] = None) -> str:
    data_type = lookup("prisma", column, table_name)
    base = PRISMA_TYPES[data_type]
    if data_type == PostgresType.ARRAY:
        return base.format(element=PRISMA_TYPES[column.element_type or PostgresType.TEXT])
    if data_type == PostgresType.ENUM:
        return base.format(enum=enum_model_name(table_name or "", column.name))
    return base


def prisma_native_attribute(column: Column, table_name: Optional[str] = None) -> Optional[str]:
    data_type = lookup("prisma", column, table_name)
    template = PRISMA_NATIVE[data_type]
    if template is None:
        return None
    if data_type.is_numeric_exact:
        if not column.precision:
            return None
        return template.format(precision=column.precision, scale=column.scale or 0)
    if data_type.requires_length:
        length = column.length or (255 if data_type == PostgresType.VARCHAR else 1)
        return template.format(length=length)
    return template


def typescript_type(column: Column, table_name: Optional[str] = None) -> str:
    data_type = lookup("typescript", column, table_name)
    base = TYPESCRIPT_TYPES[data_type]
    if data_type == PostgresType.ARRAY:
        return base.format(element=TYPESCRIPT_TYPES[column.element_type or PostgresType.TEXT])
    if data_type == PostgresType.ENUM:
        if not column.enum_values:
            return "string"
        return base.format(enum=" | ".join(f'"{v}"' for v in column.enum_values))
    return base


def mermaid_type(column: Column, table_name: Optional[str] = None) -> str:
    return MERMAID_TYPES[lookup("mermaid", column, table_name)]


def dbml_type(column: Column, table_name: Optional[str] = None) -> str:
    data_type = lookup("dbml", column, table_name)
    base = DBML_TYPES[data_type]
    if data_type == PostgresType.ARRAY:
        return base.format(element=DBML_TYPES[column.element_type or PostgresType.TEXT])
    if data_type == PostgresType.ENUM:
        return base.format(enum=enum_type_name(table_name or "", column.name))
    if data_type.requires_length:
        length = column.length or (255 if data_type == PostgresType.VARCHAR else 1)
        return f"{base}({length})"
    if data_type.is_numeric_exact and column.precision:
        return f"{base}({column.precision},{column.scale or 0})"
    return base


def drizzle_enum_name(table_name: str, column_name: str) -> str:
    return to_camel_case(enum_type_name(table_name, column_name))


def drizzle_builder(column: Column, table_name: Optional[str] = None) -> str:
    """Drizzle builder function; ARRAY columns use their element's builder"""
    data_type = lookup("drizzle", column, table_name)
    base = DRIZZLE_TYPES[data_type]
    if data_type == PostgresType.ARRAY:
        return base.format(element=DRIZZLE_TYPES[column.element_type or PostgresType.TEXT])
    if data_type == PostgresType.ENUM:
        if not column.enum_values:
            return DRIZZLE_TYPES[PostgresType.TEXT]
        return base.format(enum=drizzle_enum_name(table_name or "", column.name))
    return base


def zod_type(column: Column, table_name: Optional[str] = None) -> str:
    data_type = lookup("zod", column, table_name)
    base = ZOD_TYPES[data_type]
    if data_type == PostgresType.ARRAY:
        return base.format(element=ZOD_TYPES[column.element_type or PostgresType.TEXT])
    if data_type == PostgresType.ENUM:
        if not column.enum_values:
            return "z.string()"
        return base.format(enum=", ".join(json.dumps(v) for v in column.enum_values))
    if data_type.requires_length:
        length = column.length or (255 if data_type == PostgresType.VARCHAR else 1)
        return f"{base}.max({length})"
    return base


def json_schema_type(column: Column, table_name: Optional[str] = None) -> Dict[str, Any]:
    data_type = lookup("json-schema", column, table_name)
    fragment = dict(JSON_SCHEMA_TYPES[data_type])
    if data_type == PostgresType.ARRAY:
        fragment["items"] = dict(JSON_SCHEMA_TYPES[column.element_type or PostgresType.TEXT])
    elif data_type == PostgresType.ENUM and column.enum_values:
        fragment["enum"] = list(column.enum_values)
    elif data_type.requires_length:
        fragment["maxLength"] = column.length or (255 if data_type == PostgresType.VARCHAR else 1)
    return fragment
