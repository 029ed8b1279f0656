"""
Multi-Target Code Emitter
Renders a validated schema as SQL, ORM schemas (Prisma, Drizzle), TypeScript
and Zod types, JSON Schema, diagrams (Mermaid, PlantUML, DBML) or Markdown docs
"""
import time
from typing import List, Optional, Union

from .base import (
    Artifact,
    BaseEmitter,
    EmitOptions,
    EmitterRegistry,
    TargetFormat,
    TargetInfo,
    foreign_keys,
    register_emitter,
)

# Import emitters to register them
from .sql import DeclarativeEmitter, MigrationEmitter, SqlPrinter, parse_create_tables
from .prisma import PrismaEmitter
from .typescript import TypeScriptEmitter
from .diagram import DbmlEmitter, MermaidEmitter, PlantUmlEmitter
from .docs import MarkdownEmitter
from .drizzle import DrizzleEmitter
from .zod import ZodEmitter
from .json_schema import JsonSchemaEmitter

from ..resolver.dependencies import DependencyOrder
from ..schema.models import Schema
from ..utils import SchemaForgeMetrics, UnmappableTypeError, get_logger

logger = get_logger(__name__)


def emit(
    schema: Schema,
    target: Union[TargetFormat, str],
    options: Optional[EmitOptions] = None,
    order: Optional[DependencyOrder] = None,
) -> List[Artifact]:
    """
    Render a schema in one target format

    Args:
        schema: Schema to render (normally validated first)
        target: Target format or its name, e.g. "migration"
        options: Emission options; defaults apply when omitted
        order: Precomputed dependency order, resolved when omitted

    Returns:
        Generated artifacts as (filename, content, mime_type)

    Raises:
        UnmappableTypeError: A column type has no representation in the target
        ValueError: The target is unknown
    """
    emitter = EmitterRegistry.create_emitter(target, options)
    name = emitter.target.value
    start = time.perf_counter()
    try:
        artifacts = emitter.emit(schema, order)
    except UnmappableTypeError as e:
        SchemaForgeMetrics.record_emission(time.perf_counter() - start, name, success=False)
        SchemaForgeMetrics.record_error(type(e).__name__, e.category.value)
        logger.error(
            f"Emission to {name} aborted: {e.message}",
            extra={"extra_fields": {"target": name, "type": e.type_name, "table": e.table_name}},
        )
        raise

    duration = time.perf_counter() - start
    SchemaForgeMetrics.record_emission(
        duration, name, success=True, artifacts=len(artifacts), size=sum(len(a.content) for a in artifacts)
    )
    logger.info(
        f"Emitted {len(artifacts)} {name} artifact(s) for {schema.name}",
        extra={"extra_fields": {
            "target": name,
            "files": [a.filename for a in artifacts],
            "duration_ms": round(duration * 1000, 2),
        }},
    )
    return artifacts


def available_targets() -> List[TargetInfo]:
    """Describe every registered target"""
    return [
        EmitterRegistry.get_emitter_class(target).info()
        for target in EmitterRegistry.get_supported_targets()
    ]


__all__ = [
    "Artifact",
    "BaseEmitter",
    "EmitOptions",
    "EmitterRegistry",
    "TargetFormat",
    "TargetInfo",
    "foreign_keys",
    "register_emitter",
    "MigrationEmitter",
    "DeclarativeEmitter",
    "SqlPrinter",
    "parse_create_tables",
    "PrismaEmitter",
    "TypeScriptEmitter",
    "MermaidEmitter",
    "DbmlEmitter",
    "PlantUmlEmitter",
    "MarkdownEmitter",
    "DrizzleEmitter",
    "ZodEmitter",
    "JsonSchemaEmitter",
    "emit",
    "available_targets",
]
