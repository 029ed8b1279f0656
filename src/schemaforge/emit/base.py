"""
Base emitter interface and registry

Every target family renders the same validated schema. Emitters are
stateless apart from their options, so one instance can be reused across
schemas and threads.
"""
from __future__ import annotations

import re
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Type, Union

from pydantic import BaseModel, Field, field_validator

from ..config import EmitterConfig
from ..resolver.dependencies import DependencyOrder, resolve_dependencies
from ..schema.models import Constraint, ConstraintType, Relationship, Schema
from ..schema.naming import foreign_key_name, to_snake_case
from ..utils import get_logger

logger = get_logger(__name__)

# Marks a default expression that is not a plain literal
NOT_LITERAL = object()

_NUMBER = re.compile(r"^-?\d+(\.\d+)?$")
_STRING_LITERAL = re.compile(r"^'((?:[^']|'')*)'(?:::[\w ]+)?$")


class TargetFormat(str, Enum):
    """Supported output families"""
    MIGRATION = "migration"
    DECLARATIVE = "declarative"
    PRISMA = "prisma"
    TYPESCRIPT = "typescript"
    MERMAID = "mermaid"
    DBML = "dbml"
    PLANTUML = "plantuml"
    MARKDOWN = "markdown"
    DRIZZLE = "drizzle"
    ZOD = "zod"
    JSON_SCHEMA = "json-schema"


@dataclass(frozen=True)
class Artifact:
    """One generated file"""
    filename: str
    content: str
    mime_type: str

    def to_dict(self) -> Dict[str, Any]:
        return {"filename": self.filename, "content": self.content, "mime_type": self.mime_type}

    def write(self, directory: Union[str, Path]) -> Path:
        """Write the artifact below ``directory`` and return its path"""
        path = Path(directory) / self.filename
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(self.content, encoding="utf-8")
        return path


@dataclass(frozen=True)
class TargetInfo:
    """Description of a registered target"""
    target: TargetFormat
    description: str
    extension: str
    mime_type: str

    def to_dict(self) -> Dict[str, str]:
        return {
            "target": self.target.value,
            "description": self.description,
            "extension": self.extension,
            "mime_type": self.mime_type,
        }


class EmitOptions(BaseModel):
    """Options shared by all emitters"""
    include_comments: bool = True
    include_indexes: bool = True
    include_policies: bool = True
    include_down: bool = False
    include_extensions: bool = True
    schema_name: str = "public"
    timestamp_prefix: Optional[str] = Field(default=None, pattern=r"^\d{1,14}$")

    @field_validator('schema_name')
    @classmethod
    def validate_schema_name(cls, v: str) -> str:
        if not v or not v.replace("_", "a").isalnum() or not v[0].isalpha():
            raise ValueError(f"Invalid schema name: {v!r}")
        return v

    @classmethod
    def from_config(cls, config: EmitterConfig) -> "EmitOptions":
        return cls(
            include_comments=config.include_comments,
            include_indexes=config.include_indexes,
            include_policies=config.include_policies,
            include_down=config.include_down,
            include_extensions=config.include_extensions,
            schema_name=config.schema_name,
        )


def file_stem(schema: Schema) -> str:
    """File-name friendly form of the schema name"""
    return to_snake_case(schema.name) or "schema"


def migration_stamp(schema: Schema, options: EmitOptions) -> str:
    """YYYYMMDDHHMMSS prefix for migration files, stable for a given snapshot"""
    if options.timestamp_prefix:
        return options.timestamp_prefix
    return schema.updated_at.strftime("%Y%m%d%H%M%S")


def literal_default(expression: str) -> Any:
    """
    Python value of a literal default such as ``42``, ``true`` or ``'active'``

    Returns ``NOT_LITERAL`` for function calls and other expressions.
    """
    text = expression.strip()
    lower = text.lower()
    if lower in ("true", "false"):
        return lower == "true"
    if lower == "null":
        return None
    if _NUMBER.match(text):
        return float(text) if "." in text else int(text)
    literal = _STRING_LITERAL.match(text)
    if literal:
        return literal.group(1).replace("''", "'")
    return NOT_LITERAL


def foreign_keys(schema: Schema) -> List[Relationship]:
    """
    Every foreign key of the schema, one per source column

    Declared relationships come first; FOREIGN KEY column constraints that
    have no matching relationship are turned into relationships. Keys whose
    endpoints are missing from the schema are skipped.
    """
    result: List[Relationship] = []
    seen = set()

    def usable(rel: Relationship) -> bool:
        source = schema.get_table(rel.source_table)
        target = schema.get_table(rel.target_table)
        return (
            source is not None
            and target is not None
            and source.has_column(rel.source_column)
            and target.has_column(rel.target_column)
        )

    for rel in schema.relationships:
        key = (rel.source_table, rel.source_column)
        if key in seen:
            continue
        if not usable(rel):
            logger.warning(
                f"Skipping foreign key {rel.name}: endpoint not found",
                extra={"extra_fields": {"relationship": rel.name}},
            )
            continue
        seen.add(key)
        result.append(rel)

    for table in schema.tables:
        for column in table.columns:
            for constraint in column.get_constraints(ConstraintType.FOREIGN_KEY):
                key = (table.name, column.name)
                if key in seen or not constraint.references_table:
                    continue
                rel = _relationship_from_constraint(table.name, column.name, constraint)
                if usable(rel):
                    seen.add(key)
                    result.append(rel)
    return result


def _relationship_from_constraint(table: str, column: str, constraint: Constraint) -> Relationship:
    kwargs: Dict[str, Any] = {}
    if constraint.on_delete:
        kwargs["on_delete"] = constraint.on_delete
    if constraint.on_update:
        kwargs["on_update"] = constraint.on_update
    return Relationship(
        name=foreign_key_name(table, column),
        source_table=table,
        source_column=column,
        target_table=constraint.references_table,
        target_column=constraint.references_column or "id",
        **kwargs,
    )


class BaseEmitter(ABC):
    """
    Abstract base class for target emitters

    Subclasses build an intermediate representation of the schema and hand
    it to a printer; they never concatenate output while walking the model.
    """

    target: TargetFormat
    description: str = ""
    extension: str = ""
    mime_type: str = "text/plain"

    def __init__(self, options: Optional[EmitOptions] = None):
        self.options = options or EmitOptions()

    @classmethod
    def info(cls) -> TargetInfo:
        return TargetInfo(
            target=cls.target,
            description=cls.description,
            extension=cls.extension,
            mime_type=cls.mime_type,
        )

    def emit(self, schema: Schema, order: Optional[DependencyOrder] = None) -> List[Artifact]:
        """Render ``schema``; ``order`` is computed when not supplied"""
        if order is None:
            order = resolve_dependencies(schema)
        return self.render(schema, order)

    @abstractmethod
    def render(self, schema: Schema, order: DependencyOrder) -> List[Artifact]:
        """Produce the artifacts for one schema"""
        pass

    def artifact(self, filename: str, content: str) -> Artifact:
        if not content.endswith("\n"):
            content += "\n"
        return Artifact(filename=filename, content=content, mime_type=self.mime_type)


# Type alias for emitter classes
EmitterClass = Type[BaseEmitter]


class EmitterRegistry:
    """Registry for target emitters using Factory pattern"""

    _emitters: Dict[TargetFormat, EmitterClass] = {}
    _lock = threading.Lock()

    @classmethod
    def register(cls, target: TargetFormat, emitter_class: EmitterClass) -> None:
        """Register an emitter class"""
        with cls._lock:
            cls._emitters[target] = emitter_class

    @classmethod
    def get_emitter_class(cls, target: Union[TargetFormat, str]) -> EmitterClass:
        """Get emitter class for a target"""
        target = coerce_target(target)
        with cls._lock:
            if target not in cls._emitters:
                raise ValueError(f"No emitter registered for target: {target.value}")
            return cls._emitters[target]

    @classmethod
    def create_emitter(
        cls,
        target: Union[TargetFormat, str],
        options: Optional[EmitOptions] = None,
    ) -> BaseEmitter:
        """Create emitter instance for a target"""
        return cls.get_emitter_class(target)(options)

    @classmethod
    def get_supported_targets(cls) -> List[TargetFormat]:
        """Get list of registered targets"""
        with cls._lock:
            return list(cls._emitters.keys())

    @classmethod
    def is_supported(cls, target: Union[TargetFormat, str]) -> bool:
        try:
            target = coerce_target(target)
        except ValueError:
            return False
        with cls._lock:
            return target in cls._emitters


def coerce_target(target: Union[TargetFormat, str]) -> TargetFormat:
    if isinstance(target, TargetFormat):
        return target
    try:
        return TargetFormat(str(target).strip().lower())
    except ValueError:
        supported = ", ".join(t.value for t in TargetFormat)
        raise ValueError(f"Unknown target {target!r}; expected one of: {supported}") from None


def register_emitter(target: TargetFormat):
    """Decorator to register an emitter class"""
    def decorator(cls: EmitterClass) -> EmitterClass:
        cls.target = target
        EmitterRegistry.register(target, cls)
        return cls
    return decorator
