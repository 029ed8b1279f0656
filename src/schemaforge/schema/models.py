"""
Schema Model Definitions

Canonical in-memory representation of a PostgreSQL schema: tables,
columns, typed constraints, relationships, indexes and row-level access
policies. Instances are immutable; transformations produce new objects.
"""
from __future__ import annotations

import json
import uuid
from dataclasses import dataclass, field, fields, replace
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

import yaml


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PostgresType(str, Enum):
    """Closed set of column types the model understands"""
    TEXT = "TEXT"
    VARCHAR = "VARCHAR"
    CHAR = "CHAR"
    SMALLINT = "SMALLINT"
    INTEGER = "INTEGER"
    BIGINT = "BIGINT"
    NUMERIC = "NUMERIC"
    DECIMAL = "DECIMAL"
    REAL = "REAL"
    DOUBLE_PRECISION = "DOUBLE PRECISION"
    BOOLEAN = "BOOLEAN"
    DATE = "DATE"
    TIME = "TIME"
    TIMESTAMP = "TIMESTAMP"
    TIMESTAMPTZ = "TIMESTAMPTZ"
    UUID = "UUID"
    JSON = "JSON"
    JSONB = "JSONB"
    ARRAY = "ARRAY"
    ENUM = "ENUM"

    @classmethod
    def parse(cls, text: Union[str, "PostgresType"]) -> Union["PostgresType", str]:
        """
        Resolve a type name, accepting common PostgreSQL aliases.

        Unknown names are returned as the normalized raw string so that
        validation and emission can reject them explicitly.
        """
        if isinstance(text, PostgresType):
            return text
        normalized = " ".join(str(text).strip().upper().split())
        # Strip a length/precision suffix such as VARCHAR(255)
        base = normalized.split("(", 1)[0].strip()
        if base.endswith("[]"):
            return cls.ARRAY
        alias = _TYPE_ALIASES.get(base, base)
        try:
            return cls(alias)
        except ValueError:
            return normalized

    @property
    def requires_length(self) -> bool:
        return self in (PostgresType.VARCHAR, PostgresType.CHAR)

    @property
    def is_numeric_exact(self) -> bool:
        return self in (PostgresType.NUMERIC, PostgresType.DECIMAL)

    @property
    def family(self) -> str:
        """Storage family; keys only reference columns of the same family"""
        return _TYPE_FAMILIES.get(self.value, self.value)


_TYPE_ALIASES = {
    "STRING": "VARCHAR",
    "CHARACTER VARYING": "VARCHAR",
    "CHARACTER": "CHAR",
    "INT": "INTEGER",
    "INT4": "INTEGER",
    "INT2": "SMALLINT",
    "INT8": "BIGINT",
    "SERIAL": "INTEGER",
    "BIGSERIAL": "BIGINT",
    "FLOAT": "DOUBLE PRECISION",
    "FLOAT8": "DOUBLE PRECISION",
    "DOUBLE": "DOUBLE PRECISION",
    "FLOAT4": "REAL",
    "BOOL": "BOOLEAN",
    "DATETIME": "TIMESTAMP",
    "TIMESTAMP WITHOUT TIME ZONE": "TIMESTAMP",
    "TIMESTAMP WITH TIME ZONE": "TIMESTAMPTZ",
    "TIME WITHOUT TIME ZONE": "TIME",
}

ColumnType = Union[PostgresType, str]

_TYPE_FAMILIES = {
    "SMALLINT": "integer",
    "INTEGER": "integer",
    "BIGINT": "integer",
    "NUMERIC": "exact",
    "DECIMAL": "exact",
    "REAL": "float",
    "DOUBLE PRECISION": "float",
    "TEXT": "text",
    "VARCHAR": "text",
    "CHAR": "text",
}

# Narrowest first
INTEGER_WIDTHS = (PostgresType.SMALLINT, PostgresType.INTEGER, PostgresType.BIGINT)


def types_compatible(a: ColumnType, b: ColumnType) -> bool:
    """True when a value of type ``a`` can reference a key of type ``b``"""
    if isinstance(a, PostgresType) and isinstance(b, PostgresType):
        return a.family == b.family
    return str(_enum_value(a)).upper() == str(_enum_value(b)).upper()


class ConstraintType(str, Enum):
    PRIMARY_KEY = "PRIMARY KEY"
    FOREIGN_KEY = "FOREIGN KEY"
    UNIQUE = "UNIQUE"
    NOT_NULL = "NOT NULL"
    DEFAULT = "DEFAULT"
    CHECK = "CHECK"


class ReferentialAction(str, Enum):
    CASCADE = "CASCADE"
    SET_NULL = "SET NULL"
    RESTRICT = "RESTRICT"
    NO_ACTION = "NO ACTION"


class Cardinality(str, Enum):
    ONE_TO_ONE = "one-to-one"
    ONE_TO_MANY = "one-to-many"
    MANY_TO_MANY = "many-to-many"


class RelationshipOrigin(str, Enum):
    """How a relationship entered the schema"""
    EXPLICIT = "explicit"
    NAMING_CONVENTION = "naming_convention"
    SELF_REFERENCE = "self_reference"
    SUGGESTED = "suggested"
    VALUE_OVERLAP = "value_overlap"


class IndexMethod(str, Enum):
    BTREE = "BTREE"
    HASH = "HASH"
    GIN = "GIN"
    GIST = "GIST"


class PolicyOperation(str, Enum):
    SELECT = "SELECT"
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    ALL = "ALL"


def _tuple(value: Optional[Iterable[Any]]) -> Tuple[Any, ...]:
    if value is None:
        return ()
    if isinstance(value, tuple):
        return value
    return tuple(value)


def _enum_value(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value


@dataclass(frozen=True)
class Constraint:
    """Tagged constraint variant; only the fields relevant to ``kind`` are set"""
    kind: ConstraintType
    expression: Optional[str] = None
    references_table: Optional[str] = None
    references_column: Optional[str] = None
    on_delete: Optional[ReferentialAction] = None
    on_update: Optional[ReferentialAction] = None

    @classmethod
    def primary_key(cls) -> "Constraint":
        return cls(ConstraintType.PRIMARY_KEY)

    @classmethod
    def unique(cls) -> "Constraint":
        return cls(ConstraintType.UNIQUE)

    @classmethod
    def not_null(cls) -> "Constraint":
        return cls(ConstraintType.NOT_NULL)

    @classmethod
    def default(cls, expression: str) -> "Constraint":
        return cls(ConstraintType.DEFAULT, expression=expression)

    @classmethod
    def check(cls, expression: str) -> "Constraint":
        return cls(ConstraintType.CHECK, expression=expression)

    @classmethod
    def foreign_key(
        cls,
        table: str,
        column: str = "id",
        on_delete: Optional[ReferentialAction] = None,
        on_update: Optional[ReferentialAction] = None,
    ) -> "Constraint":
        return cls(
            ConstraintType.FOREIGN_KEY,
            references_table=table,
            references_column=column,
            on_delete=on_delete,
            on_update=on_update,
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"kind": self.kind.value}
        for f in fields(self)[1:]:
            value = getattr(self, f.name)
            if value is not None:
                data[f.name] = _enum_value(value)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Constraint":
        return cls(
            kind=ConstraintType(data["kind"]),
            expression=data.get("expression"),
            references_table=data.get("references_table"),
            references_column=data.get("references_column"),
            on_delete=ReferentialAction(data["on_delete"]) if data.get("on_delete") else None,
            on_update=ReferentialAction(data["on_update"]) if data.get("on_update") else None,
        )


@dataclass(frozen=True)
class Column:
    """A table column"""
    name: str
    data_type: ColumnType
    nullable: bool = True
    length: Optional[int] = None
    precision: Optional[int] = None
    scale: Optional[int] = None
    default: Optional[str] = None
    constraints: Tuple[Constraint, ...] = ()
    comment: Optional[str] = None
    source_column: Optional[str] = None
    element_type: Optional[ColumnType] = None
    enum_values: Tuple[str, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "data_type", PostgresType.parse(self.data_type))
        if self.element_type is not None:
            object.__setattr__(self, "element_type", PostgresType.parse(self.element_type))
        object.__setattr__(self, "constraints", _tuple(self.constraints))
        object.__setattr__(self, "enum_values", _tuple(self.enum_values))

    def has_constraint(self, kind: ConstraintType) -> bool:
        return any(c.kind == kind for c in self.constraints)

    def get_constraints(self, kind: ConstraintType) -> List[Constraint]:
        return [c for c in self.constraints if c.kind == kind]

    @property
    def is_primary_key(self) -> bool:
        return self.has_constraint(ConstraintType.PRIMARY_KEY)

    @property
    def is_unique(self) -> bool:
        return self.is_primary_key or self.has_constraint(ConstraintType.UNIQUE)

    @property
    def is_known_type(self) -> bool:
        return isinstance(self.data_type, PostgresType)

    @property
    def type_name(self) -> str:
        return _enum_value(self.data_type)

    @property
    def default_expression(self) -> Optional[str]:
        """Default from the column field, falling back to a DEFAULT constraint"""
        if self.default is not None:
            return self.default
        for c in self.get_constraints(ConstraintType.DEFAULT):
            return c.expression
        return None

    @property
    def has_default(self) -> bool:
        return self.default_expression is not None

    @property
    def effective_nullable(self) -> bool:
        """Nullability as the database will enforce it"""
        if self.is_primary_key or self.has_constraint(ConstraintType.NOT_NULL):
            return False
        return self.nullable

    @property
    def check_expressions(self) -> List[str]:
        return [c.expression for c in self.get_constraints(ConstraintType.CHECK) if c.expression]

    def with_constraint(self, constraint: Constraint) -> "Column":
        if constraint in self.constraints:
            return self
        return replace(self, constraints=self.constraints + (constraint,))

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "name": self.name,
            "data_type": self.type_name,
            "nullable": self.nullable,
        }
        for key in ("length", "precision", "scale", "default", "comment", "source_column"):
            value = getattr(self, key)
            if value is not None:
                data[key] = value
        if self.element_type is not None:
            data["element_type"] = _enum_value(self.element_type)
        if self.enum_values:
            data["enum_values"] = list(self.enum_values)
        if self.constraints:
            data["constraints"] = [c.to_dict() for c in self.constraints]
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Column":
        return cls(
            name=data["name"],
            data_type=data["data_type"],
            nullable=data.get("nullable", True),
            length=data.get("length"),
            precision=data.get("precision"),
            scale=data.get("scale"),
            default=data.get("default"),
            constraints=tuple(Constraint.from_dict(c) for c in data.get("constraints", [])),
            comment=data.get("comment"),
            source_column=data.get("source_column"),
            element_type=data.get("element_type"),
            enum_values=tuple(data.get("enum_values", [])),
        )


@dataclass(frozen=True)
class Index:
    name: str
    columns: Tuple[str, ...]
    unique: bool = False
    method: Optional[IndexMethod] = None

    def __post_init__(self):
        object.__setattr__(self, "columns", _tuple(self.columns))
        if isinstance(self.method, str) and not isinstance(self.method, IndexMethod):
            object.__setattr__(self, "method", IndexMethod(self.method.upper()))

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"name": self.name, "columns": list(self.columns), "unique": self.unique}
        if self.method:
            data["method"] = self.method.value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Index":
        return cls(
            name=data["name"],
            columns=tuple(data.get("columns", [])),
            unique=data.get("unique", False),
            method=data.get("method"),
        )


@dataclass(frozen=True)
class Table:
    """A table; ``position`` is a layout hint for diagram tooling only"""
    name: str
    columns: Tuple[Column, ...] = ()
    indexes: Tuple[Index, ...] = ()
    comment: Optional[str] = None
    position: Optional[Tuple[float, float]] = None
    is_join_table: bool = False

    def __post_init__(self):
        object.__setattr__(self, "columns", _tuple(self.columns))
        object.__setattr__(self, "indexes", _tuple(self.indexes))
        if self.position is not None:
            object.__setattr__(self, "position", _tuple(self.position))

    @property
    def column_names(self) -> List[str]:
        return [c.name for c in self.columns]

    def get_column(self, name: str) -> Optional[Column]:
        for column in self.columns:
            if column.name == name:
                return column
        return None

    def has_column(self, name: str) -> bool:
        return self.get_column(name) is not None

    @property
    def primary_key_columns(self) -> List[Column]:
        return [c for c in self.columns if c.is_primary_key]

    @property
    def primary_key(self) -> Optional[Column]:
        pks = self.primary_key_columns
        return pks[0] if pks else None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "name": self.name,
            "columns": [c.to_dict() for c in self.columns],
        }
        if self.indexes:
            data["indexes"] = [i.to_dict() for i in self.indexes]
        if self.comment:
            data["comment"] = self.comment
        if self.position is not None:
            data["position"] = {"x": self.position[0], "y": self.position[1]}
        if self.is_join_table:
            data["is_join_table"] = True
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Table":
        position = data.get("position")
        if isinstance(position, dict):
            position = (position.get("x", 0), position.get("y", 0))
        return cls(
            name=data["name"],
            columns=tuple(Column.from_dict(c) for c in data.get("columns", [])),
            indexes=tuple(Index.from_dict(i) for i in data.get("indexes", [])),
            comment=data.get("comment"),
            position=position,
            is_join_table=data.get("is_join_table", False),
        )


@dataclass(frozen=True)
class Relationship:
    """Foreign key from ``source_table.source_column`` to ``target_table.target_column``"""
    name: str
    source_table: str
    source_column: str
    target_table: str
    target_column: str = "id"
    cardinality: Cardinality = Cardinality.ONE_TO_MANY
    on_delete: ReferentialAction = ReferentialAction.RESTRICT
    on_update: ReferentialAction = ReferentialAction.CASCADE
    origin: RelationshipOrigin = RelationshipOrigin.EXPLICIT
    justification: Optional[str] = None

    @property
    def is_self_reference(self) -> bool:
        return self.source_table == self.target_table

    @property
    def endpoints(self) -> Tuple[str, str, str, str]:
        return (self.source_table, self.source_column, self.target_table, self.target_column)

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "name": self.name,
            "source_table": self.source_table,
            "source_column": self.source_column,
            "target_table": self.target_table,
            "target_column": self.target_column,
            "cardinality": self.cardinality.value,
            "on_delete": self.on_delete.value,
            "on_update": self.on_update.value,
            "origin": self.origin.value,
        }
        if self.justification:
            data["justification"] = self.justification
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Relationship":
        return cls(
            name=data["name"],
            source_table=data["source_table"],
            source_column=data["source_column"],
            target_table=data["target_table"],
            target_column=data.get("target_column", "id"),
            cardinality=Cardinality(data.get("cardinality", Cardinality.ONE_TO_MANY.value)),
            on_delete=ReferentialAction(data.get("on_delete", ReferentialAction.RESTRICT.value)),
            on_update=ReferentialAction(data.get("on_update", ReferentialAction.CASCADE.value)),
            origin=RelationshipOrigin(data.get("origin", RelationshipOrigin.EXPLICIT.value)),
            justification=data.get("justification"),
        )


@dataclass(frozen=True)
class AccessPolicy:
    """Row-level security policy"""
    table_name: str
    name: str
    operation: PolicyOperation
    using: Optional[str] = None
    with_check: Optional[str] = None
    roles: Tuple[str, ...] = ()

    def __post_init__(self):
        if not isinstance(self.operation, PolicyOperation):
            object.__setattr__(self, "operation", PolicyOperation(str(self.operation).upper()))
        object.__setattr__(self, "roles", _tuple(self.roles))

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "table_name": self.table_name,
            "name": self.name,
            "operation": self.operation.value,
        }
        if self.using is not None:
            data["using"] = self.using
        if self.with_check is not None:
            data["with_check"] = self.with_check
        if self.roles:
            data["roles"] = list(self.roles)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AccessPolicy":
        return cls(
            table_name=data["table_name"],
            name=data["name"],
            operation=PolicyOperation(data["operation"].upper()),
            using=data.get("using"),
            with_check=data.get("with_check"),
            roles=tuple(data.get("roles", [])),
        )


@dataclass(frozen=True)
class Schema:
    """
    A complete schema snapshot

    Build new snapshots with ``schemaforge.schema.transforms`` or
    :meth:`evolve`; never mutate one that has been handed to an emitter.
    """
    name: str
    tables: Tuple[Table, ...] = ()
    relationships: Tuple[Relationship, ...] = ()
    policies: Tuple[AccessPolicy, ...] = ()
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    version: int = 1
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def __post_init__(self):
        object.__setattr__(self, "tables", _tuple(self.tables))
        object.__setattr__(self, "relationships", _tuple(self.relationships))
        object.__setattr__(self, "policies", _tuple(self.policies))

    @property
    def table_names(self) -> List[str]:
        return [t.name for t in self.tables]

    def get_table(self, name: str) -> Optional[Table]:
        for table in self.tables:
            if table.name == name:
                return table
        return None

    def has_table(self, name: str) -> bool:
        return self.get_table(name) is not None

    def relationships_from(self, table_name: str) -> List[Relationship]:
        return [r for r in self.relationships if r.source_table == table_name]

    def relationships_to(self, table_name: str) -> List[Relationship]:
        return [r for r in self.relationships if r.target_table == table_name]

    def policies_for(self, table_name: str) -> List[AccessPolicy]:
        return [p for p in self.policies if p.table_name == table_name]

    def evolve(self, **changes: Any) -> "Schema":
        """Return a new snapshot with ``changes`` applied and the version bumped"""
        changes.setdefault("version", self.version + 1)
        changes.setdefault("updated_at", max(utcnow(), self.updated_at))
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "version": self.version,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "tables": [t.to_dict() for t in self.tables],
            "relationships": [r.to_dict() for r in self.relationships],
            "policies": [p.to_dict() for p in self.policies],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Schema":
        kwargs: Dict[str, Any] = {}
        if data.get("id"):
            kwargs["id"] = str(data["id"])
        for key in ("created_at", "updated_at"):
            value = data.get(key)
            if isinstance(value, str):
                value = datetime.fromisoformat(value.replace("Z", "+00:00"))
            if isinstance(value, datetime):
                kwargs[key] = value if value.tzinfo else value.replace(tzinfo=timezone.utc)
        return cls(
            name=data["name"],
            version=int(data.get("version", 1)),
            tables=tuple(Table.from_dict(t) for t in data.get("tables", [])),
            relationships=tuple(Relationship.from_dict(r) for r in data.get("relationships", [])),
            policies=tuple(AccessPolicy.from_dict(p) for p in data.get("policies", [])),
            **kwargs,
        )

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent)

    def to_yaml(self) -> str:
        return yaml.dump(self.to_dict(), default_flow_style=False, sort_keys=False, allow_unicode=True)

    def save(self, path: Union[str, Path]) -> None:
        """Save to a YAML or JSON file (chosen by extension)"""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        content = self.to_json() if path.suffix.lower() == ".json" else self.to_yaml()
        path.write_text(content, encoding="utf-8")

    @classmethod
    def load(cls, path: Union[str, Path]) -> "Schema":
        """Load from a YAML or JSON file"""
        path = Path(path)
        with open(path, "r", encoding="utf-8") as f:
            if path.suffix.lower() == ".json":
                data = json.load(f)
            else:
                data = yaml.safe_load(f)
        return cls.from_dict(data)
