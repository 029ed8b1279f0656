"""
Schema suggestion payload models

Shape of what an external suggestion service returns. Keys are accepted
in snake_case or camelCase; unknown keys are ignored. These models only
check structure; the payload becomes a Schema in
``schemaforge.suggestion.normalize``.
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

_PAYLOAD_CONFIG = {"populate_by_name": True, "extra": "ignore"}

_ACTIONS = ("CASCADE", "SET NULL", "RESTRICT", "NO ACTION")
_CARDINALITIES = ("one-to-one", "one-to-many", "many-to-many")
_OPERATIONS = ("SELECT", "INSERT", "UPDATE", "DELETE", "ALL")


def _normalize_action(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    action = " ".join(str(value).upper().replace("_", " ").split())
    if action not in _ACTIONS:
        raise ValueError(f"Unknown referential action: {value!r}")
    return action


class SuggestedColumn(BaseModel):
    """A column proposed for a table"""
    name: str = Field(min_length=1)
    original_name: Optional[str] = Field(default=None, alias="originalName")
    type: str = Field(min_length=1)
    length: Optional[int] = Field(default=None, ge=1)
    precision: Optional[int] = Field(default=None, ge=1)
    scale: Optional[int] = Field(default=None, ge=0)
    nullable: bool = True
    constraints: List[str] = Field(default_factory=list)
    default_value: Optional[str] = Field(default=None, alias="defaultValue")
    enum_values: List[str] = Field(default_factory=list, alias="enumValues")
    element_type: Optional[str] = Field(default=None, alias="elementType")
    reasoning: str = ""
    confidence: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    examples: List[str] = Field(default_factory=list)

    model_config = _PAYLOAD_CONFIG


class SuggestedIndex(BaseModel):
    """An index proposed for a table"""
    name: Optional[str] = None
    columns: List[str] = Field(min_length=1)
    unique: bool = False
    method: Optional[str] = None

    model_config = _PAYLOAD_CONFIG

    @field_validator('method')
    @classmethod
    def validate_method(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        method = v.upper()
        if method not in ("BTREE", "HASH", "GIN", "GIST"):
            raise ValueError(f"Unknown index method: {v!r}")
        return method


class SuggestedTable(BaseModel):
    """A table proposed by the suggestion service"""
    name: str = Field(min_length=1)
    original_name: Optional[str] = Field(default=None, alias="originalName")
    columns: List[SuggestedColumn] = Field(default_factory=list)
    indexes: List[SuggestedIndex] = Field(default_factory=list, alias="suggestedIndexes")
    comment: Optional[str] = None
    reasoning: str = ""
    confidence: Optional[float] = Field(default=None, ge=0.0, le=1.0)

    model_config = _PAYLOAD_CONFIG

    @field_validator('indexes', mode='before')
    @classmethod
    def expand_index_shorthand(cls, v: Any) -> Any:
        # "col" or "col_a, col_b" is shorthand for a plain index on those columns
        if not isinstance(v, list):
            return v
        expanded = []
        for item in v:
            if isinstance(item, str):
                expanded.append({"columns": [c.strip() for c in item.split(",") if c.strip()]})
            else:
                expanded.append(item)
        return expanded


class SuggestedRelationship(BaseModel):
    """A foreign key proposed between two tables"""
    source_table: str = Field(min_length=1, alias="sourceTable")
    source_column: str = Field(min_length=1, alias="sourceColumn")
    target_table: str = Field(min_length=1, alias="targetTable")
    target_column: str = Field(default="id", alias="targetColumn")
    cardinality: str = Field(default="one-to-many", alias="type")
    on_delete: Optional[str] = Field(default=None, alias="onDelete")
    on_update: Optional[str] = Field(default=None, alias="onUpdate")
    reasoning: str = ""
    confidence: Optional[float] = Field(default=None, ge=0.0, le=1.0)

    model_config = _PAYLOAD_CONFIG

    @model_validator(mode='before')
    @classmethod
    def flatten_cascade_rules(cls, data: Any) -> Any:
        if isinstance(data, dict) and isinstance(data.get("cascadeRules"), dict):
            data = dict(data)
            rules = data.pop("cascadeRules")
            data.setdefault("onDelete", rules.get("onDelete"))
            data.setdefault("onUpdate", rules.get("onUpdate"))
        return data

    @field_validator('cardinality')
    @classmethod
    def validate_cardinality(cls, v: str) -> str:
        value = v.strip().lower().replace("_", "-")
        if value not in _CARDINALITIES:
            raise ValueError(f"Unknown cardinality: {v!r}")
        return value

    @field_validator('on_delete', 'on_update')
    @classmethod
    def validate_action(cls, v: Optional[str]) -> Optional[str]:
        return _normalize_action(v)


class SuggestedPolicy(BaseModel):
    """A row level security policy proposed for a table"""
    table_name: str = Field(min_length=1, alias="tableName")
    name: str = Field(min_length=1)
    operation: str = Field(default="ALL", alias="command")
    using: Optional[str] = None
    with_check: Optional[str] = Field(default=None, alias="withCheck")
    roles: List[str] = Field(default_factory=list)
    reasoning: str = ""

    model_config = _PAYLOAD_CONFIG

    @field_validator('operation')
    @classmethod
    def validate_operation(cls, v: str) -> str:
        value = v.strip().upper()
        if value not in _OPERATIONS:
            raise ValueError(f"Unknown policy operation: {v!r}")
        return value


class SchemaSuggestion(BaseModel):
    """Complete suggestion: a candidate schema plus an overall confidence"""
    name: Optional[str] = None
    tables: List[SuggestedTable] = Field(default_factory=list)
    relationships: List[SuggestedRelationship] = Field(default_factory=list)
    policies: List[SuggestedPolicy] = Field(default_factory=list, alias="rlsPolicies")
    confidence: float = Field(ge=0.0, le=1.0)
    reasoning: str = ""

    model_config = _PAYLOAD_CONFIG

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)
