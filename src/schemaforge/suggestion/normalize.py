"""
Suggestion normalization

The only place where free-form constraint text is read. Everything past
this module works with typed ``Constraint`` values.
"""
from __future__ import annotations

import re
from typing import Any, Dict, List, Optional, Tuple, Union

from pydantic import ValidationError as PydanticValidationError

from ..schema.findings import Finding, FindingCode
from ..schema.models import (
    AccessPolicy,
    Cardinality,
    Column,
    Constraint,
    ConstraintType,
    Index,
    PolicyOperation,
    PostgresType,
    ReferentialAction,
    Relationship,
    RelationshipOrigin,
    Schema,
    Table,
)
from ..schema.naming import foreign_key_name, index_name, sanitize_identifier
from ..utils import UpstreamSuggestionError, get_logger
from .models import SchemaSuggestion, SuggestedColumn, SuggestedPolicy, SuggestedTable

logger = get_logger(__name__)

DEFAULT_SCHEMA_NAME = "suggested_schema"

_ACTION = r"(CASCADE|SET\s+NULL|RESTRICT|NO\s+ACTION)"
_REFERENCES = re.compile(
    r'^(?:FOREIGN\s+KEY\s+)?REFERENCES\s+"?(?P<table>[\w.]+?)"?\s*'
    r'(?:\(\s*"?(?P<column>\w+)"?\s*\))?'
    rf'(?:\s+ON\s+DELETE\s+(?P<delete>{_ACTION}))?'
    rf'(?:\s+ON\s+UPDATE\s+(?P<update>{_ACTION}))?\s*$',
    re.IGNORECASE,
)
_DEFAULT = re.compile(r"^DEFAULT\s+(?P<expr>.+)$", re.IGNORECASE | re.DOTALL)
_CHECK = re.compile(r"^CHECK\s*\((?P<expr>.*)\)$", re.IGNORECASE | re.DOTALL)
_TYPE_MODIFIERS = re.compile(r"\(\s*(\d+)\s*(?:,\s*(\d+)\s*)?\)")
_SIMPLE = {
    "PRIMARY KEY": Constraint.primary_key,
    "UNIQUE": Constraint.unique,
    "NOT NULL": Constraint.not_null,
}


def _action(text: Optional[str]) -> Optional[ReferentialAction]:
    if not text:
        return None
    return ReferentialAction(" ".join(text.upper().split()))


def parse_constraint(text: str) -> Optional[Constraint]:
    """
    Convert one constraint string into a typed Constraint

    Understands PRIMARY KEY, UNIQUE, NOT NULL, DEFAULT <expr>,
    CHECK (<expr>) and [FOREIGN KEY] REFERENCES table(column) with optional
    ON DELETE / ON UPDATE actions. Returns None for anything else.
    """
    stripped = " ".join(text.strip().rstrip(",;").split())
    if not stripped:
        return None
    upper = stripped.upper()

    if upper in _SIMPLE:
        return _SIMPLE[upper]()
    match = _DEFAULT.match(stripped)
    if match:
        return Constraint.default(match.group("expr").strip())
    match = _CHECK.match(stripped)
    if match and match.group("expr").strip():
        return Constraint.check(match.group("expr").strip())
    match = _REFERENCES.match(stripped)
    if match:
        return Constraint.foreign_key(
            table=match.group("table").split(".")[-1],
            column=match.group("column") or "id",
            on_delete=_action(match.group("delete")),
            on_update=_action(match.group("update")),
        )
    return None


def parse_type(text: str) -> Tuple[Union[PostgresType, str], Optional[int], Optional[int], Optional[PostgresType]]:
    """Split a type string such as ``NUMERIC(10,2)`` or ``TEXT[]`` into its parts"""
    data_type = PostgresType.parse(text)
    first = second = None
    modifiers = _TYPE_MODIFIERS.search(text)
    if modifiers:
        first = int(modifiers.group(1))
        second = int(modifiers.group(2)) if modifiers.group(2) is not None else None
    element = None
    if data_type == PostgresType.ARRAY and text.strip().endswith("[]"):
        parsed = PostgresType.parse(text.strip()[:-2])
        element = parsed if isinstance(parsed, PostgresType) else None
    return data_type, first, second, element


class SuggestionNormalizer:
    """Turns one suggestion payload into a Schema plus findings"""

    def __init__(self, suggestion: SchemaSuggestion, name: Optional[str] = None):
        self.suggestion = suggestion
        self.name = name or suggestion.name or DEFAULT_SCHEMA_NAME
        self.findings: List[Finding] = []
        self.table_names: Dict[str, str] = {}
        self.column_names: Dict[str, Dict[str, str]] = {}
        self.references: List[Relationship] = []

    def normalize(self) -> Schema:
        used = set()
        for suggested in self.suggestion.tables:
            name = self._unique(sanitize_identifier(suggested.name, "table"), used)
            self.table_names[suggested.name] = name
            self.table_names.setdefault(name, name)

        tables = [self._table(t) for t in self.suggestion.tables]
        relationships = self._relationships()
        policies = [self._policy(p) for p in self.suggestion.policies]

        return Schema(
            name=sanitize_identifier(self.name, "schema"),
            tables=tuple(tables),
            relationships=tuple(relationships),
            policies=tuple(policies),
        )

    @staticmethod
    def _unique(base: str, used: set) -> str:
        candidate, n = base, 2
        while candidate in used:
            candidate = f"{base}_{n}"
            n += 1
        used.add(candidate)
        return candidate

    def _table(self, suggested: SuggestedTable) -> Table:
        table_name = self.table_names[suggested.name]
        names: Dict[str, str] = {}
        used: set = set()
        for column in suggested.columns:
            name = self._unique(sanitize_identifier(column.name, "column"), used)
            names[column.name] = name
            names.setdefault(name, name)
        self.column_names[table_name] = names

        columns = [self._column(table_name, names[c.name], c) for c in suggested.columns]

        indexes = []
        for index in suggested.indexes:
            index_columns = tuple(names.get(c, sanitize_identifier(c, "column")) for c in index.columns)
            indexes.append(Index(
                name=index.name or index_name(table_name, index_columns, index.unique),
                columns=index_columns,
                unique=index.unique,
                method=index.method,
            ))

        return Table(
            name=table_name,
            columns=tuple(columns),
            indexes=tuple(indexes),
            comment=suggested.comment or (suggested.reasoning or None),
        )

    def _column(self, table_name: str, name: str, suggested: SuggestedColumn) -> Column:
        data_type, first, second, element = parse_type(suggested.type)
        length = suggested.length
        precision, scale = suggested.precision, suggested.scale
        if isinstance(data_type, PostgresType):
            if data_type.requires_length and length is None:
                length = first
            if data_type.is_numeric_exact and precision is None:
                precision, scale = first, second if second is not None else scale
        if suggested.element_type:
            parsed = PostgresType.parse(suggested.element_type)
            element = parsed if isinstance(parsed, PostgresType) else element

        constraints: List[Constraint] = []
        for text in suggested.constraints:
            constraint = parse_constraint(text)
            if constraint is None:
                self.findings.append(Finding.warning(
                    FindingCode.UNPARSED_CONSTRAINT,
                    f"Ignored constraint {text!r} on {table_name}.{name}",
                    table=table_name,
                    column=name,
                    suggestion="Re-add the constraint manually if it is needed",
                ))
                continue
            if constraint.kind == ConstraintType.FOREIGN_KEY:
                self.references.append(Relationship(
                    name=foreign_key_name(table_name, name),
                    source_table=table_name,
                    source_column=name,
                    target_table=constraint.references_table,
                    target_column=constraint.references_column or "id",
                    on_delete=constraint.on_delete or ReferentialAction.RESTRICT,
                    on_update=constraint.on_update or ReferentialAction.CASCADE,
                    origin=RelationshipOrigin.SUGGESTED,
                    justification=suggested.reasoning or None,
                ))
                continue
            if constraint not in constraints:
                constraints.append(constraint)

        default = suggested.default_value
        if default is None:
            for c in constraints:
                if c.kind == ConstraintType.DEFAULT:
                    default = c.expression
        constraints = [c for c in constraints if c.kind != ConstraintType.DEFAULT]
        is_pk = any(c.kind == ConstraintType.PRIMARY_KEY for c in constraints)

        return Column(
            name=name,
            data_type=data_type,
            nullable=suggested.nullable and not is_pk,
            length=length,
            precision=precision,
            scale=scale,
            default=default,
            constraints=tuple(constraints),
            comment=suggested.reasoning or None,
            source_column=suggested.original_name,
            element_type=element,
            enum_values=tuple(suggested.enum_values),
        )

    def _resolve(self, table: str, column: Optional[str] = None) -> Tuple[str, Optional[str]]:
        table_name = self.table_names.get(table, sanitize_identifier(table, "table"))
        if column is None:
            return table_name, None
        names = self.column_names.get(table_name, {})
        return table_name, names.get(column, sanitize_identifier(column, "column"))

    def _relationships(self) -> List[Relationship]:
        result: List[Relationship] = []
        seen = set()
        for suggested in self.suggestion.relationships:
            source_table, source_column = self._resolve(suggested.source_table, suggested.source_column)
            target_table, target_column = self._resolve(suggested.target_table, suggested.target_column)
            if (source_table, source_column) in seen:
                continue
            seen.add((source_table, source_column))
            result.append(Relationship(
                name=foreign_key_name(source_table, source_column),
                source_table=source_table,
                source_column=source_column,
                target_table=target_table,
                target_column=target_column,
                cardinality=Cardinality(suggested.cardinality),
                on_delete=_action(suggested.on_delete) or ReferentialAction.RESTRICT,
                on_update=_action(suggested.on_update) or ReferentialAction.CASCADE,
                origin=RelationshipOrigin.SUGGESTED,
                justification=suggested.reasoning or None,
            ))

        # REFERENCES constraints become relationships unless one was declared
        for rel in self.references:
            if (rel.source_table, rel.source_column) in seen:
                continue
            target_table, target_column = self._resolve(rel.target_table, rel.target_column)
            seen.add((rel.source_table, rel.source_column))
            result.append(Relationship(
                name=rel.name,
                source_table=rel.source_table,
                source_column=rel.source_column,
                target_table=target_table,
                target_column=target_column,
                on_delete=rel.on_delete,
                on_update=rel.on_update,
                origin=rel.origin,
                justification=rel.justification,
            ))
        return result

    def _policy(self, suggested: SuggestedPolicy) -> AccessPolicy:
        table_name, _ = self._resolve(suggested.table_name)
        operation = PolicyOperation(suggested.operation)
        using, with_check = policy_predicates(operation, suggested.using, suggested.with_check)
        if (using, with_check) != (suggested.using or None, suggested.with_check or None):
            self.findings.append(Finding.info(
                FindingCode.POLICY_SHAPE,
                f"Reshaped {operation.value} policy {suggested.name!r} on {table_name} to the predicates it allows",
                table=table_name,
                suggestion="Review the policy predicates",
            ))
        return AccessPolicy(
            table_name=table_name,
            name=suggested.name,
            operation=operation,
            using=using,
            with_check=with_check,
            roles=tuple(suggested.roles),
        )


def policy_predicates(
    operation: PolicyOperation,
    using: Optional[str],
    with_check: Optional[str],
) -> Tuple[Optional[str], Optional[str]]:
    """
    Fit (USING, WITH CHECK) to what the operation accepts

    INSERT keeps only WITH CHECK, SELECT and DELETE keep only USING, UPDATE
    needs both. A missing side borrows the predicate given for the other.
    """
    using = using if using and using.strip() else None
    with_check = with_check if with_check and with_check.strip() else None
    if operation == PolicyOperation.INSERT:
        return None, with_check or using
    if operation in (PolicyOperation.SELECT, PolicyOperation.DELETE):
        return using or with_check, None
    if operation == PolicyOperation.UPDATE:
        return using or with_check, with_check or using
    return using, with_check


def parse_suggestion(payload: Union[SchemaSuggestion, Dict[str, Any]]) -> SchemaSuggestion:
    """Validate a raw payload; malformed payloads are an upstream failure"""
    if isinstance(payload, SchemaSuggestion):
        return payload
    if not isinstance(payload, dict):
        raise UpstreamSuggestionError(
            f"Suggestion payload must be a mapping, got {type(payload).__name__}"
        )
    try:
        return SchemaSuggestion.model_validate(payload)
    except PydanticValidationError as e:
        raise UpstreamSuggestionError(
            f"Malformed suggestion payload: {e.error_count()} validation error(s)",
            original_error=e,
        ) from e


def normalize_suggestion(
    payload: Union[SchemaSuggestion, Dict[str, Any]],
    name: Optional[str] = None,
) -> Tuple[Schema, List[Finding]]:
    """
    Convert a suggestion payload into a Schema

    Args:
        payload: SchemaSuggestion or the raw dict returned by the service
        name: Schema name override

    Returns:
        (schema, findings) where findings report constraint text that could
        not be understood and policies reshaped to fit their operation

    Raises:
        UpstreamSuggestionError: The payload does not have the expected shape
    """
    suggestion = parse_suggestion(payload)
    normalizer = SuggestionNormalizer(suggestion, name=name)
    schema = normalizer.normalize()
    logger.info(
        f"Normalized suggestion into {len(schema.tables)} tables",
        extra={"extra_fields": {
            "tables": len(schema.tables),
            "relationships": len(schema.relationships),
            "findings": len(normalizer.findings),
            "confidence": suggestion.confidence,
        }},
    )
    return schema, normalizer.findings
