"""
Relationship Inference

Discovers foreign keys from column naming conventions and sampled values:
1. Conventional keys (customer_id -> customers.id)
2. Self references (manager_id -> own table's primary key)
3. Value overlap (orders.buyer_ref -> customers.source_id when the sampled
   values of one are contained in the unique values of the other)

Cardinality is read from the sampled uniqueness of the referencing column.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, List, Optional, Set, Tuple

from ..schema.models import (
    Cardinality,
    Column,
    PostgresType,
    ReferentialAction,
    Relationship,
    RelationshipOrigin,
    Schema,
    Table,
    types_compatible,
)
from ..schema.naming import foreign_key_name, singularize
from ..utils import get_logger

logger = get_logger(__name__)

# Fewer distinct samples than this never count as proof of uniqueness
MIN_UNIQUE_SAMPLES = 5

OVERLAP_MIN_RATIO = 0.5
OVERLAP_MIN_COMMON = 3

# Families whose values can plausibly be keys
KEY_FAMILIES = frozenset({
    PostgresType.INTEGER.family,
    PostgresType.TEXT.family,
    PostgresType.UUID.family,
})


@dataclass(frozen=True)
class ColumnProfile:
    """Sampled statistics of one column, as far as relationships care"""
    values: FrozenSet[str] = field(default_factory=frozenset)
    uniqueness_ratio: float = 0.0
    null_ratio: float = 0.0
    sample_count: int = 0

    @property
    def all_distinct(self) -> bool:
        """Every sampled value present and different; enough to back a UNIQUE key"""
        return self.sample_count > 0 and self.uniqueness_ratio == 1.0 and self.null_ratio == 0.0

    @property
    def is_unique(self) -> bool:
        """Distinct over enough samples to read as one-to-one"""
        return self.all_distinct and self.sample_count >= MIN_UNIQUE_SAMPLES


ProfileMap = Dict[Tuple[str, str], ColumnProfile]


@dataclass(frozen=True)
class CardinalityAnalysis:
    cardinality: Cardinality
    confidence: float
    reasoning: str


def analyze_cardinality(
    source: Optional[ColumnProfile],
    target: Optional[ColumnProfile] = None,
    source_column: Optional[Column] = None,
) -> CardinalityAnalysis:
    """
    Pick the cardinality of a foreign key from how often its values repeat

    A referencing column whose values never repeat (declared UNIQUE, or
    unique over enough samples) gives one-to-one; anything else is
    one-to-many, the default for a plain foreign key.
    """
    declared = source_column is not None and source_column.is_unique
    if declared or (source is not None and source.is_unique):
        ratios = [p.uniqueness_ratio for p in (source, target) if p is not None and p.sample_count]
        return CardinalityAnalysis(
            Cardinality.ONE_TO_ONE,
            min(ratios, default=1.0),
            "Referencing values never repeat, so each target row has at most one match",
        )
    if source is not None and source.sample_count and source.uniqueness_ratio < 1.0:
        return CardinalityAnalysis(
            Cardinality.ONE_TO_MANY,
            round(max(0.5, 1.0 - source.uniqueness_ratio), 4),
            "Referencing values repeat, so one target row has many matches",
        )
    return CardinalityAnalysis(
        Cardinality.ONE_TO_MANY, 0.5, "Default assumption without sampled values"
    )


def value_overlap(source: FrozenSet[str], target: FrozenSet[str]) -> Tuple[float, int]:
    """Share of the smaller value set found in the other, and the common count"""
    if not source or not target:
        return 0.0, 0
    common = len(source & target)
    return common / min(len(source), len(target)), common


@dataclass
class RelationshipCandidate:
    """A potential relationship discovered by analysis"""
    source_table: str
    source_column: str
    target_table: str
    target_column: str
    confidence: float  # 0.0 to 1.0
    reason: str
    origin: RelationshipOrigin
    cardinality: Cardinality = Cardinality.ONE_TO_MANY

    def to_relationship(self) -> Relationship:
        self_ref = self.origin == RelationshipOrigin.SELF_REFERENCE
        return Relationship(
            name=foreign_key_name(self.source_table, self.source_column),
            source_table=self.source_table,
            source_column=self.source_column,
            target_table=self.target_table,
            target_column=self.target_column,
            cardinality=self.cardinality,
            on_delete=ReferentialAction.SET_NULL if self_ref else ReferentialAction.RESTRICT,
            on_update=ReferentialAction.CASCADE,
            origin=self.origin,
            justification=self.reason,
        )


class NamingConventionAnalyzer:
    """
    Discovers relationships based on column naming patterns

    Patterns:
    - customer_id -> customer, customers
    - address_id  -> addresses
    - category_id -> categories
    - manager_id  -> own table (when no managers table exists)
    """

    FK_PATTERN = re.compile(r'^(\w+)_id$', re.IGNORECASE)

    SELF_REFERENCE_PATTERNS = [
        re.compile(rf'^{prefix}_?id$', re.IGNORECASE)
        for prefix in (
            "parent", "manager", "supervisor", "leader", "head", "boss",
            "owner", "creator", "assigned_to", "reports_to",
        )
    ]

    def __init__(self, schema: Schema):
        self.schema = schema
        self.table_names_lower: Dict[str, str] = {}
        for table in schema.tables:
            # first declaration wins for case-insensitive duplicates
            self.table_names_lower.setdefault(table.name.lower(), table.name)

    def discover(self) -> List[RelationshipCandidate]:
        """Discover relationships based on naming conventions"""
        candidates = []

        for table in self.schema.tables:
            for column in table.columns:
                if column.is_primary_key or column.name.lower() == "id":
                    continue
                candidate = self._candidate_for(table, column.name)
                if candidate:
                    candidates.append(candidate)

        return candidates

    def _candidate_for(self, table: Table, column_name: str) -> Optional[RelationshipCandidate]:
        col_lower = column_name.lower()
        match = self.FK_PATTERN.match(col_lower)
        target = self._find_matching_table(match.group(1)) if match else None
        if target is not None and target != table.name:
            return RelationshipCandidate(
                source_table=table.name,
                source_column=column_name,
                target_table=target,
                target_column=self._primary_key_of(target),
                confidence=0.9,
                reason=f"Column '{column_name}' matches table '{target}' naming pattern",
                origin=RelationshipOrigin.NAMING_CONVENTION,
            )

        if target in (None, table.name) and self._is_self_reference(col_lower):
            return RelationshipCandidate(
                source_table=table.name,
                source_column=column_name,
                target_table=table.name,
                target_column=self._primary_key_of(table.name),
                confidence=0.85,
                reason=f"Column '{column_name}' refers to another row of '{table.name}'",
                origin=RelationshipOrigin.SELF_REFERENCE,
            )

        return None

    def _find_matching_table(self, prefix: str) -> Optional[str]:
        """Resolve X to a table named X, Xs, Xes or X(y->ies), case-insensitively"""
        candidates = [prefix, f"{prefix}s", f"{prefix}es"]
        if prefix.endswith("y"):
            candidates.append(f"{prefix[:-1]}ies")
        singular = singularize(prefix)
        if singular != prefix:
            candidates.append(singular)
        for name in candidates:
            if name in self.table_names_lower:
                return self.table_names_lower[name]
        return None

    def _is_self_reference(self, column_lower: str) -> bool:
        return any(p.match(column_lower) for p in self.SELF_REFERENCE_PATTERNS)

    def _primary_key_of(self, table_name: str) -> str:
        table = self.schema.get_table(table_name)
        if table is not None and table.primary_key is not None:
            return table.primary_key.name
        return "id"




class ValueOverlapAnalyzer:
    """
    Discovers relationships whose values, not names, line up

    A column is a candidate when every sampled value appears in a unique,
    type-compatible column of another table and enough values are shared.
    Only repeating columns named like references qualify; a column that is
    unique in its own table is treated as that table's key, not a reference.
    """

    REFERENCE_NAME = re.compile(r'(^|_)(id|key|code|ref|no|number|uuid)$', re.IGNORECASE)

    def __init__(self, schema: Schema, profiles: ProfileMap):
        self.schema = schema
        self.profiles = profiles

    def discover(self) -> List[RelationshipCandidate]:
        candidates = []
        for source_table in self.schema.tables:
            for column in source_table.columns:
                if column.is_primary_key or not self._keyish(column):
                    continue
                best = self._best_target(source_table, column)
                if best is not None:
                    candidates.append(best)
        return candidates

    def _keyish(self, column: Column) -> bool:
        return isinstance(column.data_type, PostgresType) and column.data_type.family in KEY_FAMILIES

    def _names_reference(self, column_name: str, target_table: str) -> bool:
        return bool(self.REFERENCE_NAME.search(column_name)) or singularize(target_table.lower()) in column_name.lower()

    def _best_target(self, source_table: Table, column: Column) -> Optional[RelationshipCandidate]:
        source = self.profiles.get((source_table.name, column.name))
        if source is None or not source.values or source.all_distinct or column.is_unique:
            return None

        best: Optional[RelationshipCandidate] = None
        for target_table in self.schema.tables:
            if target_table.name == source_table.name:
                continue
            if not self._names_reference(column.name, target_table.name):
                continue
            for target_column in target_table.columns:
                if target_column.name.lower() == column.name.lower():
                    continue
                if not types_compatible(column.data_type, target_column.data_type):
                    continue
                target = self.profiles.get((target_table.name, target_column.name))
                if target is None or not (target.all_distinct or target_column.is_unique):
                    continue
                # Orphaned values would fail the constraint on load
                if not source.values <= target.values:
                    continue
                ratio, common = value_overlap(source.values, target.values)
                if ratio <= OVERLAP_MIN_RATIO or common < OVERLAP_MIN_COMMON:
                    continue

                confidence = round(min(ratio * 0.8, 0.9), 4)
                if best is not None and best.confidence >= confidence:
                    continue
                best = RelationshipCandidate(
                    source_table=source_table.name,
                    source_column=column.name,
                    target_table=target_table.name,
                    target_column=target_column.name,
                    confidence=confidence,
                    reason=(
                        f"High value overlap ({ratio * 100:.1f}%) between "
                        f"{source_table.name}.{column.name} and {target_table.name}.{target_column.name}"
                    ),
                    origin=RelationshipOrigin.VALUE_OVERLAP,
                )
        return best


def infer_relationships(schema: Schema, profiles: Optional[ProfileMap] = None) -> List[Relationship]:
    """
    Infer foreign keys from naming conventions and, given sampled
    profiles, from value overlap

    Columns that already take part in a relationship as a source are
    skipped, so the result only contains additions. Naming conventions
    win over value overlap for the same column.
    """
    profiles = profiles or {}
    existing: Set[Tuple[str, str]] = {
        (r.source_table, r.source_column) for r in schema.relationships
    }
    candidates = NamingConventionAnalyzer(schema).discover()
    if profiles:
        candidates += ValueOverlapAnalyzer(schema, profiles).discover()

    relationships = []
    for candidate in candidates:
        key = (candidate.source_table, candidate.source_column)
        if key in existing:
            continue
        existing.add(key)
        source_table = schema.get_table(candidate.source_table)
        analysis = analyze_cardinality(
            profiles.get(key),
            profiles.get((candidate.target_table, candidate.target_column)),
            source_table.get_column(candidate.source_column) if source_table else None,
        )
        candidate.cardinality = analysis.cardinality
        relationships.append(candidate.to_relationship())

    logger.debug(
        f"Inferred {len(relationships)} relationships",
        extra={"extra_fields": {
            "schema": schema.name,
            "count": len(relationships),
            "one_to_one": sum(1 for r in relationships if r.cardinality == Cardinality.ONE_TO_ONE),
        }},
    )
    return relationships
