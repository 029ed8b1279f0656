"""
Type Inference Engine

Infers a PostgreSQL column type from sampled string values. A column is
classified by the first pattern that every non-missing sample satisfies,
checked in priority order: UUID, email, URL, integer, decimal, boolean,
date/timestamp, JSON. Anything else becomes VARCHAR sized from the longest
sample, or TEXT when that would exceed the VARCHAR bound.

Inference is pure: identical samples always produce identical results.
"""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from ..config import InferenceConfig
from ..schema.models import Column, Constraint, PostgresType
from . import patterns
from .patterns import ValueFormat

# Format tags reported on inference results
TAG_UUID = "uuid"
TAG_EMAIL = "email"
TAG_URL = "url"
TAG_EMPTY = "empty"
TAG_LOW_CARDINALITY = "low_cardinality"
TAG_ALL_UNIQUE = "all_unique"

BASE_CONFIDENCE = {
    PostgresType.UUID: 0.95,
    PostgresType.SMALLINT: 0.9,
    PostgresType.INTEGER: 0.9,
    PostgresType.BIGINT: 0.9,
    PostgresType.NUMERIC: 0.85,
    PostgresType.BOOLEAN: 0.9,
    PostgresType.DATE: 0.85,
    PostgresType.TIMESTAMP: 0.85,
    PostgresType.TIMESTAMPTZ: 0.85,
    PostgresType.JSONB: 0.9,
    PostgresType.VARCHAR: 0.6,
    PostgresType.TEXT: 0.6,
}


@dataclass(frozen=True)
class InferenceResult:
    """Inferred type and the statistics behind it"""
    data_type: PostgresType
    nullable: bool
    length: Optional[int] = None
    precision: Optional[int] = None
    scale: Optional[int] = None
    null_ratio: float = 0.0
    uniqueness_ratio: float = 0.0
    format_tags: Tuple[str, ...] = ()
    confidence: float = 0.0
    reasoning: str = ""
    sample_count: int = 0
    distinct_count: int = 0
    examples: Tuple[str, ...] = ()
    suggest_unique: bool = False

    def has_tag(self, tag: str) -> bool:
        return tag in self.format_tags

    def suggested_constraints(self, column_name: str) -> Tuple[Constraint, ...]:
        """Typed constraints implied by the detected format"""
        constraints: List[Constraint] = []
        quoted = f'"{column_name}"'
        if self.has_tag(TAG_EMAIL):
            constraints.append(Constraint.check(f"{quoted} {patterns.EMAIL_CHECK}"))
        elif self.has_tag(TAG_URL):
            constraints.append(Constraint.check(f"{quoted} {patterns.URL_CHECK}"))
        if self.suggest_unique:
            constraints.append(Constraint.unique())
        return tuple(constraints)

    def to_column(self, name: str, source_column: Optional[str] = None, with_constraints: bool = True) -> Column:
        return Column(
            name=name,
            data_type=self.data_type,
            nullable=self.nullable,
            length=self.length,
            precision=self.precision,
            scale=self.scale,
            constraints=self.suggested_constraints(name) if with_constraints else (),
            source_column=source_column,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "data_type": self.data_type.value,
            "nullable": self.nullable,
            "length": self.length,
            "precision": self.precision,
            "scale": self.scale,
            "null_ratio": round(self.null_ratio, 4),
            "uniqueness_ratio": round(self.uniqueness_ratio, 4),
            "format_tags": list(self.format_tags),
            "confidence": round(self.confidence, 4),
            "reasoning": self.reasoning,
            "sample_count": self.sample_count,
            "distinct_count": self.distinct_count,
            "examples": list(self.examples),
        }


@dataclass
class _Classification:
    data_type: PostgresType
    reasoning: str
    length: Optional[int] = None
    precision: Optional[int] = None
    scale: Optional[int] = None
    tags: List[str] = field(default_factory=list)


class TypeInferrer:
    """Ordered pattern classifier for a column's non-missing samples"""

    def __init__(self, config: Optional[InferenceConfig] = None):
        self.config = config or InferenceConfig()
        self.rules: List[Callable[[List[str]], Optional[_Classification]]] = [
            self._uuid,
            self._email,
            self._url,
            self._integer,
            self._decimal,
            self._boolean,
            self._temporal,
            self._json,
        ]

    def infer(
        self,
        values: Sequence[Optional[str]],
        null_count: Optional[int] = None,
        total_count: Optional[int] = None,
    ) -> InferenceResult:
        present = [v.strip() for v in values if v is not None and v.strip() != ""]
        missing = len(values) - len(present)

        if total_count is None:
            total_count = len(values)
        if null_count is None:
            null_count = missing
        null_ratio = null_count / total_count if total_count else 0.0
        nullable = missing > 0 or null_count > 0

        if not present:
            return InferenceResult(
                data_type=PostgresType.TEXT,
                nullable=True,
                null_ratio=1.0 if total_count else 0.0,
                format_tags=(TAG_EMPTY,),
                confidence=0.1,
                reasoning="All values are null or empty",
            )

        distinct = sorted(set(present))
        uniqueness_ratio = len(distinct) / len(present)

        classification = None
        for rule in self.rules:
            classification = rule(present)
            if classification is not None:
                break
        if classification is None:
            classification = self._text(present)

        tags = list(classification.tags)
        suggest_unique = uniqueness_ratio == 1.0 and len(present) > self.config.unique_min_samples
        if suggest_unique:
            tags.append(TAG_ALL_UNIQUE)
        if (
            len(present) >= 2 * self.config.unique_min_samples
            and len(distinct) <= max(2, math.floor(len(present) * self.config.low_cardinality_ratio))
        ):
            tags.append(TAG_LOW_CARDINALITY)

        sufficiency = min(1.0, len(present) / self.config.unique_min_samples)
        confidence = BASE_CONFIDENCE.get(classification.data_type, 0.5) * (0.7 + 0.3 * sufficiency)

        return InferenceResult(
            data_type=classification.data_type,
            nullable=nullable,
            length=classification.length,
            precision=classification.precision,
            scale=classification.scale,
            null_ratio=null_ratio,
            uniqueness_ratio=uniqueness_ratio,
            format_tags=tuple(sorted(set(tags))),
            confidence=round(confidence, 4),
            reasoning=classification.reasoning,
            sample_count=len(present),
            distinct_count=len(distinct),
            examples=tuple(distinct[:5]),
            suggest_unique=suggest_unique and classification.data_type != PostgresType.BOOLEAN,
        )

    # Rules, in priority order

    def _uuid(self, values: List[str]) -> Optional[_Classification]:
        if all(patterns.is_uuid(v) for v in values):
            return _Classification(PostgresType.UUID, "All values are UUIDs", tags=[TAG_UUID])
        return None

    def _email(self, values: List[str]) -> Optional[_Classification]:
        if all(patterns.is_email(v) for v in values):
            return _Classification(
                PostgresType.VARCHAR, "All values are email addresses", length=255, tags=[TAG_EMAIL]
            )
        return None

    def _url(self, values: List[str]) -> Optional[_Classification]:
        if all(patterns.is_url(v) for v in values):
            return _Classification(PostgresType.TEXT, "All values are http(s) URLs", tags=[TAG_URL])
        return None

    def _integer(self, values: List[str]) -> Optional[_Classification]:
        if not all(patterns.is_integer(v) for v in values):
            return None
        numbers = [int(v) for v in values]
        low, high = min(numbers), max(numbers)
        if patterns.SMALLINT_RANGE[0] <= low and high <= patterns.SMALLINT_RANGE[1]:
            return _Classification(PostgresType.SMALLINT, f"Integers within [{low}, {high}] fit SMALLINT")
        if patterns.INTEGER_RANGE[0] <= low and high <= patterns.INTEGER_RANGE[1]:
            return _Classification(PostgresType.INTEGER, f"Integers within [{low}, {high}] fit INTEGER")
        if patterns.BIGINT_RANGE[0] <= low and high <= patterns.BIGINT_RANGE[1]:
            return _Classification(PostgresType.BIGINT, "Integers exceed INTEGER range")
        digits = max(len(str(abs(n))) for n in numbers)
        return _Classification(
            PostgresType.NUMERIC, "Integers exceed BIGINT range", precision=min(digits, 1000), scale=0
        )

    def _decimal(self, values: List[str]) -> Optional[_Classification]:
        if not all(patterns.is_integer(v) or patterns.is_decimal(v) for v in values):
            return None
        whole_digits, fraction_digits = 0, 0
        for v in values:
            whole, fraction = patterns.digit_counts(v)
            whole_digits = max(whole_digits, whole)
            fraction_digits = max(fraction_digits, fraction)
        scale = min(fraction_digits, 8)
        precision = min(max(whole_digits + scale, 1) + 2, 38)
        scale = min(scale, precision)
        return _Classification(
            PostgresType.NUMERIC,
            f"Decimal values with up to {fraction_digits} fractional digits",
            precision=precision,
            scale=scale,
        )

    def _boolean(self, values: List[str]) -> Optional[_Classification]:
        if all(patterns.is_boolean(v) for v in values):
            return _Classification(PostgresType.BOOLEAN, "All values are boolean tokens")
        return None

    def _temporal(self, values: List[str]) -> Optional[_Classification]:
        kinds = set()
        for v in values:
            kind = patterns.temporal_format(v)
            if kind is None:
                return None
            kinds.add(kind)
        if ValueFormat.TIMESTAMPTZ in kinds:
            return _Classification(PostgresType.TIMESTAMPTZ, "Timestamps with time zone offsets")
        if ValueFormat.TIMESTAMP in kinds:
            return _Classification(PostgresType.TIMESTAMP, "Timestamps without time zone")
        return _Classification(PostgresType.DATE, "All values are calendar dates")

    def _json(self, values: List[str]) -> Optional[_Classification]:
        if all(patterns.is_json(v) for v in values):
            return _Classification(PostgresType.JSONB, "All values are JSON objects or arrays")
        return None

    def _text(self, values: List[str]) -> _Classification:
        max_len = max(len(v) for v in values)
        sized = math.ceil(max_len * self.config.length_headroom)
        if sized > self.config.varchar_max:
            return _Classification(PostgresType.TEXT, f"Longest value is {max_len} characters")
        length = max(self.config.varchar_min, sized)
        return _Classification(
            PostgresType.VARCHAR, f"Free text, longest value {max_len} characters", length=length
        )


def infer_column_type(
    values: Sequence[Optional[str]],
    null_count: Optional[int] = None,
    total_count: Optional[int] = None,
    config: Optional[InferenceConfig] = None,
) -> InferenceResult:
    """
    Infer the type of a column from its sampled values

    Args:
        values: Sampled raw values; None is null, '' is empty
        null_count: Missing values in the full column (defaults to the sample's)
        total_count: Rows in the full column (defaults to the sample size)
        config: Inference thresholds

    Returns:
        InferenceResult with type, nullability, ratios, tags and confidence
    """
    return TypeInferrer(config).infer(values, null_count=null_count, total_count=total_count)
