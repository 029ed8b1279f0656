"""
Schema suggestion boundary
Normalizes externally suggested schemas and falls back to rule-based construction
"""
from .models import (
    SchemaSuggestion,
    SuggestedColumn,
    SuggestedIndex,
    SuggestedPolicy,
    SuggestedRelationship,
    SuggestedTable,
)
from .normalize import normalize_suggestion, parse_constraint, parse_suggestion, policy_predicates
from .provider import (
    CallableSuggestionProvider,
    StaticSuggestionProvider,
    SuggestionProvider,
    extract_json_object,
    summarize_files,
)
from .fallback import build_rule_based_schema
from .builder import BuildOutcome, SchemaBuilder, SchemaSource

__all__ = [
    "SchemaSuggestion",
    "SuggestedColumn",
    "SuggestedIndex",
    "SuggestedPolicy",
    "SuggestedRelationship",
    "SuggestedTable",
    "normalize_suggestion",
    "policy_predicates",
    "parse_constraint",
    "parse_suggestion",
    "CallableSuggestionProvider",
    "StaticSuggestionProvider",
    "SuggestionProvider",
    "extract_json_object",
    "summarize_files",
    "build_rule_based_schema",
    "BuildOutcome",
    "SchemaBuilder",
    "SchemaSource",
]
