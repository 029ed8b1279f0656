"""
Relationship and dependency resolution
"""
from .dependencies import DependencyOrder, DependencyResolver, resolve_dependencies
from .relationships import (
    CardinalityAnalysis,
    ColumnProfile,
    NamingConventionAnalyzer,
    RelationshipCandidate,
    ValueOverlapAnalyzer,
    analyze_cardinality,
    infer_relationships,
)

__all__ = [
    "DependencyOrder",
    "DependencyResolver",
    "resolve_dependencies",
    "CardinalityAnalysis",
    "ColumnProfile",
    "NamingConventionAnalyzer",
    "RelationshipCandidate",
    "ValueOverlapAnalyzer",
    "analyze_cardinality",
    "infer_relationships",
]
