"""
Schema construction with suggestion fallback

The builder asks a suggestion provider for a candidate schema and
accepts it only when it is well formed and confident enough. Every other
outcome degrades to the rule-based schema; suggestion failures never
reach the caller.
"""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from ..config import SystemConfig, get_config
from ..inference.descriptors import FileDescriptor
from ..inference.structural import FileAnalysis, analyze_file
from ..schema.findings import Finding, FindingCode
from ..schema.models import Schema
from ..utils import InputError, SchemaForgeMetrics, UpstreamSuggestionError, get_logger
from .fallback import build_rule_based_schema
from .normalize import normalize_suggestion
from .provider import SuggestionProvider

logger = get_logger(__name__)

# Confidence reported for schemas built without a suggestion
RULE_BASED_CONFIDENCE = 0.6


class SchemaSource(str, Enum):
    """Where the schema in a BuildOutcome came from"""
    SUGGESTED = "suggested"
    RULE_BASED = "rule_based"


@dataclass
class BuildOutcome:
    """Result of building a schema from input files"""
    schema: Schema
    source: SchemaSource
    findings: List[Finding] = field(default_factory=list)
    confidence: float = RULE_BASED_CONFIDENCE
    analyses: List[FileAnalysis] = field(default_factory=list)
    reasoning: str = ""

    @property
    def used_fallback(self) -> bool:
        return self.source == SchemaSource.RULE_BASED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "schema": self.schema.to_dict(),
            "source": self.source.value,
            "confidence": self.confidence,
            "reasoning": self.reasoning,
            "findings": [f.to_dict() for f in self.findings],
        }


class SchemaBuilder:
    """
    Builds a Schema from file descriptors

    Usage:
        builder = SchemaBuilder()
        outcome = builder.build(files, provider=StaticSuggestionProvider(payload))
        if outcome.used_fallback:
            ...
    """

    def __init__(self, config: Optional[SystemConfig] = None):
        self.config = config or get_config()

    def analyze(self, files: Sequence[FileDescriptor]) -> List[FileAnalysis]:
        return [analyze_file(f, self.config.inference) for f in files]

    def build(
        self,
        files: Sequence[FileDescriptor],
        provider: Optional[SuggestionProvider] = None,
        use_case_hint: Optional[str] = None,
        name: Optional[str] = None,
        analyses: Optional[List[FileAnalysis]] = None,
    ) -> BuildOutcome:
        """
        Build a schema, preferring the provider's suggestion

        Args:
            files: Input descriptors, one per CSV file
            provider: Optional suggestion collaborator
            use_case_hint: Free-text description of the intended use
            name: Schema name override
            analyses: Precomputed inference output for ``files``

        Returns:
            BuildOutcome with the schema and every inference finding

        Raises:
            InputError: No input files were given
        """
        if not files:
            raise InputError("At least one input file is required")

        if analyses is None:
            analyses = self.analyze(files)
        findings = self._analysis_findings(analyses)
        hint = use_case_hint or self.config.suggestion.use_case_hint

        if provider is not None and self.config.suggestion.enabled:
            try:
                return self._from_suggestion(files, analyses, findings, provider, hint, name)
            except UpstreamSuggestionError as e:
                return self._fallback(analyses, findings, name, e)
            except Exception as e:
                error = UpstreamSuggestionError(
                    f"Suggestion provider '{provider.name}' failed: {e}",
                    original_error=e,
                )
                return self._fallback(analyses, findings, name, error)

        schema = build_rule_based_schema(analyses, name=name, config=self.config.builder, findings=findings)
        return BuildOutcome(
            schema=schema,
            source=SchemaSource.RULE_BASED,
            findings=findings,
            analyses=analyses,
            reasoning="Rule-based schema built from inferred column types",
        )

    @staticmethod
    def _analysis_findings(analyses: Sequence[FileAnalysis]) -> List[Finding]:
        findings = []
        for analysis in analyses:
            for finding in analysis.findings:
                if finding.table is None:
                    finding = replace(finding, table=analysis.table_name)
                findings.append(finding)
        return findings

    def _from_suggestion(
        self,
        files: Sequence[FileDescriptor],
        analyses: List[FileAnalysis],
        findings: List[Finding],
        provider: SuggestionProvider,
        hint: Optional[str],
        name: Optional[str],
    ) -> BuildOutcome:
        if not provider.is_available():
            raise UpstreamSuggestionError(f"Suggestion provider '{provider.name}' is not available")

        suggestion = provider.suggest(files, hint)
        threshold = self.config.suggestion.min_confidence
        if suggestion.confidence < threshold:
            raise UpstreamSuggestionError(
                f"Suggestion confidence {suggestion.confidence:.2f} is below {threshold:.2f}",
                confidence=suggestion.confidence,
            )

        schema, boundary_findings = normalize_suggestion(suggestion, name=name)
        if not schema.tables:
            raise UpstreamSuggestionError("Suggestion contains no tables", confidence=suggestion.confidence)

        logger.info(
            f"Accepted suggested schema '{schema.name}'",
            extra={"extra_fields": {"provider": provider.name, "confidence": suggestion.confidence}},
        )
        return BuildOutcome(
            schema=schema,
            source=SchemaSource.SUGGESTED,
            findings=findings + boundary_findings,
            confidence=suggestion.confidence,
            analyses=analyses,
            reasoning=suggestion.reasoning,
        )

    def _fallback(
        self,
        analyses: List[FileAnalysis],
        findings: List[Finding],
        name: Optional[str],
        error: UpstreamSuggestionError,
    ) -> BuildOutcome:
        reason = "low_confidence" if error.confidence is not None else "provider_error"
        SchemaForgeMetrics.record_suggestion_fallback(reason)
        logger.warning(
            f"Falling back to rule-based schema: {error.message}",
            extra={"extra_fields": {"reason": reason, "confidence": error.confidence}},
        )

        schema = build_rule_based_schema(analyses, name=name, config=self.config.builder, findings=findings)
        notice = Finding.warning(
            FindingCode.UPSTREAM_SUGGESTION_FAILED,
            error.message,
            suggestion="Review the rule-based schema before exporting",
        )
        return BuildOutcome(
            schema=schema,
            source=SchemaSource.RULE_BASED,
            findings=findings + [notice],
            analyses=analyses,
            reasoning=f"Rule-based fallback: {error.message}",
        )
