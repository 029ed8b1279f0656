"""
SchemaForge Pipeline
Coordinates inference, schema construction, validation, ordering and emission

Stages:
1. Analyze every input file (type inference + structural findings)
2. Build a schema from a suggestion or from the rule-based fallback
3. Validate the schema
4. Resolve a table creation order
5. Emit each requested target from the same frozen snapshot
"""
from __future__ import annotations

import threading
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

from .config import BuilderConfig, EmitterConfig, SuggestionConfig, SystemConfig, ValidationConfig, get_config
from .emit import Artifact, EmitOptions, TargetFormat, emit
from .emit.base import coerce_target
from .inference import FileAnalysis, FileDescriptor, load_csv
from .resolver import DependencyOrder, resolve_dependencies
from .schema.findings import Finding, ValidationResult
from .schema.models import Schema
from .schema.validator import SchemaValidator
from .suggestion import BuildOutcome, SchemaBuilder, SuggestionProvider
from .utils import (
    SchemaForgeMetrics,
    UnmappableTypeError,
    ValidationError,
    get_logger,
    log_context,
    log_operation,
)

logger = get_logger(__name__)

TargetLike = Union[TargetFormat, str]


@dataclass
class PipelineResult:
    """Everything produced by one pipeline run"""
    schema: Schema
    analyses: List[FileAnalysis] = field(default_factory=list)
    findings: List[Finding] = field(default_factory=list)
    validation: ValidationResult = field(default_factory=ValidationResult)
    dependency_order: DependencyOrder = field(default_factory=DependencyOrder)
    artifacts: Dict[str, List[Artifact]] = field(default_factory=dict)
    failed_targets: Dict[str, str] = field(default_factory=dict)
    outcome: Optional[BuildOutcome] = None
    run_id: Optional[str] = None

    @property
    def is_valid(self) -> bool:
        return self.validation.is_valid

    @property
    def all_artifacts(self) -> List[Artifact]:
        return [a for artifacts in self.artifacts.values() for a in artifacts]

    def write(self, directory: Union[str, Path]) -> List[Path]:
        """Write every artifact below ``directory``"""
        return [artifact.write(directory) for artifact in self.all_artifacts]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "run_id": self.run_id,
            "schema": self.schema.to_dict(),
            "source": self.outcome.source.value if self.outcome else None,
            "findings": [f.to_dict() for f in self.findings],
            "validation": self.validation.to_dict(),
            "dependency_order": self.dependency_order.to_dict(),
            "artifacts": {t: [a.to_dict() for a in arts] for t, arts in self.artifacts.items()},
            "failed_targets": dict(self.failed_targets),
        }


class SchemaPipeline:
    """
    Main pipeline from CSV descriptors to emitted artifacts

    Usage:
        pipeline = SchemaPipeline(config)
        result = pipeline.run(files, targets=["migration", "typescript"])
        result.write("generated")
    """

    def __init__(self, config: Optional[SystemConfig] = None):
        self.config = config or get_config()
        self.builder = SchemaBuilder(self.config)
        self.validator = SchemaValidator(config=self.config.validation)
        self._lock = threading.Lock()

    @property
    def emit_options(self) -> EmitOptions:
        return EmitOptions.from_config(self.config.emitter)

    def load(self, paths: Sequence[Union[str, Path]]) -> List[FileDescriptor]:
        """Read CSV files into descriptors"""
        sample_size = self.config.inference.sample_size
        return [load_csv(p, sample_size=sample_size) for p in paths]

    def analyze(self, files: Sequence[FileDescriptor]) -> List[FileAnalysis]:
        return self.builder.analyze(files)

    def validate(self, schema: Schema) -> ValidationResult:
        # the cache is shared across threads running the same pipeline
        with self._lock:
            return self.validator.validate(schema)

    def run(
        self,
        files: Sequence[FileDescriptor],
        targets: Sequence[TargetLike] = (TargetFormat.MIGRATION,),
        provider: Optional[SuggestionProvider] = None,
        use_case_hint: Optional[str] = None,
        name: Optional[str] = None,
        options: Optional[EmitOptions] = None,
    ) -> PipelineResult:
        """
        Run the full pipeline

        Args:
            files: Input descriptors, one per CSV file
            targets: Target formats to emit
            provider: Optional schema suggestion collaborator
            use_case_hint: Free-text description passed to the provider
            name: Schema name override
            options: Emission options; defaults come from the config

        Returns:
            PipelineResult; targets whose emission failed are listed in
            ``failed_targets`` and the remaining targets are still emitted

        Raises:
            InputError: No input files were given
            ValidationError: Validation found errors and
                ``validation.block_on_errors`` is set
            ValueError: A target name is unknown
        """
        run_id = str(uuid.uuid4())
        target_formats = [coerce_target(t) for t in targets]
        options = options or self.emit_options

        with log_context(run_id=run_id, stage="build"):
            with log_operation(logger, "schema_pipeline", files=len(files), targets=[t.value for t in target_formats]) as ctx:
                outcome = self.builder.build(files, provider=provider, use_case_hint=use_case_hint, name=name)
                schema = outcome.schema

                with log_context(schema_id=schema.id, stage="validate"):
                    validation = self.validate(schema)
                if not validation.is_valid and self.config.validation.block_on_errors:
                    raise ValidationError(
                        f"Schema '{schema.name}' has {len(validation.errors)} validation error(s)",
                        failed_rules=sorted({f.code for f in validation.errors}),
                    )

                with log_context(stage="resolve"):
                    order = resolve_dependencies(schema)
                    SchemaForgeMetrics.record_cycles(len(order.cycles))

                result = PipelineResult(
                    schema=schema,
                    analyses=outcome.analyses,
                    findings=outcome.findings,
                    validation=validation,
                    dependency_order=order,
                    outcome=outcome,
                    run_id=run_id,
                )

                with log_context(stage="emit"):
                    for target in target_formats:
                        self._emit_target(result, target, options)

                ctx["source"] = outcome.source.value
                ctx["valid"] = validation.is_valid
                ctx["failed_targets"] = list(result.failed_targets)
        return result

    def run_paths(
        self,
        paths: Sequence[Union[str, Path]],
        targets: Sequence[TargetLike] = (TargetFormat.MIGRATION,),
        provider: Optional[SuggestionProvider] = None,
        **kwargs: Any,
    ) -> PipelineResult:
        """Run the pipeline over CSV files on disk"""
        return self.run(self.load(paths), targets=targets, provider=provider, **kwargs)

    def _emit_target(self, result: PipelineResult, target: TargetFormat, options: EmitOptions) -> None:
        try:
            result.artifacts[target.value] = emit(result.schema, target, options, result.dependency_order)
        except UnmappableTypeError as e:
            result.failed_targets[target.value] = e.message
            SchemaForgeMetrics.record_error(type(e).__name__, "pipeline")


class PipelineBuilder:
    """Builder pattern for constructing SchemaPipeline"""

    def __init__(self):
        self._config: Optional[SystemConfig] = None
        self._builder_config: Optional[BuilderConfig] = None
        self._suggestion_config: Optional[SuggestionConfig] = None
        self._emitter_config: Optional[EmitterConfig] = None
        self._validation_config: Optional[ValidationConfig] = None

    def with_config(self, config: SystemConfig) -> "PipelineBuilder":
        """Start from an existing system configuration"""
        self._config = config
        return self

    def with_builder(self, config: BuilderConfig) -> "PipelineBuilder":
        """Set rule-based schema options"""
        self._builder_config = config
        return self

    def with_suggestion(self, config: SuggestionConfig) -> "PipelineBuilder":
        """Set suggestion options"""
        self._suggestion_config = config
        return self

    def with_emitter(self, config: EmitterConfig) -> "PipelineBuilder":
        """Set default emission options"""
        self._emitter_config = config
        return self

    def with_validation(self, config: ValidationConfig) -> "PipelineBuilder":
        """Set validation options"""
        self._validation_config = config
        return self

    def with_min_confidence(self, min_confidence: float) -> "PipelineBuilder":
        """Set the confidence a suggestion needs to be accepted"""
        suggestion = self._suggestion_config or SuggestionConfig()
        self._suggestion_config = suggestion.model_copy(update={"min_confidence": min_confidence})
        return self

    def with_blocking_validation(self, enabled: bool = True) -> "PipelineBuilder":
        """Raise instead of emitting when validation finds errors"""
        validation = self._validation_config or ValidationConfig()
        self._validation_config = validation.model_copy(update={"block_on_errors": enabled})
        return self

    def build(self) -> SchemaPipeline:
        """Build the pipeline"""
        base = self._config or SystemConfig()
        updates = {
            key: value for key, value in (
                ("builder", self._builder_config),
                ("suggestion", self._suggestion_config),
                ("emitter", self._emitter_config),
                ("validation", self._validation_config),
            ) if value is not None
        }
        return SchemaPipeline(base.model_copy(update=updates))


# Convenience function for quick pipeline creation
def create_pipeline(
    schema_name: str = "public",
    include_down: bool = False,
    min_confidence: float = 0.5,
    block_on_errors: bool = False,
    include_default_policies: bool = False,
) -> SchemaPipeline:
    """
    Create a pipeline with minimal configuration

    Args:
        schema_name: PostgreSQL namespace used by emitted SQL
        include_down: Also emit a down migration
        min_confidence: Confidence a suggestion needs to be accepted
        block_on_errors: Raise when validation finds errors
        include_default_policies: Add row level security policies to rule-based schemas

    Returns:
        Configured SchemaPipeline

    Example:
        pipeline = create_pipeline(include_down=True)
        result = pipeline.run_paths(["customers.csv", "orders.csv"], targets=["migration", "prisma"])
    """
    return (
        PipelineBuilder()
        .with_emitter(EmitterConfig(schema_name=schema_name, include_down=include_down))
        .with_min_confidence(min_confidence)
        .with_blocking_validation(block_on_errors)
        .with_builder(BuilderConfig(include_default_policies=include_default_policies))
        .build()
    )
