"""
Unit Tests for Configuration, Errors, Logging and Metrics
"""
import json
import logging
import pytest
import sys
import os

# Add src to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..', 'src'))

from schemaforge import (
    ConfigurationError,
    EmitterConfig,
    InferenceConfig,
    InputError,
    SchemaError,
    SystemConfig,
    UnmappableTypeError,
    UpstreamSuggestionError,
    ValidationError,
    get_config,
    set_config,
)
from schemaforge.config import reset_config
from schemaforge.utils import (
    ErrorCategory,
    ErrorSeverity,
    SchemaForgeMetrics,
    format_error,
    get_logger,
    get_metrics_collector,
    get_run_id,
    get_schema_id,
    log_context,
    log_operation,
    set_run_id,
    clear_context,
)
from schemaforge.utils.logging import ConsoleFormatter, StructuredFormatter


class TestSystemConfig:
    """Tests for configuration loading"""

    @pytest.fixture(autouse=True)
    def clean_env(self, monkeypatch):
        for key in list(os.environ):
            if key.startswith("SCHEMAFORGE_"):
                monkeypatch.delenv(key)
        reset_config()
        yield
        reset_config()

    def test_defaults(self):
        config = SystemConfig()

        assert config.inference.sample_size == 1000
        assert config.suggestion.min_confidence == 0.5
        assert config.emitter.schema_name == "public"
        assert config.validation.enable_cache
        assert not config.builder.include_default_policies
        assert config.log_level == "INFO"

    def test_from_env(self, monkeypatch):
        """Test environment variables override defaults"""
        monkeypatch.setenv("SCHEMAFORGE_SAMPLE_SIZE", "200")
        monkeypatch.setenv("SCHEMAFORGE_MIN_CONFIDENCE", "0.75")
        monkeypatch.setenv("SCHEMAFORGE_PG_SCHEMA", "app")
        monkeypatch.setenv("SCHEMAFORGE_INCLUDE_DOWN", "yes")
        monkeypatch.setenv("SCHEMAFORGE_BLOCK_ON_ERRORS", "true")
        monkeypatch.setenv("SCHEMAFORGE_LOG_LEVEL", "debug")
        monkeypatch.setenv("SCHEMAFORGE_USE_CASE", "inventory tracking")

        config = SystemConfig.from_env()

        assert config.inference.sample_size == 200
        assert config.suggestion.min_confidence == 0.75
        assert config.suggestion.use_case_hint == "inventory tracking"
        assert config.emitter.schema_name == "app"
        assert config.emitter.include_down
        assert config.validation.block_on_errors
        assert config.log_level == "DEBUG"

    @pytest.mark.parametrize("key,value", [
        ("SCHEMAFORGE_MIN_CONFIDENCE", "high"),
        ("SCHEMAFORGE_MIN_CONFIDENCE", "1.5"),
        ("SCHEMAFORGE_LOG_LEVEL", "verbose"),
        ("SCHEMAFORGE_PG_SCHEMA", "my-schema"),
    ])
    def test_invalid_env(self, monkeypatch, key, value):
        monkeypatch.setenv(key, value)
        with pytest.raises(ConfigurationError):
            SystemConfig.from_env()

    def test_from_yaml(self, tmp_path):
        """Test nested sections load from YAML"""
        path = tmp_path / "schemaforge.yaml"
        path.write_text(
            "inference:\n"
            "  varchar_min: 20\n"
            "builder:\n"
            "  include_default_policies: true\n"
            "emitter:\n"
            "  include_down: true\n"
            "  output_dir: out\n",
            encoding="utf-8",
        )
        config = SystemConfig.from_yaml(path)

        assert config.inference.varchar_min == 20
        assert config.builder.include_default_policies
        assert config.emitter.output_dir == "out"
        assert config.suggestion.enabled

    def test_from_yaml_errors(self, tmp_path):
        """Test missing files, bad YAML and non-mapping roots"""
        with pytest.raises(ConfigurationError) as exc_info:
            SystemConfig.from_yaml(tmp_path / "missing.yaml")
        assert exc_info.value.config_key.endswith("missing.yaml")

        bad = tmp_path / "bad.yaml"
        bad.write_text("inference: [unclosed\n", encoding="utf-8")
        with pytest.raises(ConfigurationError):
            SystemConfig.from_yaml(bad)

        listing = tmp_path / "list.yaml"
        listing.write_text("- a\n- b\n", encoding="utf-8")
        with pytest.raises(ConfigurationError):
            SystemConfig.from_yaml(listing)

    def test_section_validation(self):
        """Test cross-field and range checks"""
        with pytest.raises(ConfigurationError):
            SystemConfig.from_dict({"inference": {"varchar_min": 300, "varchar_max": 100}})
        with pytest.raises(ConfigurationError):
            SystemConfig.from_dict({"suggestion": {"min_confidence": -0.1}})
        with pytest.raises(Exception):
            InferenceConfig(moderate_missing_ratio=0.9, high_missing_ratio=0.5)
        with pytest.raises(Exception):
            EmitterConfig(schema_name="1public")

    def test_global_config(self):
        config = SystemConfig.from_dict({"log_json": True})
        set_config(config)

        assert get_config() is config
        reset_config()
        assert get_config() is not config


class TestErrors:
    """Tests for the error hierarchy"""

    def test_input_error(self):
        error = InputError("Cannot read file", file_name="people.csv")

        assert error.category == ErrorCategory.INPUT
        assert not error.recoverable
        assert "Inspect the header row of 'people.csv'" in error.suggestions
        assert str(error) == "[input] Cannot read file"

    def test_schema_error_context(self):
        error = SchemaError("Column not found", table_name="orders", column_name="total")

        assert error.context.table_name == "orders"
        assert error.context.column_name == "total"
        assert error.recoverable

    def test_unmappable_type_error(self):
        error = UnmappableTypeError(
            "MONEY has no prisma mapping", type_name="MONEY", target="prisma",
            table_name="orders", column_name="price",
        )

        assert error.type_name == "MONEY"
        assert error.context.target == "prisma"
        assert error.category == ErrorCategory.EMISSION
        assert error.severity == ErrorSeverity.HIGH

    def test_upstream_and_validation_errors(self):
        upstream = UpstreamSuggestionError("Too unsure", confidence=0.2)
        blocked = ValidationError("Schema has errors", failed_rules=["NO_PRIMARY_KEY"])

        assert upstream.confidence == 0.2
        assert upstream.severity == ErrorSeverity.LOW
        assert blocked.failed_rules == ["NO_PRIMARY_KEY"]
        assert "Fix validation: NO_PRIMARY_KEY" in blocked.suggestions

    def test_to_dict_and_format(self):
        """Test serialization and terminal formatting"""
        cause = ValueError("bad value")
        error = ConfigurationError("Invalid setting", config_key="emitter.schema_name", original_error=cause)

        data = error.to_dict()
        assert data["error_type"] == "ConfigurationError"
        assert data["category"] == "configuration"
        assert data["original_error"] == "bad value"
        json.dumps(data)

        text = format_error(error)
        assert "Error Type: ConfigurationError" in text
        assert "  - Check configuration for key: emitter.schema_name" in text
        assert text.endswith("Original Error: bad value")


class TestLogging:
    """Tests for logging context and formatters"""

    @pytest.fixture(autouse=True)
    def clean_context(self):
        clear_context()
        yield
        clear_context()

    def make_record(self, message="hello", **extra_fields):
        record = logging.LogRecord("schemaforge.test", logging.INFO, __file__, 10, message, None, None)
        if extra_fields:
            record.extra_fields = extra_fields
        return record

    def test_log_context_restores_previous_values(self):
        set_run_id("outer-run")
        with log_context(run_id="inner-run", schema_id="schema-1"):
            assert get_run_id() == "inner-run"
            assert get_schema_id() == "schema-1"

        assert get_run_id() == "outer-run"
        assert get_schema_id() is None

    def test_structured_formatter(self):
        """Test JSON output carries context and extra fields"""
        with log_context(run_id="run-1", stage="emit"):
            output = StructuredFormatter().format(self.make_record(target="prisma"))
        entry = json.loads(output)

        assert entry["message"] == "hello"
        assert entry["level"] == "INFO"
        assert entry["run_id"] == "run-1"
        assert entry["stage"] == "emit"
        assert entry["target"] == "prisma"
        assert entry["timestamp"].endswith("Z")

    def test_console_formatter(self):
        with log_context(run_id="abcdef123456", stage="validate"):
            output = ConsoleFormatter(use_color=False).format(self.make_record())

        assert "| INFO     |" in output
        assert "[abcdef12] [validate] hello" in output
        assert "\033[" not in output

    def test_log_operation_success(self):
        logger = get_logger("schemaforge.test")
        with log_operation(logger, "emit", target="dbml") as ctx:
            ctx["artifacts"] = 1

        assert ctx["status"] == "success"
        assert ctx["target"] == "dbml"
        assert ctx["duration_ms"] >= 0

    def test_log_operation_failure(self):
        """Test failures are logged and re-raised"""
        logger = get_logger("schemaforge.test")
        with pytest.raises(RuntimeError):
            with log_operation(logger, "emit") as ctx:
                raise RuntimeError("boom")

        assert ctx["status"] == "error"
        assert ctx["error_type"] == "RuntimeError"
        assert ctx["error"] == "boom"


class TestMetrics:
    """Tests for the in-process metrics collector"""

    @pytest.fixture
    def metrics(self):
        collector = get_metrics_collector()
        collector.enable()
        collector.reset()
        yield collector
        collector.enable()

    def test_singleton(self, metrics):
        assert get_metrics_collector() is metrics

    def test_counters_and_gauges(self, metrics):
        SchemaForgeMetrics.record_suggestion_fallback("provider_error")
        SchemaForgeMetrics.record_suggestion_fallback("provider_error")
        SchemaForgeMetrics.record_cycles(2)

        assert metrics.get_counter("suggestion_fallback_total", {"reason": "provider_error"}) == 2
        assert metrics.get_metrics()["gauges"]["dependency_cycles"] == 2

    def test_timers(self, metrics):
        """Test timed operations feed timers and histograms"""
        with metrics.time_operation("unit_work", {"kind": "test"}):
            pass
        exported = json.loads(metrics.export_json())

        assert exported["timers"]["unit_work{kind=test}"]["count"] == 1
        assert exported["histograms"]["unit_work_histogram{kind=test}"]["count"] == 1

    def test_cache_stats(self, metrics):
        SchemaForgeMetrics.record_cache_lookup(False)
        SchemaForgeMetrics.record_cache_lookup(True)
        SchemaForgeMetrics.record_cache_lookup(True)
        SchemaForgeMetrics.record_cache_lookup(True)

        stats = metrics.cache_stats()
        assert stats["hits"] == 3
        assert stats["misses"] == 1
        assert stats["hit_ratio"] == pytest.approx(0.75)
        assert metrics.get_metrics()["caches"]["validation"] == stats

    def test_value_distributions(self, metrics):
        """Test count and size distributions use their own buckets"""
        SchemaForgeMetrics.record_file_analysis(0.002, ["INTEGER", "TEXT", "TEXT"], findings=0)
        SchemaForgeMetrics.record_emission(0.01, "prisma", success=True, artifacts=1, size=300)
        histograms = metrics.get_metrics()["histograms"]

        assert metrics.get_counter("inferred_columns_total", {"type": "TEXT"}) == 2
        assert histograms["columns_per_file"]["max"] == 3
        assert histograms["structural_findings"]["buckets"]["le_0"] == 1
        assert histograms["artifact_size{target=prisma}"]["buckets"]["le_1024"] == 1

    def test_failed_emission_records_no_artifacts(self, metrics):
        SchemaForgeMetrics.record_emission(0.01, "typescript", success=False)

        assert metrics.get_counter("emission_total", {"success": "false", "target": "typescript"}) == 1
        assert metrics.get_counter("artifacts_total", {"target": "typescript"}) == 0

    def test_disabled(self, metrics):
        metrics.disable()
        SchemaForgeMetrics.record_error("InputError", "input")

        assert metrics.get_counter("errors_total", {"error_type": "InputError", "category": "input"}) == 0
