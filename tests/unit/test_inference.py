"""
Unit Tests for Type Inference and Structural Checks
"""
import pytest
import sys
import os

# Add src to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..', 'src'))

from schemaforge import (
    ConstraintType,
    FileDescriptor,
    FindingCode,
    FindingSeverity,
    InferenceConfig,
    InputError,
    PostgresType,
    TypeInferrer,
    analyze_file,
    infer_column_type,
    load_csv,
    read_csv_text,
)
from schemaforge.inference import inspect_headers, inspect_rows


def codes(findings):
    return [f.code for f in findings]


class TestTypeInference:
    """Tests for column type inference"""

    def test_small_integers_and_emails(self):
        """Test small integers become SMALLINT and emails a sized VARCHAR"""
        numbers = infer_column_type(["1", "2", "3"])
        emails = infer_column_type(["a@b.com", "c@d.com"])

        assert numbers.data_type == PostgresType.SMALLINT
        assert not numbers.nullable
        assert emails.data_type == PostgresType.VARCHAR
        assert emails.length == 255
        assert emails.has_tag("email")

    def test_integer_ranges(self):
        """Test integer subtype follows the value range"""
        assert infer_column_type(["1", "70000"]).data_type == PostgresType.INTEGER
        assert infer_column_type(["1", "3000000000"]).data_type == PostgresType.BIGINT

        huge = infer_column_type(["99999999999999999999"])
        assert huge.data_type == PostgresType.NUMERIC
        assert huge.precision == 20
        assert huge.scale == 0

    def test_decimal(self):
        """Test decimals become NUMERIC with headroom"""
        result = infer_column_type(["1.5", "22.25"])

        assert result.data_type == PostgresType.NUMERIC
        assert result.scale == 2
        assert result.precision == 6

    def test_boolean_tokens(self):
        """Test boolean tokens, with 1/0 staying integers"""
        assert infer_column_type(["true", "False", "yes", "n"]).data_type == PostgresType.BOOLEAN
        assert infer_column_type(["1", "0", "1"]).data_type == PostgresType.SMALLINT

    def test_uuid_and_url(self):
        """Test UUID and URL detection"""
        uuid_result = infer_column_type(["550e8400-e29b-41d4-a716-446655440000"])
        url_result = infer_column_type(["https://example.com/a", "http://example.org"])

        assert uuid_result.data_type == PostgresType.UUID
        assert uuid_result.has_tag("uuid")
        assert url_result.data_type == PostgresType.TEXT
        assert url_result.has_tag("url")

    def test_temporal_values(self):
        """Test dates and timestamps"""
        assert infer_column_type(["2024-01-15", "2024-02-01"]).data_type == PostgresType.DATE
        assert infer_column_type(["2024-01-15T10:00:00"]).data_type == PostgresType.TIMESTAMP
        assert infer_column_type(["2024-01-15T10:00:00Z"]).data_type == PostgresType.TIMESTAMPTZ
        assert infer_column_type(["2024-01-15 10:00:00+02:00"]).data_type == PostgresType.TIMESTAMPTZ
        assert infer_column_type(["01/15/2024", "12/31/2023"]).data_type == PostgresType.DATE

    def test_json(self):
        """Test JSON literals become JSONB"""
        result = infer_column_type(['{"a": 1}', '[1, 2]'])
        assert result.data_type == PostgresType.JSONB

    def test_text_sizing(self):
        """Test VARCHAR sizing and the TEXT cutoff"""
        short = infer_column_type(["hello", "world"])
        medium = infer_column_type(["x" * 100])
        long = infer_column_type(["x" * 250])

        assert short.data_type == PostgresType.VARCHAR
        assert short.length == 50
        assert medium.length == 120
        assert long.data_type == PostgresType.TEXT
        assert long.length is None

    def test_missing_values(self):
        """Test nulls and empty strings make a column nullable"""
        result = infer_column_type([None, "a", ""])

        assert result.nullable
        assert result.null_ratio == pytest.approx(2 / 3)
        assert result.sample_count == 1

    def test_all_empty_column(self):
        """Test an all-empty column"""
        result = infer_column_type([None, "", "  "])

        assert result.data_type == PostgresType.TEXT
        assert result.nullable
        assert result.has_tag("empty")
        assert result.confidence == pytest.approx(0.1)

    def test_full_column_statistics(self):
        """Test counts for the full column override the sample's"""
        result = infer_column_type(["1", "2"], null_count=5, total_count=10)

        assert result.nullable
        assert result.null_ratio == pytest.approx(0.5)

    def test_unique_suggestion(self):
        """Test UNIQUE is suggested only past the sample threshold"""
        many = infer_column_type([str(i) for i in range(11)])
        few = infer_column_type([str(i) for i in range(5)])

        assert many.suggest_unique
        assert many.has_tag("all_unique")
        assert not few.suggest_unique
        assert many.to_column("code").is_unique

    def test_low_cardinality(self):
        """Test enum-like columns are tagged"""
        result = infer_column_type(["open", "closed"] * 10)
        assert result.has_tag("low_cardinality")

    def test_email_column_gets_check_constraint(self):
        """Test format tags become typed CHECK constraints"""
        column = infer_column_type(["a@b.com"]).to_column("email", source_column="E-mail")

        checks = column.get_constraints(ConstraintType.CHECK)
        assert len(checks) == 1
        assert checks[0].expression.startswith('"email" ~*')
        assert column.source_column == "E-mail"
        assert not infer_column_type(["a@b.com"]).to_column("email", with_constraints=False).constraints

    def test_deterministic(self):
        """Test identical samples give identical results"""
        values = ["3.5", None, "12.75", "", "0.125"]
        assert infer_column_type(values) == infer_column_type(list(values))
        assert TypeInferrer().infer(values).to_dict() == TypeInferrer().infer(values).to_dict()

    def test_custom_config(self):
        """Test inference thresholds come from configuration"""
        config = InferenceConfig(varchar_min=10, unique_min_samples=2)
        result = infer_column_type(["ab", "cd", "ef"], config=config)

        assert result.length == 10
        assert result.suggest_unique


class TestHeaderInspection:
    """Tests for header findings"""

    def test_clean_headers(self):
        """Test well-formed headers produce no findings"""
        assert inspect_headers(["id", "customer_name", "email"]) == []

    def test_duplicate_headers(self):
        """Test duplicate headers are errors"""
        findings = inspect_headers(["name", "name"])

        assert codes(findings) == [FindingCode.DUPLICATE_HEADERS.value]
        assert findings[0].severity == FindingSeverity.ERROR
        assert findings[0].auto_fixable

    def test_empty_headers(self):
        """Test empty headers are warnings"""
        findings = inspect_headers(["a", ""])
        assert codes(findings) == [FindingCode.EMPTY_HEADERS.value]
        assert findings[0].severity == FindingSeverity.WARNING

    def test_reserved_header(self):
        """Test reserved words are flagged with a rename suggestion"""
        findings = inspect_headers(["Order"])

        assert codes(findings) == [FindingCode.SQL_RESERVED_WORD.value]
        assert findings[0].suggestion == "Consider renaming to order_column"

    def test_naming_and_length(self):
        """Test odd characters and overlong headers"""
        assert codes(inspect_headers(["First Name"])) == [FindingCode.HEADER_NAMING.value]
        assert codes(inspect_headers(["x" * 70])) == [FindingCode.HEADER_TOO_LONG.value]


class TestRowInspection:
    """Tests for row findings"""

    def test_no_data(self):
        """Test a file without rows is an error"""
        findings = inspect_rows(["a"], [])
        assert codes(findings) == [FindingCode.NO_DATA.value]
        assert findings[0].is_error

    def test_empty_rows_and_moderate_missing(self):
        """Test empty rows and moderately sparse columns"""
        rows = [["1", "x"], ["", ""], ["3", ""], ["4", "y"]]
        findings = inspect_rows(["a", "b"], rows)

        assert FindingCode.EMPTY_ROWS.value in codes(findings)
        moderate = [f for f in findings if f.code == FindingCode.MODERATE_MISSING_DATA.value]
        assert {f.column for f in moderate} == {"a", "b"}

    def test_high_missing(self):
        """Test mostly empty columns"""
        rows = [["1", ""], ["2", None], ["3", "z"]]
        findings = inspect_rows(["a", "b"], rows)

        assert codes(findings) == [FindingCode.HIGH_MISSING_DATA.value]
        assert findings[0].column == "b"

    def test_inconsistent_format(self):
        """Test mixed value formats, allowing integer/decimal mixes"""
        mixed = inspect_rows(["a"], [["1"], ["hello"]])
        numeric = inspect_rows(["a"], [["1"], ["2.5"]])

        assert codes(mixed) == [FindingCode.INCONSISTENT_FORMAT.value]
        assert numeric == []


class TestFileDescriptors:
    """Tests for input descriptors and CSV reading"""

    def test_from_rows(self):
        """Test padding and null/empty counting"""
        descriptor = FileDescriptor.from_rows("data.csv", ["a", "b"], [["1"], ["2", ""], ["2", "x"]])

        b = descriptor.get_column("b")
        assert descriptor.total_rows == 3
        assert b.null_count == 1
        assert b.empty_count == 1
        assert b.missing_count == 2
        assert descriptor.get_column("a").unique_values == ["1", "2"]

    def test_sampling(self):
        """Test only sample_size rows are kept"""
        rows = [[str(i)] for i in range(50)]
        descriptor = FileDescriptor.from_rows("data.csv", ["n"], rows, sample_size=10)

        assert descriptor.sampled_rows == 10
        assert descriptor.total_rows == 50

    def test_read_csv_text_sniffs_delimiter(self):
        """Test semicolon-delimited text"""
        text = "name;score\nada;10\nalan;12\ngrace;15\n"
        descriptor = read_csv_text(text, "scores.csv")

        assert descriptor.headers == ["name", "score"]
        assert descriptor.total_rows == 3
        assert descriptor.rows[0] == ["ada", "10"]

    def test_read_empty_text(self):
        """Test empty input yields an empty descriptor"""
        descriptor = read_csv_text("", "empty.csv")
        assert descriptor.headers == []
        assert descriptor.total_rows == 0

    def test_load_csv(self, tmp_path):
        """Test reading a file from disk"""
        path = tmp_path / "people.csv"
        path.write_text("id,email\n1,a@b.com\n2,c@d.com\n", encoding="utf-8")

        descriptor = load_csv(path)

        assert descriptor.file_name == "people.csv"
        assert descriptor.headers == ["id", "email"]

    def test_load_missing_file(self, tmp_path):
        """Test unreadable input raises InputError"""
        with pytest.raises(InputError):
            load_csv(tmp_path / "missing.csv")


class TestAnalyzeFile:
    """Tests for per-file analysis"""

    @pytest.fixture
    def descriptor(self):
        return FileDescriptor.from_rows(
            "Customer Orders.csv",
            ["id", "Email", "Amount"],
            [["1", "a@b.com", "10.50"], ["2", "c@d.com", "3.25"], ["3", "", "7.00"]],
        )

    def test_table_and_column_names(self, descriptor):
        """Test names are derived from the file and headers"""
        analysis = analyze_file(descriptor)

        assert analysis.table_name == "customer_orders"
        assert [c.column_name for c in analysis.columns] == ["id", "email", "amount"]
        assert analysis.get_column("email").header == "Email"

    def test_column_results(self, descriptor):
        """Test every column is inferred"""
        analysis = analyze_file(descriptor)

        assert analysis.get_column("id").result.data_type == PostgresType.SMALLINT
        assert analysis.get_column("email").result.nullable
        assert analysis.get_column("amount").result.data_type == PostgresType.NUMERIC
        assert not analysis.has_errors

    def test_findings_are_collected(self):
        """Test structural findings end up on the analysis"""
        descriptor = FileDescriptor.from_rows("dupes.csv", ["a", "a"], [["1", "2"]])
        analysis = analyze_file(descriptor)

        assert analysis.has_errors
        assert [c.column_name for c in analysis.columns] == ["a", "a_2"]

    def test_to_dict(self, descriptor):
        """Test analysis serialization"""
        data = analyze_file(descriptor).to_dict()

        assert data["file_name"] == "Customer Orders.csv"
        assert data["columns"][0]["data_type"] == "SMALLINT"
