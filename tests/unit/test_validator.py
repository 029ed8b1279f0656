"""
Unit Tests for Schema Validation
"""
import pytest
import sys
import os

# Add src to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..', 'src'))

from schemaforge import (
    AccessPolicy,
    Cardinality,
    Column,
    Constraint,
    FindingCode,
    FindingSeverity,
    Index,
    PolicyOperation,
    PostgresType,
    Relationship,
    Schema,
    SchemaValidator,
    Table,
    ValidationCache,
    ValidationConfig,
    validate_schema,
)
from schemaforge.schema.validator import policy_shape_problem, schema_fingerprint


def pk(name="id", data_type=PostgresType.UUID):
    return Column(name, data_type, nullable=False, default="gen_random_uuid()",
                  constraints=(Constraint.primary_key(),))


def table(name, *columns, **kwargs):
    return Table(name, columns=(pk(),) + columns, **kwargs)


def fk_column(name):
    return Column(name, PostgresType.UUID, nullable=True)


@pytest.fixture
def valid_schema():
    return Schema(
        name="shop",
        tables=(
            table("customers", Column("email", PostgresType.VARCHAR, length=255)),
            table("orders", fk_column("customer_id"), Column("total", PostgresType.NUMERIC, precision=10, scale=2)),
        ),
        relationships=(Relationship("fk_orders_customer_id", "orders", "customer_id", "customers"),),
        policies=(
            AccessPolicy("orders", "orders_select_policy", PolicyOperation.SELECT, using="true"),
            AccessPolicy("orders", "orders_insert_policy", PolicyOperation.INSERT, with_check="true"),
        ),
    )


def codes_of(schema, config=None):
    return SchemaValidator(config=config).validate(schema).codes()


class TestValidSchema:
    """Tests for a structurally correct schema"""

    def test_no_findings(self, valid_schema):
        result = validate_schema(valid_schema)

        assert result.is_valid
        assert result.findings == []

    def test_to_dict(self, valid_schema):
        data = validate_schema(valid_schema).to_dict()
        assert data == {"is_valid": True, "errors": [], "warnings": [], "infos": []}


class TestNamingChecks:
    """Tests for identifier checks"""

    def test_invalid_names(self):
        schema = Schema("s", tables=(table("1orders", Column("bad name", PostgresType.TEXT)),))
        codes = codes_of(schema)

        assert FindingCode.INVALID_TABLE_NAME.value in codes
        assert FindingCode.INVALID_COLUMN_NAME.value in codes

    def test_name_too_long(self):
        schema = Schema("s", tables=(table("t" * 64),))
        assert codes_of(schema) == [FindingCode.NAME_TOO_LONG.value]

    def test_reserved_word(self):
        """Test reserved words are errors with a rename suggestion"""
        schema = Schema("s", tables=(table("users", Column("order", PostgresType.TEXT)),))
        result = validate_schema(schema)

        assert result.codes() == [FindingCode.RESERVED_WORD.value]
        assert result.errors[0].suggestion == "Rename to order_value"
        assert result.errors[0].column == "order"

    def test_duplicates(self):
        schema = Schema("s", tables=(
            table("a", Column("x", PostgresType.TEXT), Column("x", PostgresType.TEXT)),
            table("a"),
        ))
        codes = codes_of(schema)

        assert FindingCode.DUPLICATE_TABLE.value in codes
        assert FindingCode.DUPLICATE_COLUMN.value in codes

    def test_mixed_naming_convention(self):
        schema = Schema("s", tables=(table("orders", Column("customerName", PostgresType.TEXT),
                                           Column("created_at", PostgresType.TIMESTAMPTZ)),))
        result = validate_schema(schema)

        assert result.codes() == [FindingCode.MIXED_NAMING_CONVENTION.value]
        assert result.warnings[0].severity == FindingSeverity.WARNING
        assert result.is_valid


class TestKeyChecks:
    """Tests for primary key checks"""

    def test_integer_id(self):
        """Test an integer id is rejected unless UUID ids are optional"""
        schema = Schema("s", tables=(Table("users", columns=(
            Column("id", PostgresType.INTEGER, nullable=False, constraints=(Constraint.primary_key(),)),
        )),))

        result = validate_schema(schema)
        assert result.codes() == [FindingCode.ID_NOT_UUID.value]
        assert not result.is_valid
        assert codes_of(schema, ValidationConfig(require_uuid_id=False)) == []

    def test_no_primary_key(self):
        schema = Schema("s", tables=(Table("logs", columns=(Column("message", PostgresType.TEXT),)),))
        assert codes_of(schema) == [FindingCode.NO_PRIMARY_KEY.value]

    def test_join_table_exempt(self):
        """Test join tables may have composite or no primary keys"""
        schema = Schema("s", tables=(Table("order_items", is_join_table=True, columns=(
            Column("order_id", PostgresType.UUID, nullable=False, constraints=(Constraint.primary_key(),)),
            Column("item_id", PostgresType.UUID, nullable=False, constraints=(Constraint.primary_key(),)),
        )),))
        assert codes_of(schema) == []

    def test_multiple_primary_keys(self):
        schema = Schema("s", tables=(Table("t", columns=(pk("id"), pk("other_id"))),))
        assert codes_of(schema) == [FindingCode.MULTIPLE_PRIMARY_KEYS.value]

    def test_nullable_primary_key(self):
        schema = Schema("s", tables=(Table("t", columns=(
            Column("id", PostgresType.UUID, nullable=True, constraints=(Constraint.primary_key(),)),
        )),))
        result = validate_schema(schema)

        assert result.codes() == [FindingCode.PK_NULLABLE.value]
        assert result.errors[0].auto_fixable


class TestColumnChecks:
    """Tests for type parameter checks"""

    @pytest.mark.parametrize("column,code", [
        (Column("name", PostgresType.VARCHAR), FindingCode.MISSING_LENGTH),
        (Column("name", PostgresType.VARCHAR, length=70000), FindingCode.LENGTH_TOO_LARGE),
        (Column("price", PostgresType.NUMERIC, precision=4, scale=6), FindingCode.INVALID_PRECISION_SCALE),
        (Column("price", PostgresType.NUMERIC, scale=2), FindingCode.INVALID_PRECISION_SCALE),
        (Column("price", "money"), FindingCode.UNKNOWN_TYPE),
        (Column("tags", PostgresType.ARRAY, element_type="money"), FindingCode.UNKNOWN_TYPE),
        (Column("status", PostgresType.ENUM), FindingCode.MISSING_ENUM_VALUES),
    ])
    def test_column_findings(self, column, code):
        schema = Schema("s", tables=(table("t", column),))
        assert codes_of(schema) == [code.value]

    def test_validate_single_column(self):
        """Test a column can be checked on its own"""
        findings = SchemaValidator().validate_column(Column("code", PostgresType.CHAR, length=0), "t")

        assert [f.code for f in findings] == [FindingCode.MISSING_LENGTH.value]
        assert findings[0].table == "t"

    def test_valid_types(self):
        schema = Schema("s", tables=(table(
            "t",
            Column("tags", PostgresType.ARRAY, element_type=PostgresType.TEXT),
            Column("status", PostgresType.ENUM, enum_values=("a", "b")),
            Column("amount", PostgresType.NUMERIC, precision=12, scale=2),
        ),))
        assert codes_of(schema) == []


class TestRelationshipChecks:
    """Tests for relationship checks"""

    def test_missing_endpoints(self, valid_schema):
        schema = valid_schema.evolve(relationships=(
            Relationship("r1", "invoices", "order_id", "orders"),
            Relationship("r2", "orders", "vendor_id", "vendors"),
            Relationship("r3", "orders", "customer_id", "customers", target_column="code"),
        ))
        codes = codes_of(schema)

        assert FindingCode.MISSING_SOURCE_TABLE.value in codes
        assert FindingCode.MISSING_TARGET_TABLE.value in codes
        assert FindingCode.MISSING_SOURCE_COLUMN.value in codes
        assert FindingCode.MISSING_TARGET_COLUMN.value in codes

    def test_one_to_one_requires_unique_target(self, valid_schema):
        schema = valid_schema.evolve(relationships=(
            Relationship("r", "orders", "customer_id", "customers", target_column="email",
                         cardinality=Cardinality.ONE_TO_ONE),
        ))
        codes = codes_of(schema)

        assert FindingCode.ONE_TO_ONE_NOT_UNIQUE.value in codes
        assert FindingCode.TYPE_MISMATCH.value in codes

    def test_incompatible_types_are_an_error(self, valid_schema):
        """Test NUMERIC cannot reference a UUID key"""
        schema = valid_schema.evolve(relationships=(
            Relationship("r", "orders", "total", "customers"),
        ))
        result = validate_schema(schema)

        assert not result.is_valid
        assert [f.code for f in result.errors] == [FindingCode.TYPE_MISMATCH.value]

    def test_integer_width_mismatch_is_warning(self):
        """Test SMALLINT referencing INTEGER still joins, so it only warns"""
        schema = Schema("s", tables=(
            table("employees", Column("employee_id", PostgresType.INTEGER, constraints=(Constraint.unique(),)),
                  Column("manager_id", PostgresType.SMALLINT)),
        ), relationships=(
            Relationship("fk_employees_manager_id", "employees", "manager_id", "employees", "employee_id"),
        ))
        result = validate_schema(schema)

        assert result.is_valid
        assert [f.code for f in result.warnings] == [FindingCode.TYPE_MISMATCH.value]

    def test_self_reference_same_column(self):
        schema = Schema("s", tables=(table("employees"),), relationships=(
            Relationship("r", "employees", "id", "employees"),
        ))
        assert FindingCode.SELF_REF_SAME_COLUMN.value in codes_of(schema)

    def test_self_reference_is_not_a_cycle(self):
        schema = Schema("s", tables=(table("employees", fk_column("manager_id")),), relationships=(
            Relationship("r", "employees", "manager_id", "employees"),
        ))
        assert codes_of(schema) == []

    def test_two_table_cycle(self):
        """Test a mutual reference is reported exactly once"""
        schema = Schema(
            "s",
            tables=(table("a", fk_column("b_id")), table("b", fk_column("a_id"))),
            relationships=(
                Relationship("fk_a_b_id", "a", "b_id", "b"),
                Relationship("fk_b_a_id", "b", "a_id", "a"),
            ),
        )
        result = validate_schema(schema)

        assert result.codes() == [FindingCode.CIRCULAR_DEPENDENCY.value]
        assert "a -> b -> a" in result.errors[0].message

    def test_index_unknown_column(self):
        schema = Schema("s", tables=(table("t", indexes=(Index("idx_t_missing", ("missing",)),)),))
        assert codes_of(schema) == [FindingCode.INDEX_UNKNOWN_COLUMN.value]


class TestPolicyChecks:
    """Tests for access policy checks"""

    @pytest.mark.parametrize("operation,using,with_check,ok", [
        (PolicyOperation.INSERT, None, "true", True),
        (PolicyOperation.INSERT, "true", "true", False),
        (PolicyOperation.INSERT, None, None, False),
        (PolicyOperation.UPDATE, "true", "true", True),
        (PolicyOperation.UPDATE, "true", None, False),
        (PolicyOperation.SELECT, "true", None, True),
        (PolicyOperation.SELECT, "true", "true", False),
        (PolicyOperation.DELETE, None, None, False),
        (PolicyOperation.ALL, None, "true", True),
        (PolicyOperation.ALL, " ", None, False),
    ])
    def test_policy_shapes(self, operation, using, with_check, ok):
        policy = AccessPolicy("t", "p", operation, using=using, with_check=with_check)
        assert (policy_shape_problem(policy) is None) == ok

    def test_policy_findings(self, valid_schema):
        schema = valid_schema.evolve(policies=(
            AccessPolicy("ghosts", "ghost_policy", PolicyOperation.SELECT, using="true"),
            AccessPolicy("orders", "bad_insert", PolicyOperation.INSERT, using="true", with_check="true"),
        ))
        codes = codes_of(schema)

        assert codes == [FindingCode.POLICY_UNKNOWN_TABLE.value, FindingCode.POLICY_SHAPE.value]


class TestLayoutChecks:
    """Tests for diagram layout hints"""

    def test_overlapping_tables(self):
        schema = Schema("s", tables=(
            table("a", position=(0, 0)),
            table("b", position=(100, 50)),
            table("c", position=(600, 0)),
        ))
        result = validate_schema(schema)

        assert result.codes() == [FindingCode.TABLE_OVERLAP.value]
        assert result.infos[0].table == "a"
        assert result.is_valid


class TestValidationCache:
    """Tests for cached validation"""

    def test_idempotent_and_pure(self, valid_schema):
        """Test validating twice gives equal results without touching the schema"""
        before = valid_schema.to_dict()
        validator = SchemaValidator()

        first = validator.validate(valid_schema)
        second = validator.validate(valid_schema)

        assert first.to_dict() == second.to_dict()
        assert valid_schema.to_dict() == before

    def test_cache_hits(self, valid_schema):
        cache = ValidationCache()
        validator = SchemaValidator(cache=cache)

        validator.validate(valid_schema)
        validator.validate(valid_schema)

        assert cache.misses == 1
        assert cache.hits == 1

    def test_evolved_schema_shares_fingerprint(self, valid_schema):
        """Test version and timestamp changes don't invalidate the cache"""
        cache = ValidationCache()
        validator = SchemaValidator(cache=cache)
        validator.validate(valid_schema)

        validator.validate(valid_schema.evolve(name="renamed"))

        assert cache.hits == 1
        assert schema_fingerprint(valid_schema) == schema_fingerprint(valid_schema.evolve())

    def test_structural_change_misses(self, valid_schema):
        changed = valid_schema.evolve(tables=valid_schema.tables[:1], relationships=(), policies=())
        assert schema_fingerprint(changed) != schema_fingerprint(valid_schema)

    def test_cached_results_are_copies(self, valid_schema):
        validator = SchemaValidator()
        first = validator.validate(valid_schema)
        first.errors.append(None)

        assert validator.validate(valid_schema).errors == []

    def test_clear_cache(self, valid_schema):
        validator = SchemaValidator()
        validator.validate(valid_schema)
        validator.clear_cache()

        assert len(validator.cache) == 0
        assert validator.cache.hits == 0

    def test_eviction(self):
        cache = ValidationCache(max_entries=2)
        validator = SchemaValidator(cache=cache)
        schemas = [Schema("s", tables=(table(f"t{i}"),)) for i in range(3)]
        for schema in schemas:
            validator.validate(schema)

        assert len(cache) == 2
        assert validator.cache_key(schemas[0]) not in cache
        assert validator.cache_key(schemas[2]) in cache

    def test_shared_cache_respects_config(self):
        """Test validators with different settings never read each other's results"""
        cache = ValidationCache()
        schema = Schema("s", tables=(Table("items", columns=(pk(data_type=PostgresType.INTEGER),)),))
        lax = SchemaValidator(cache=cache, config=ValidationConfig(require_uuid_id=False))
        strict = SchemaValidator(cache=cache)

        assert FindingCode.ID_NOT_UUID.value not in lax.validate(schema).codes()
        assert FindingCode.ID_NOT_UUID.value in strict.validate(schema).codes()
        assert cache.hits == 0
        assert len(cache) == 2
        assert strict.cache_key(schema).startswith(schema_fingerprint(schema))

    def test_cache_disabled(self, valid_schema):
        validator = SchemaValidator(config=ValidationConfig(enable_cache=False))

        assert validator.cache is None
        assert validator.validate(valid_schema).is_valid
