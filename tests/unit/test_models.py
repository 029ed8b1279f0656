"""
Unit Tests for the Schema Model and Transformations
"""
import pytest
import sys
import os

# Add src to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..', 'src'))

from schemaforge import (
    AccessPolicy,
    Column,
    Constraint,
    ConstraintType,
    Index,
    PolicyOperation,
    PostgresType,
    ReferentialAction,
    Relationship,
    Schema,
    SchemaError,
    Table,
    add_relationship,
    add_table,
    remove_table,
    rename_column,
)


def uuid_pk(name="id"):
    return Column(name, PostgresType.UUID, nullable=False, default="gen_random_uuid()",
                  constraints=(Constraint.primary_key(),))


@pytest.fixture
def shop():
    customers = Table("customers", columns=(
        uuid_pk(),
        Column("email", PostgresType.VARCHAR, nullable=False, length=255, constraints=(Constraint.unique(),)),
    ))
    orders = Table(
        "orders",
        columns=(
            uuid_pk(),
            Column("customer_id", PostgresType.UUID, nullable=False,
                   constraints=(Constraint.foreign_key("customers"),)),
            Column("total", PostgresType.NUMERIC, precision=10, scale=2),
        ),
        indexes=(Index("idx_orders_customer_id", ("customer_id",)),),
        position=(300.0, 0.0),
    )
    return Schema(
        name="shop",
        tables=(customers, orders),
        relationships=(Relationship("fk_orders_customer_id", "orders", "customer_id", "customers"),),
        policies=(AccessPolicy("orders", "orders_select_policy", PolicyOperation.SELECT, using="true"),),
    )


class TestPostgresType:
    """Tests for type name resolution"""

    def test_aliases(self):
        """Test common aliases resolve to canonical types"""
        assert PostgresType.parse("int") == PostgresType.INTEGER
        assert PostgresType.parse("float8") == PostgresType.DOUBLE_PRECISION
        assert PostgresType.parse("timestamp with time zone") == PostgresType.TIMESTAMPTZ
        assert PostgresType.parse("varchar(255)") == PostgresType.VARCHAR
        assert PostgresType.parse("text[]") == PostgresType.ARRAY

    def test_unknown_type_kept_as_string(self):
        """Test unknown names come back normalized rather than raising"""
        assert PostgresType.parse("money") == "MONEY"
        assert not Column("price", "money").is_known_type

    def test_type_properties(self):
        assert PostgresType.VARCHAR.requires_length
        assert PostgresType.NUMERIC.is_numeric_exact
        assert not PostgresType.TEXT.requires_length


class TestColumn:
    """Tests for column helpers"""

    def test_primary_key_is_never_nullable(self):
        """Test effective nullability honors PRIMARY KEY and NOT NULL"""
        pk = Column("id", PostgresType.UUID, nullable=True, constraints=(Constraint.primary_key(),))
        not_null = Column("name", PostgresType.TEXT, constraints=(Constraint.not_null(),))

        assert not pk.effective_nullable
        assert not not_null.effective_nullable
        assert pk.is_unique

    def test_default_expression(self):
        """Test the default falls back to a DEFAULT constraint"""
        field_default = Column("a", PostgresType.INTEGER, default="0")
        constraint_default = Column("b", PostgresType.INTEGER, constraints=(Constraint.default("1"),))

        assert field_default.default_expression == "0"
        assert constraint_default.default_expression == "1"
        assert not Column("c", PostgresType.INTEGER).has_default

    def test_with_constraint(self):
        """Test adding a constraint returns a new column once"""
        column = Column("email", PostgresType.TEXT)
        unique = column.with_constraint(Constraint.unique())

        assert unique is not column
        assert unique.is_unique
        assert not column.constraints
        assert unique.with_constraint(Constraint.unique()) is unique

    def test_lists_become_tuples(self):
        """Test mutable inputs are frozen"""
        column = Column("tags", "text[]", element_type="text", constraints=[Constraint.not_null()])

        assert isinstance(column.constraints, tuple)
        assert column.data_type == PostgresType.ARRAY
        assert column.element_type == PostgresType.TEXT

    def test_frozen(self):
        column = Column("a", PostgresType.TEXT)
        with pytest.raises(Exception):
            column.name = "b"


class TestSchemaSerialization:
    """Tests for dict, YAML and JSON serialization"""

    def test_dict_round_trip(self, shop):
        """Test to_dict/from_dict preserves the schema"""
        assert Schema.from_dict(shop.to_dict()) == shop

    def test_foreign_key_serialization(self, shop):
        data = shop.to_dict()
        customer_id = data["tables"][1]["columns"][1]

        assert customer_id["constraints"] == [{
            "kind": "FOREIGN KEY",
            "references_table": "customers",
            "references_column": "id",
        }]
        assert data["tables"][1]["position"] == {"x": 300.0, "y": 0.0}

    def test_yaml_round_trip(self, shop, tmp_path):
        """Test saving and loading YAML"""
        path = tmp_path / "shop.yaml"
        shop.save(path)

        assert Schema.load(path) == shop

    def test_json_round_trip(self, shop, tmp_path):
        """Test saving and loading JSON"""
        path = tmp_path / "nested" / "shop.json"
        shop.save(path)

        assert path.read_text(encoding="utf-8").lstrip().startswith("{")
        assert Schema.load(path) == shop

    def test_from_minimal_dict(self):
        """Test defaults fill in missing fields"""
        schema = Schema.from_dict({"name": "tiny", "tables": [{"name": "t", "columns": [
            {"name": "id", "data_type": "uuid"},
        ]}]})

        assert schema.version == 1
        assert schema.tables[0].columns[0].data_type == PostgresType.UUID
        assert schema.id


class TestSchemaEvolution:
    """Tests for snapshot evolution"""

    def test_evolve_bumps_version(self, shop):
        evolved = shop.evolve(name="store")

        assert evolved.version == shop.version + 1
        assert evolved.updated_at >= shop.updated_at
        assert evolved.id == shop.id
        assert shop.name == "shop"

    def test_lookups(self, shop):
        assert shop.table_names == ["customers", "orders"]
        assert shop.get_table("orders").primary_key.name == "id"
        assert len(shop.relationships_to("customers")) == 1
        assert shop.relationships_from("customers") == []
        assert len(shop.policies_for("orders")) == 1


class TestTransforms:
    """Tests for schema transformations"""

    def test_add_table(self, shop):
        """Test adding a table returns a new snapshot"""
        updated = add_table(shop, Table("products", columns=(uuid_pk(),)))

        assert updated.table_names == ["customers", "orders", "products"]
        assert updated.version == shop.version + 1
        assert shop.table_names == ["customers", "orders"]

    def test_add_duplicate_table(self, shop):
        with pytest.raises(SchemaError):
            add_table(shop, Table("orders"))

    def test_remove_table(self, shop):
        """Test removing a table drops what references it"""
        updated = remove_table(shop, "customers")
        customer_id = updated.get_table("orders").get_column("customer_id")

        assert updated.table_names == ["orders"]
        assert updated.relationships == ()
        assert not customer_id.has_constraint(ConstraintType.FOREIGN_KEY)
        assert len(updated.policies) == 1
        assert len(shop.relationships) == 1

    def test_remove_table_drops_policies(self, shop):
        updated = remove_table(shop, "orders")
        assert updated.policies == ()

    def test_remove_missing_table(self, shop):
        with pytest.raises(SchemaError):
            remove_table(shop, "products")

    def test_rename_referenced_column(self, shop):
        """Test renaming rewrites relationships, indexes and foreign keys"""
        updated = rename_column(shop, "orders", "customer_id", "buyer_id")
        orders = updated.get_table("orders")

        assert orders.has_column("buyer_id")
        assert not orders.has_column("customer_id")
        assert orders.indexes[0].columns == ("buyer_id",)
        assert updated.relationships[0].source_column == "buyer_id"
        assert shop.get_table("orders").has_column("customer_id")

    def test_rename_target_column(self, shop):
        """Test renaming a referenced key rewrites the referencing side"""
        updated = rename_column(shop, "customers", "id", "customer_key")
        fk = updated.get_table("orders").get_column("customer_id").get_constraints(ConstraintType.FOREIGN_KEY)[0]

        assert updated.relationships[0].target_column == "customer_key"
        assert fk.references_column == "customer_key"

    def test_rename_errors(self, shop):
        with pytest.raises(SchemaError):
            rename_column(shop, "orders", "missing", "other")
        with pytest.raises(SchemaError):
            rename_column(shop, "orders", "total", "customer_id")
        with pytest.raises(SchemaError):
            rename_column(shop, "orders", "total", "9 lives")
        assert rename_column(shop, "orders", "total", "total") is shop

    def test_add_relationship(self, shop):
        """Test adding a relationship adds its foreign key constraint"""
        schema = add_table(shop, Table("reviews", columns=(
            uuid_pk(),
            Column("order_id", PostgresType.UUID),
        )))
        relationship = Relationship(
            "fk_reviews_order_id", "reviews", "order_id", "orders", on_delete=ReferentialAction.CASCADE
        )
        updated = add_relationship(schema, relationship)
        fk = updated.get_table("reviews").get_column("order_id").get_constraints(ConstraintType.FOREIGN_KEY)

        assert relationship in updated.relationships
        assert fk == [Constraint.foreign_key("orders", "id", ReferentialAction.CASCADE, ReferentialAction.CASCADE)]
        assert not schema.get_table("reviews").get_column("order_id").constraints

    def test_add_relationship_errors(self, shop):
        """Test missing endpoints and duplicate relationships are rejected"""
        with pytest.raises(SchemaError):
            add_relationship(shop, Relationship("fk", "orders", "customer_id", "vendors"))
        with pytest.raises(SchemaError):
            add_relationship(shop, Relationship("fk", "orders", "vendor_id", "customers"))
        with pytest.raises(SchemaError):
            add_relationship(shop, Relationship("fk2", "orders", "customer_id", "customers"))
