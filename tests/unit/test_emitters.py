"""
Unit Tests for Code Emitters
"""
import json
import re
import pytest
import sys
import os
from datetime import datetime, timezone

# Add src to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..', 'src'))

from schemaforge import (
    AccessPolicy,
    Cardinality,
    Column,
    Constraint,
    EmitOptions,
    Index,
    PolicyOperation,
    PostgresType,
    ReferentialAction,
    Relationship,
    Schema,
    Table,
    TargetFormat,
    UnmappableTypeError,
    available_targets,
    emit,
    parse_create_tables,
)
from schemaforge.emit.docs import anchor
from schemaforge.emit.type_maps import PRISMA_NATIVE, TYPE_MAPS

SNAPSHOT = datetime(2024, 1, 15, 10, 30, tzinfo=timezone.utc)


def uuid_pk():
    return Column("id", PostgresType.UUID, nullable=False, default="gen_random_uuid()",
                  constraints=(Constraint.primary_key(),))


@pytest.fixture
def shop():
    customers = Table("customers", columns=(
        uuid_pk(),
        Column("email", PostgresType.VARCHAR, nullable=False, length=255, constraints=(Constraint.unique(),)),
        Column("status", PostgresType.ENUM, nullable=False, default="'active'", enum_values=("active", "inactive")),
    ))
    orders = Table(
        "orders",
        columns=(
            uuid_pk(),
            Column("customer_id", PostgresType.UUID, nullable=False),
            Column("tags", PostgresType.ARRAY, element_type=PostgresType.TEXT),
            Column("total", PostgresType.NUMERIC, precision=10, scale=2),
        ),
        indexes=(Index("idx_orders_customer_id", ("customer_id",)),),
    )
    return Schema(
        name="shop",
        # declared child first; emitters must reorder
        tables=(orders, customers),
        relationships=(Relationship("fk_orders_customer_id", "orders", "customer_id", "customers"),),
        policies=(
            AccessPolicy("orders", "orders_insert_policy", PolicyOperation.INSERT,
                         with_check="auth.uid() IS NOT NULL", roles=("authenticated",)),
            AccessPolicy("orders", "orders_update_policy", PolicyOperation.UPDATE,
                         using="auth.uid() = owner", with_check="auth.uid() = owner"),
        ),
        created_at=SNAPSHOT,
        updated_at=SNAPSHOT,
    )


@pytest.fixture
def money_schema():
    return Schema("billing", tables=(Table("invoices", columns=(uuid_pk(), Column("amount", "money"))),))


def only(artifacts):
    assert len(artifacts) == 1
    return artifacts[0]


class TestMigrationEmitter:
    """Tests for SQL migrations"""

    def test_filename(self, shop):
        artifact = only(emit(shop, TargetFormat.MIGRATION))

        assert artifact.filename == "20240115103000_create_shop_schema.sql"
        assert artifact.mime_type == "application/sql"

    def test_statements(self, shop):
        sql = only(emit(shop, "migration")).content

        assert 'CREATE EXTENSION IF NOT EXISTS "pgcrypto";' in sql
        assert "CREATE TYPE \"customers_status_enum\" AS ENUM ('active', 'inactive');" in sql
        assert '  "id" UUID PRIMARY KEY DEFAULT gen_random_uuid()' in sql
        assert '  "email" VARCHAR(255) UNIQUE NOT NULL' in sql
        assert '  "status" "customers_status_enum" NOT NULL DEFAULT \'active\'' in sql
        assert '  "tags" TEXT[]' in sql
        assert '  "total" NUMERIC(10,2)' in sql
        assert (
            'ALTER TABLE "orders" ADD CONSTRAINT "fk_orders_customer_id" FOREIGN KEY ("customer_id") '
            'REFERENCES "customers"("id") ON DELETE RESTRICT ON UPDATE CASCADE;'
        ) in sql
        assert 'CREATE INDEX IF NOT EXISTS "idx_orders_customer_id" ON "orders" ("customer_id");' in sql

    def test_statement_order(self, shop):
        """Test dependencies are created before the tables referencing them"""
        sql = only(emit(shop, "migration")).content
        positions = [sql.index(s) for s in (
            "CREATE EXTENSION",
            "CREATE TYPE",
            'CREATE TABLE "customers"',
            'CREATE TABLE "orders"',
            "ADD CONSTRAINT",
            "CREATE INDEX",
            "ENABLE ROW LEVEL SECURITY",
            "CREATE POLICY",
        )]
        assert positions == sorted(positions)

    def test_policies(self, shop):
        """Test policy predicates are shaped for their operation"""
        sql = only(emit(shop, "migration")).content

        assert 'ALTER TABLE "orders" ENABLE ROW LEVEL SECURITY;' in sql
        assert (
            'CREATE POLICY "orders_insert_policy" ON "orders" FOR INSERT TO authenticated '
            'WITH CHECK (auth.uid() IS NOT NULL);'
        ) in sql
        assert (
            'CREATE POLICY "orders_update_policy" ON "orders" FOR UPDATE '
            'USING (auth.uid() = owner) WITH CHECK (auth.uid() = owner);'
        ) in sql
        assert 'ALTER TABLE "customers" ENABLE ROW LEVEL SECURITY;' not in sql

    def test_select_policy_drops_with_check(self, shop):
        schema = shop.evolve(policies=(
            AccessPolicy("customers", "read", PolicyOperation.SELECT, using="true", with_check="true"),
        ))
        sql = only(emit(schema, "migration")).content

        assert 'CREATE POLICY "read" ON "customers" FOR SELECT USING (true);' in sql

    def test_round_trip(self, shop):
        """Test emitted CREATE TABLE statements read back to the model's columns"""
        parsed = parse_create_tables(only(emit(shop, "migration")).content)

        assert set(parsed) == {"customers", "orders"}
        for table in shop.tables:
            assert [c.name for c in parsed[table.name]] == table.column_names
            assert [c.nullable for c in parsed[table.name]] == [c.effective_nullable for c in table.columns]
        assert [c.type for c in parsed["orders"]] == ["UUID", "UUID", "TEXT[]", "NUMERIC(10,2)"]

    def test_down_migration(self, shop):
        up, down = emit(shop, "migration", EmitOptions(include_down=True))

        assert down.filename == "20240115103000_drop_shop_schema.sql"
        assert down.content.index('DROP TABLE IF EXISTS "orders" CASCADE;') < down.content.index(
            'DROP TABLE IF EXISTS "customers" CASCADE;'
        )
        assert 'DROP TYPE IF EXISTS "customers_status_enum";' in down.content
        assert "DROP" not in up.content

    def test_non_public_schema(self, shop):
        sql = only(emit(shop, "migration", EmitOptions(schema_name="app"))).content

        assert 'CREATE SCHEMA IF NOT EXISTS "app";' in sql
        assert 'CREATE TABLE "app"."customers" (' in sql
        assert 'REFERENCES "app"."customers"("id")' in sql
        assert '  "status" "app"."customers_status_enum" NOT NULL' in sql
        assert set(parse_create_tables(sql)) == {"customers", "orders"}

    @pytest.mark.parametrize("schema_name", ["public", "app"])
    def test_round_trip_every_type(self, schema_name):
        """Test each column type reads back as emitted, schema-qualified enums included"""
        extras = {
            PostgresType.VARCHAR: {"length": 80},
            PostgresType.CHAR: {"length": 2},
            PostgresType.NUMERIC: {"precision": 12, "scale": 3},
            PostgresType.ARRAY: {"element_type": PostgresType.INTEGER},
            PostgresType.ENUM: {"enum_values": ("open", "closed")},
        }
        columns = tuple(
            Column(f"c_{data_type.name.lower()}", data_type, nullable=False, **extras.get(data_type, {}))
            for data_type in PostgresType
        )
        schema = Schema("kinds", tables=(Table("t", columns=(uuid_pk(),) + columns),))
        sql = only(emit(schema, "migration", EmitOptions(schema_name=schema_name))).content
        parsed = {c.name: c for c in parse_create_tables(sql)["t"]}

        enum_type = '"t_c_enum_enum"' if schema_name == "public" else '"app"."t_c_enum_enum"'
        assert parsed["c_enum"].type == enum_type
        assert parsed["c_varchar"].type == "VARCHAR(80)"
        assert parsed["c_char"].type == "CHAR(2)"
        assert parsed["c_numeric"].type == "NUMERIC(12,3)"
        assert parsed["c_double_precision"].type == "DOUBLE PRECISION"
        assert parsed["c_array"].type == "INTEGER[]"
        assert set(parsed) == {"id"} | {c.name for c in columns}
        for column in columns:
            assert not parsed[column.name].nullable
            if column.data_type not in extras:
                assert parsed[column.name].type == column.data_type.value

    def test_options(self, shop):
        options = EmitOptions(
            include_comments=False,
            include_indexes=False,
            include_policies=False,
            include_extensions=False,
            timestamp_prefix="20240101000000",
        )
        artifact = only(emit(shop, "migration", options))

        assert artifact.filename.startswith("20240101000000_")
        assert "Migration:" not in artifact.content
        assert "CREATE INDEX" not in artifact.content
        assert "CREATE POLICY" not in artifact.content
        assert "CREATE EXTENSION" not in artifact.content

    def test_invalid_options(self):
        with pytest.raises(ValueError):
            EmitOptions(schema_name="bad name")
        with pytest.raises(ValueError):
            EmitOptions(timestamp_prefix="2024-01-01")

    def test_composite_primary_key(self):
        schema = Schema("s", tables=(Table("order_items", is_join_table=True, columns=(
            Column("order_id", PostgresType.UUID, nullable=False, constraints=(Constraint.primary_key(),)),
            Column("item_id", PostgresType.UUID, nullable=False, constraints=(Constraint.primary_key(),)),
        )),))
        sql = only(emit(schema, "migration")).content

        assert '  PRIMARY KEY ("order_id", "item_id")' in sql
        assert [c.nullable for c in parse_create_tables(sql)["order_items"]] == [False, False]

    def test_orphan_foreign_key_constraint(self):
        """Test FOREIGN KEY constraints without a relationship are still emitted"""
        schema = Schema("s", tables=(
            Table("customers", columns=(uuid_pk(),)),
            Table("orders", columns=(uuid_pk(), Column(
                "customer_id", PostgresType.UUID,
                constraints=(Constraint.foreign_key("customers", on_delete=ReferentialAction.CASCADE),),
            ))),
        ))
        sql = only(emit(schema, "migration")).content

        assert 'FOREIGN KEY ("customer_id") REFERENCES "customers"("id") ON DELETE CASCADE ON UPDATE CASCADE;' in sql

    def test_cycle_still_emits(self):
        schema = Schema(
            "s",
            tables=(
                Table("a", columns=(uuid_pk(), Column("b_id", PostgresType.UUID))),
                Table("b", columns=(uuid_pk(), Column("a_id", PostgresType.UUID))),
            ),
            relationships=(Relationship("fk_a_b_id", "a", "b_id", "b"), Relationship("fk_b_a_id", "b", "a_id", "a")),
        )
        sql = only(emit(schema, "migration")).content

        assert "Circular dependency: a -> b -> a" in sql
        assert sql.count("ADD CONSTRAINT") == 2


class TestDeclarativeEmitter:
    """Tests for the declarative SQL file"""

    def test_declarative(self, shop):
        artifact = only(emit(shop, "declarative"))

        assert artifact.filename == "shop_schema.sql"
        assert artifact.content.startswith("-- shop Database Schema")
        assert set(parse_create_tables(artifact.content)) == {"customers", "orders"}


class TestTypeMaps:
    """Tests for per-target type coverage"""

    @pytest.mark.parametrize("target", sorted(TYPE_MAPS))
    def test_maps_are_total(self, target):
        assert set(TYPE_MAPS[target]) == set(PostgresType)

    def test_native_attributes_are_total(self):
        assert set(PRISMA_NATIVE) == set(PostgresType)

    @pytest.mark.parametrize("target", [t.value for t in TargetFormat])
    def test_unknown_type_fails_every_target(self, target, money_schema):
        """Test an unmappable type fails loudly instead of falling back to text"""
        with pytest.raises(UnmappableTypeError) as exc_info:
            emit(money_schema, target)

        assert exc_info.value.type_name == "MONEY"
        assert exc_info.value.column_name == "amount"

    @pytest.mark.parametrize("target", [t.value for t in TargetFormat])
    def test_unknown_array_element_fails(self, target):
        schema = Schema("s", tables=(Table("t", columns=(
            uuid_pk(), Column("amounts", PostgresType.ARRAY, element_type="money"),
        )),))
        with pytest.raises(UnmappableTypeError):
            emit(schema, target)


class TestPrismaEmitter:
    """Tests for the Prisma schema"""

    @pytest.fixture
    def prisma(self, shop):
        artifact = only(emit(shop, "prisma"))
        assert artifact.filename == "schema.prisma"
        return artifact.content

    def test_models(self, prisma):
        assert "model Customer {" in prisma
        assert "model Order {" in prisma
        assert '@@map("customers")' in prisma
        assert 'provider = "postgresql"' in prisma
        assert prisma.index("model Customer") < prisma.index("model Order")

    def test_fields(self, prisma):
        assert "@id @default(uuid()) @db.Uuid" in prisma
        assert re.search(r'customerId\s+String\s+@map\("customer_id"\) @db\.Uuid', prisma)
        assert re.search(r"tags\s+String\[\]", prisma)
        assert re.search(r"total\s+Decimal\?\s+@db\.Decimal\(10, 2\)", prisma)
        assert re.search(r'email\s+String\s+@unique @db\.VarChar\(255\)', prisma)

    def test_relations(self, prisma):
        assert (
            '@relation("fk_orders_customer_id", fields: [customerId], references: [id], '
            'onDelete: Restrict, onUpdate: Cascade)'
        ) in prisma
        assert re.search(r'orders\s+Order\[\]\s+@relation\("fk_orders_customer_id"\)', prisma)

    def test_enum(self, prisma):
        assert "enum CustomersStatusEnum {" in prisma
        assert '@@map("customers_status_enum")' in prisma
        assert re.search(r"status\s+CustomersStatusEnum\s", prisma)

    def test_self_reference(self):
        schema = Schema(
            "org",
            tables=(Table("employees", columns=(uuid_pk(), Column("manager_id", PostgresType.UUID))),),
            relationships=(Relationship("fk_employees_manager_id", "employees", "manager_id", "employees",
                                        on_delete=ReferentialAction.SET_NULL),),
        )
        prisma = only(emit(schema, "prisma")).content

        assert re.search(r"manager\s+Employee\?\s+@relation", prisma)
        assert re.search(r"employeesByManager\s+Employee\[\]", prisma)
        assert "onDelete: SetNull" in prisma


class TestTypeScriptEmitter:
    """Tests for TypeScript bindings"""

    @pytest.fixture
    def ts(self, shop):
        artifact = only(emit(shop, "typescript"))
        assert artifact.filename == "database.types.ts"
        return artifact.content

    def test_layout(self, ts):
        assert "export interface Database {" in ts
        assert "  public: {" in ts
        assert "export type Json =" in ts

    def test_row_insert_update(self, ts):
        customers = ts[ts.index("customers: {"):ts.index("orders: {")]
        row = customers[customers.index("Row: {"):customers.index("Insert: {")]
        insert = customers[customers.index("Insert: {"):customers.index("Update: {")]

        assert "id: string" in row
        assert 'status: "active" | "inactive"' in row
        assert "id?: string" in insert
        assert "email: string" in insert

    def test_nullable_columns(self, ts):
        orders = ts[ts.index("orders: {"):]
        assert "tags: string[] | null" in orders
        assert "total?: number | null" in orders

    def test_relationships(self, ts):
        assert 'foreignKeyName: "fk_orders_customer_id"' in ts
        assert 'columns: ["customer_id"]' in ts
        assert 'referencedRelation: "customers"' in ts
        assert "isOneToOne: false" in ts

    def test_aliases_and_enums(self, ts):
        assert 'export type Customer = Tables<"customers">' in ts
        assert 'export type OrderInsert = TablesInsert<"orders">' in ts
        assert 'customers_status_enum: "active" | "inactive"' in ts

    def test_schema_name(self, shop):
        ts = only(emit(shop, "typescript", EmitOptions(schema_name="app"))).content
        assert "  app: {" in ts
        assert 'Database["app"]' in ts


class TestDiagramEmitters:
    """Tests for Mermaid and DBML"""

    def test_mermaid(self, shop):
        artifact = only(emit(shop, "mermaid"))
        content = artifact.content

        assert artifact.filename == "shop.mmd"
        assert content.startswith("erDiagram\n")
        assert "    CUSTOMERS {" in content
        assert "        uuid id PK" in content
        assert "        string email UK" in content
        assert "        uuid customer_id FK" in content
        assert "        array tags" in content
        assert '    CUSTOMERS ||--o{ ORDERS : "customer_id"' in content

    def test_dbml(self, shop):
        artifact = only(emit(shop, "dbml"))
        content = artifact.content

        assert artifact.filename == "shop.dbml"
        assert "Table customers {" in content
        assert "  id uuid [pk, default: `gen_random_uuid()`]" in content
        assert "  email varchar(255) [not null, unique]" in content
        assert "  status customers_status_enum [not null, default: 'active']" in content
        assert '  tags "text[]"' in content
        assert "  total numeric(10,2)" in content
        assert "Enum customers_status_enum {" in content
        assert "    customer_id [name: 'idx_orders_customer_id']" in content
        assert (
            "Ref fk_orders_customer_id: orders.customer_id > customers.id "
            "[delete: restrict, update: cascade]"
        ) in content

    def test_plantuml(self, shop):
        artifact = only(emit(shop, "plantuml"))
        content = artifact.content

        assert artifact.filename == "shop.puml"
        assert content.startswith("@startuml shop\n")
        assert content.rstrip().endswith("@enduml")
        assert 'entity "customers" as customers {' in content
        assert "  * id : UUID <<PK>>\n  --\n" in content
        assert "  * email : VARCHAR(255) <<UK>>" in content
        assert "  * status : customers_status_enum" in content
        assert "  * customer_id : UUID <<FK>>" in content
        assert "  tags : TEXT[]" in content
        assert "  total : NUMERIC(10,2)" in content
        assert "customers ||--o{ orders : customer_id" in content
        assert content.index('entity "customers"') < content.index('entity "orders"')

    def test_plantuml_one_to_one(self):
        schema = Schema(
            "accounts",
            tables=(
                Table("users", columns=(uuid_pk(),)),
                Table("profiles", columns=(uuid_pk(), Column("user_id", PostgresType.UUID))),
            ),
            relationships=(Relationship("fk_profiles_user_id", "profiles", "user_id", "users",
                                        cardinality=Cardinality.ONE_TO_ONE),),
        )
        content = only(emit(schema, "plantuml")).content

        assert "users ||--|| profiles : user_id" in content


class TestDrizzleEmitter:
    """Tests for Drizzle ORM table definitions"""

    @pytest.fixture
    def drizzle(self, shop):
        artifact = only(emit(shop, "drizzle"))
        assert artifact.filename == "schema.ts"
        return artifact.content

    def test_imports(self, drizzle):
        assert "import { relations } from 'drizzle-orm';" in drizzle
        assert (
            "import { index, numeric, pgEnum, pgTable, text, uuid, varchar } from 'drizzle-orm/pg-core';"
        ) in drizzle

    def test_enum(self, drizzle):
        assert "export const customersStatusEnum = pgEnum('customers_status_enum', ['active', 'inactive']);" \
            in drizzle
        assert "  status: customersStatusEnum('status').notNull().default('active')," in drizzle

    def test_columns(self, drizzle):
        assert "export const customers = pgTable('customers', {" in drizzle
        assert "  id: uuid('id').primaryKey().defaultRandom()," in drizzle
        assert "  email: varchar('email', { length: 255 }).notNull().unique()," in drizzle
        assert "  tags: text('tags').array()," in drizzle
        assert "  total: numeric('total', { precision: 10, scale: 2 })," in drizzle
        assert drizzle.index("pgTable('customers'") < drizzle.index("pgTable('orders'")

    def test_references_and_indexes(self, drizzle):
        assert (
            "  customerId: uuid('customer_id').notNull()"
            ".references(() => customers.id, { onDelete: 'restrict', onUpdate: 'cascade' }),"
        ) in drizzle
        assert "}, (table) => [\n  index('idx_orders_customer_id').on(table.customerId),\n]);" in drizzle

    def test_relations(self, drizzle):
        assert "export const ordersRelations = relations(orders, ({ one }) => ({" in drizzle
        assert (
            "  customer: one(customers, { fields: [orders.customerId], references: [customers.id], "
            "relationName: 'fk_orders_customer_id' }),"
        ) in drizzle
        assert "export const customersRelations = relations(customers, ({ many }) => ({" in drizzle
        assert "  orders: many(orders, { relationName: 'fk_orders_customer_id' })," in drizzle

    def test_self_reference(self):
        schema = Schema(
            "org",
            tables=(Table("employees", columns=(uuid_pk(), Column("manager_id", PostgresType.UUID))),),
            relationships=(Relationship("fk_employees_manager_id", "employees", "manager_id", "employees",
                                        on_delete=ReferentialAction.SET_NULL),),
        )
        drizzle = only(emit(schema, "drizzle")).content

        assert "type AnyPgColumn" in drizzle
        assert (
            "managerId: uuid('manager_id').references((): AnyPgColumn => employees.id, "
            "{ onDelete: 'set null', onUpdate: 'cascade' }),"
        ) in drizzle
        assert "({ many, one }) => ({" in drizzle
        assert "  employeesByManager: many(employees, { relationName: 'fk_employees_manager_id' })," in drizzle

    def test_defaults_and_composite_key(self):
        table = Table("order_items", columns=(
            Column("order_id", PostgresType.UUID, nullable=False, constraints=(Constraint.primary_key(),)),
            Column("line", PostgresType.INTEGER, nullable=False, constraints=(Constraint.primary_key(),)),
            Column("quantity", PostgresType.BIGINT, nullable=False, default="1"),
            Column("created_at", PostgresType.TIMESTAMPTZ, default="now()"),
            Column("code", PostgresType.TEXT, default="upper(md5(random()::text))"),
        ))
        drizzle = only(emit(Schema("shop", tables=(table,)), "drizzle")).content

        assert "import { sql } from 'drizzle-orm';" in drizzle
        assert "  quantity: bigint('quantity', { mode: 'number' }).notNull().default(1)," in drizzle
        assert "  createdAt: timestamp('created_at', { withTimezone: true }).defaultNow()," in drizzle
        assert "  code: text('code').default(sql`upper(md5(random()::text))`)," in drizzle
        assert "  orderId: uuid('order_id').notNull()," in drizzle
        assert "  primaryKey({ columns: [table.orderId, table.line] })," in drizzle


class TestZodEmitter:
    """Tests for Zod validation schemas"""

    @pytest.fixture
    def zod(self, shop):
        artifact = only(emit(shop, "zod"))
        assert artifact.filename == "schemas.ts"
        return artifact.content

    def test_row_schema(self, zod):
        assert zod.startswith("import { z } from 'zod';")
        assert "export const customerSchema = z.object({" in zod
        assert "  id: z.string().uuid()," in zod
        assert "  email: z.string().max(255)," in zod
        assert '  status: z.enum(["active", "inactive"]),' in zod
        assert "  tags: z.array(z.string()).nullable()," in zod
        assert "  total: z.number().nullable()," in zod

    def test_insert_and_update_schemas(self, zod):
        assert "export const customerInsertSchema = customerSchema.partial({ id: true, status: true });" in zod
        assert "export const orderInsertSchema = orderSchema.partial({ id: true, tags: true, total: true });" in zod
        assert "export const orderUpdateSchema = orderSchema.partial();" in zod
        assert "export type Customer = z.infer<typeof customerSchema>;" in zod
        assert "export type OrderInsert = z.infer<typeof orderInsertSchema>;" in zod

    def test_json_helper_only_when_needed(self, zod):
        assert "jsonSchema" not in zod
        schema = Schema("s", tables=(Table("events", columns=(
            uuid_pk(), Column("payload", PostgresType.JSONB, nullable=False),
        )),))
        content = only(emit(schema, "zod")).content

        assert "const jsonSchema: z.ZodType<Json> = z.lazy(() =>" in content
        assert "  payload: jsonSchema," in content


class TestJsonSchemaEmitter:
    """Tests for the JSON Schema document"""

    @pytest.fixture
    def document(self, shop):
        artifact = only(emit(shop, "json-schema"))
        assert artifact.filename == "shop.schema.json"
        assert artifact.mime_type == "application/schema+json"
        return json.loads(artifact.content)

    def test_layout(self, document):
        assert document["$schema"] == "http://json-schema.org/draft-07/schema#"
        assert document["title"] == "shop"
        assert list(document["definitions"]) == ["customers", "orders"]
        assert document["properties"]["orders"] == {
            "type": "array", "items": {"$ref": "#/definitions/orders"},
        }

    def test_columns(self, document):
        customers = document["definitions"]["customers"]
        orders = document["definitions"]["orders"]

        assert customers["properties"]["id"] == {"type": "string", "format": "uuid"}
        assert customers["properties"]["email"] == {"type": "string", "maxLength": 255}
        assert customers["properties"]["status"] == {
            "type": "string", "enum": ["active", "inactive"], "default": "active",
        }
        assert orders["properties"]["tags"] == {"type": ["array", "null"], "items": {"type": "string"}}
        assert orders["properties"]["total"] == {"type": ["number", "null"]}
        assert orders["properties"]["customer_id"]["x-references"] == "customers.id"

    def test_required_columns(self, document):
        assert document["definitions"]["customers"]["required"] == ["id", "email", "status"]
        assert document["definitions"]["orders"]["required"] == ["id", "customer_id"]
        assert document["definitions"]["orders"]["additionalProperties"] is False

    def test_nullable_enum_and_comments(self):
        schema = Schema("s", tables=(Table("tickets", columns=(
            uuid_pk(),
            Column("priority", PostgresType.ENUM, enum_values=("low", "high"), comment="Source column: Priority"),
            Column("score", PostgresType.SMALLINT, nullable=False, default="0"),
        )),))
        document = json.loads(only(emit(schema, "json-schema")).content)
        properties = document["definitions"]["tickets"]["properties"]

        assert properties["priority"]["enum"] == ["low", "high", None]
        assert properties["priority"]["description"] == "Source column: Priority"
        assert properties["score"] == {"type": "integer", "minimum": -32768, "maximum": 32767, "default": 0}

        bare = json.loads(only(emit(schema, "json-schema", EmitOptions(include_comments=False))).content)
        assert "description" not in bare["definitions"]["tickets"]["properties"]["priority"]


class TestMarkdownEmitter:
    """Tests for the Markdown data dictionary"""

    @pytest.fixture
    def markdown(self, shop):
        artifact = only(emit(shop, "markdown"))
        assert artifact.filename == "shop_schema.md"
        assert artifact.mime_type == "text/markdown"
        return artifact.content

    def test_statistics(self, markdown):
        assert markdown.startswith("# shop\n\n## Statistics\n")
        assert "| Tables | 2 |" in markdown
        assert "| Columns | 7 |" in markdown
        assert "| Relationships | 1 |" in markdown
        assert "| Policies | 2 |" in markdown
        assert "- [customers](#customers)\n- [orders](#orders)" in markdown

    def test_column_tables(self, markdown):
        assert markdown.index("### customers") < markdown.index("### orders")
        assert "| `email` | `VARCHAR(255)` | no |  | UNIQUE |" in markdown
        assert "| `id` | `UUID` | no | `gen_random_uuid()` | PK |" in markdown
        assert "| `customer_id` | `UUID` | no |  | FK customers.id |" in markdown
        assert "| `tags` | `TEXT[]` | yes |" in markdown

    def test_indexes_references_and_policies(self, markdown):
        assert "- index `idx_orders_customer_id` on (customer_id)" in markdown
        assert "- `customer_id` references `customers.id` (one-to-many, on delete RESTRICT)" in markdown
        assert (
            "- policy `orders_insert_policy` for INSERT to authenticated: "
            "WITH CHECK `auth.uid() IS NOT NULL`"
        ) in markdown
        assert (
            "| `fk_orders_customer_id` | `orders.customer_id` | `customers.id` | one-to-many | RESTRICT | CASCADE |"
        ) in markdown

    def test_options(self, shop):
        content = only(emit(shop, "markdown", EmitOptions(include_policies=False, include_comments=False))).content

        assert "policy " not in content
        assert "Description" not in content

    @pytest.mark.parametrize("title,expected", [
        ("customers", "customers"),
        ("Order Items", "order-items"),
        ("line_items", "line_items"),
    ])
    def test_anchor(self, title, expected):
        assert anchor(title) == expected


class TestEmitEntryPoint:
    """Tests for target dispatch"""

    def test_available_targets(self):
        targets = {info.target.value: info for info in available_targets()}

        assert set(targets) == {
            "migration", "declarative", "prisma", "typescript", "mermaid", "dbml",
            "plantuml", "markdown", "drizzle", "zod", "json-schema",
        }
        assert targets["prisma"].extension == ".prisma"
        assert targets["json-schema"].extension == ".json"

    def test_unknown_target(self, shop):
        with pytest.raises(ValueError):
            emit(shop, "xml")

    def test_target_names_are_case_insensitive(self, shop):
        assert emit(shop, " Prisma ") == emit(shop, TargetFormat.PRISMA)

    @pytest.mark.parametrize("target", [t.value for t in TargetFormat])
    def test_deterministic(self, shop, target):
        assert emit(shop, target) == emit(shop, target)

    def test_does_not_mutate_schema(self, shop):
        before = shop.to_dict()
        for target in TargetFormat:
            emit(shop, target)
        assert shop.to_dict() == before

    def test_artifact_write(self, shop, tmp_path):
        path = only(emit(shop, "dbml")).write(tmp_path / "out")

        assert path.name == "shop.dbml"
        assert path.read_text(encoding="utf-8").startswith("Project shop {")
