"""
Schema transformations

Every function takes a Schema and returns a new one; the input snapshot
is left untouched. Requests that cannot be applied raise SchemaError.
"""
from __future__ import annotations

from dataclasses import replace
from typing import Optional

from ..utils import SchemaError, get_logger
from .models import Constraint, Relationship, Schema, Table
from .naming import IDENTIFIER_PATTERN

logger = get_logger(__name__)


def add_table(schema: Schema, table: Table) -> Schema:
    """Append a table"""
    if schema.has_table(table.name):
        raise SchemaError(f"Table '{table.name}' already exists", table_name=table.name)
    logger.debug(f"Adding table '{table.name}' to schema '{schema.name}'")
    return schema.evolve(tables=schema.tables + (table,))


def remove_table(schema: Schema, table_name: str) -> Schema:
    """Remove a table together with the relationships and policies that touch it"""
    if not schema.has_table(table_name):
        raise SchemaError(f"Table '{table_name}' does not exist", table_name=table_name)

    tables = tuple(t for t in schema.tables if t.name != table_name)
    relationships = tuple(
        r for r in schema.relationships
        if r.source_table != table_name and r.target_table != table_name
    )
    policies = tuple(p for p in schema.policies if p.table_name != table_name)

    # Drop FOREIGN KEY constraints in surviving tables that pointed at the removed table
    cleaned = []
    for table in tables:
        columns = tuple(
            replace(c, constraints=tuple(
                k for k in c.constraints if k.references_table != table_name
            ))
            for c in table.columns
        )
        cleaned.append(replace(table, columns=columns))

    logger.debug(
        f"Removed table '{table_name}'",
        extra={"extra_fields": {
            "dropped_relationships": len(schema.relationships) - len(relationships),
            "dropped_policies": len(schema.policies) - len(policies),
        }},
    )
    return schema.evolve(tables=tuple(cleaned), relationships=relationships, policies=policies)


def rename_column(schema: Schema, table_name: str, old_name: str, new_name: str) -> Schema:
    """
    Rename a column and every reference to it

    Relationships, index column lists and FOREIGN KEY constraints are
    rewritten. Policy predicates are free text and are left verbatim.
    """
    table = schema.get_table(table_name)
    if table is None:
        raise SchemaError(f"Table '{table_name}' does not exist", table_name=table_name)
    if not table.has_column(old_name):
        raise SchemaError(
            f"Column '{old_name}' does not exist in '{table_name}'",
            table_name=table_name, column_name=old_name,
        )
    if old_name == new_name:
        return schema
    if table.has_column(new_name):
        raise SchemaError(
            f"Column '{new_name}' already exists in '{table_name}'",
            table_name=table_name, column_name=new_name,
        )
    if not IDENTIFIER_PATTERN.match(new_name):
        raise SchemaError(f"Invalid column name '{new_name}'", table_name=table_name, column_name=new_name)

    def rename_in(t: Table) -> Table:
        columns = []
        for c in t.columns:
            constraints = tuple(
                replace(k, references_column=new_name)
                if k.references_table == table_name and k.references_column == old_name else k
                for k in c.constraints
            )
            if t.name == table_name and c.name == old_name:
                columns.append(replace(c, name=new_name, constraints=constraints))
            else:
                columns.append(replace(c, constraints=constraints))
        indexes = t.indexes
        if t.name == table_name:
            indexes = tuple(
                replace(i, columns=tuple(new_name if n == old_name else n for n in i.columns))
                for i in t.indexes
            )
        return replace(t, columns=tuple(columns), indexes=indexes)

    relationships = []
    for r in schema.relationships:
        if r.source_table == table_name and r.source_column == old_name:
            r = replace(r, source_column=new_name)
        if r.target_table == table_name and r.target_column == old_name:
            r = replace(r, target_column=new_name)
        relationships.append(r)

    return schema.evolve(
        tables=tuple(rename_in(t) for t in schema.tables),
        relationships=tuple(relationships),
    )


def add_relationship(schema: Schema, relationship: Relationship) -> Schema:
    """Add a relationship and the matching FOREIGN KEY constraint on its source column"""
    source = schema.get_table(relationship.source_table)
    target = schema.get_table(relationship.target_table)
    if source is None:
        raise SchemaError(
            f"Source table '{relationship.source_table}' does not exist",
            table_name=relationship.source_table,
        )
    if target is None:
        raise SchemaError(
            f"Target table '{relationship.target_table}' does not exist",
            table_name=relationship.target_table,
        )
    if not source.has_column(relationship.source_column):
        raise SchemaError(
            f"Source column '{relationship.source_column}' does not exist",
            table_name=source.name, column_name=relationship.source_column,
        )
    if not target.has_column(relationship.target_column):
        raise SchemaError(
            f"Target column '{relationship.target_column}' does not exist",
            table_name=target.name, column_name=relationship.target_column,
        )
    if _find_relationship(schema, relationship.source_table, relationship.source_column) is not None:
        raise SchemaError(
            f"Column '{relationship.source_column}' already references another table",
            table_name=source.name, column_name=relationship.source_column,
        )

    fk = Constraint.foreign_key(
        relationship.target_table,
        relationship.target_column,
        on_delete=relationship.on_delete,
        on_update=relationship.on_update,
    )
    tables = tuple(
        replace(t, columns=tuple(
            c.with_constraint(fk) if c.name == relationship.source_column else c
            for c in t.columns
        )) if t.name == source.name else t
        for t in schema.tables
    )
    return schema.evolve(tables=tables, relationships=schema.relationships + (relationship,))


def _find_relationship(schema: Schema, table: str, column: str) -> Optional[Relationship]:
    for r in schema.relationships:
        if r.source_table == table and r.source_column == column:
            return r
    return None
