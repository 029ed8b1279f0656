#!/usr/bin/env python3
"""
Basic Usage Example for SchemaForge

This example demonstrates:
1. Writing two small CSV files
2. Building a rule-based schema and emitting a migration
3. Replaying a stored suggestion through a provider
4. Handling targets that cannot represent a column type
"""
import sys
import os
import tempfile
from pathlib import Path

# Add src to path for local development
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from schemaforge import (
    CallableSuggestionProvider,
    create_pipeline,
    setup_logging,
)


CUSTOMERS = """id,name,email,signup_date
1,Alice,alice@example.com,2024-01-15
2,Bob,bob@example.com,2024-02-01
3,Charlie,charlie@example.com,2024-03-10
"""

ORDERS = """id,customer_id,product_name,quantity,total_amount,status
1,1,Laptop,1,999.99,completed
2,1,Mouse,2,49.98,completed
3,2,Keyboard,1,79.99,pending
"""


def suggest(summaries, hint):
    """Stand-in for a model call; returns a reply the way a model would"""
    tables = ", ".join(s["file_name"] for s in summaries)
    return f"""Here is a schema for {tables} ({hint}):
```json
{{
  "name": "shop",
  "confidence": 0.85,
  "tables": [
    {{"name": "customers", "columns": [
      {{"name": "id", "type": "uuid", "constraints": ["PRIMARY KEY", "DEFAULT gen_random_uuid()"]}},
      {{"name": "email", "type": "varchar(255)", "nullable": false, "constraints": ["UNIQUE"]}}
    ]}},
    {{"name": "orders", "columns": [
      {{"name": "id", "type": "uuid", "constraints": ["PRIMARY KEY"]}},
      {{"name": "customer_id", "type": "uuid", "nullable": false,
        "constraints": ["REFERENCES customers(id) ON DELETE CASCADE"]}},
      {{"name": "total_amount", "type": "money"}}
    ]}}
  ]
}}
```"""


def main():
    # Setup logging
    setup_logging(level="WARNING")

    print("=" * 60)
    print("SchemaForge - Basic Usage Example")
    print("=" * 60)

    work_dir = Path(tempfile.mkdtemp(prefix="schemaforge_"))
    print(f"\n1. Writing sample CSV files to {work_dir}...")
    paths = []
    for name, content in (("customers.csv", CUSTOMERS), ("orders.csv", ORDERS)):
        path = work_dir / name
        path.write_text(content, encoding="utf-8")
        paths.append(path)

    print("\n2. Building a rule-based schema...")
    pipeline = create_pipeline(include_down=True)
    result = pipeline.run_paths(paths, targets=["migration", "mermaid"])

    for analysis in result.analyses:
        print(f"   {analysis.file.file_name} -> {analysis.table_name}")
        for column in analysis.columns:
            print(f"      {column.column_name:<14} {column.result.data_type.value}")

    print(f"\n   Valid: {result.is_valid}")
    print(f"   Table order: {' -> '.join(result.dependency_order.order)}")
    print("\n   Migration:")
    print(result.artifacts["migration"][0].content)
    print("   Diagram:")
    print(result.artifacts["mermaid"][0].content)

    print("\n3. Using a suggestion provider...")
    provider = CallableSuggestionProvider(suggest)
    result = pipeline.run_paths(
        paths,
        targets=["migration", "prisma"],
        provider=provider,
        use_case_hint="online shop",
    )
    print(f"   Schema source: {result.outcome.source.value} (confidence {result.outcome.confidence:.2f})")

    print("\n4. Targets that could not be emitted:")
    for target, reason in result.failed_targets.items():
        print(f"   {target}: {reason}")

    written = result.write(work_dir / "generated")
    print(f"\n   Wrote {len(written)} file(s) to {work_dir / 'generated'}")

    print("\n" + "=" * 60)
    print("Example completed!")
    print("=" * 60)


if __name__ == "__main__":
    main()
