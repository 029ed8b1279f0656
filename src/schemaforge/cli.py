"""
SchemaForge command line interface

Examples:
    schemaforge analyze customers.csv orders.csv
    schemaforge generate customers.csv orders.csv --target migration --target prisma --out generated
    schemaforge generate data.csv --suggestion suggestion.json --target typescript
    schemaforge validate schema.yaml
    schemaforge targets
"""
from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import List, Optional

from . import __version__
from .config import SystemConfig, set_config
from .emit import available_targets
from .pipeline import SchemaPipeline
from .schema.findings import Finding
from .schema.models import Schema
from .schema.validator import SchemaValidator
from .suggestion import StaticSuggestionProvider
from .utils import SchemaForgeError, format_error, setup_logging


def _load_config(path: Optional[str]) -> SystemConfig:
    config = SystemConfig.from_yaml(path) if path else SystemConfig.from_env()
    set_config(config)
    return config


def _print_findings(findings: List[Finding]) -> None:
    for finding in findings:
        print(f"  {finding}")
        if finding.suggestion:
            print(f"      -> {finding.suggestion}")


def cmd_analyze(args: argparse.Namespace, config: SystemConfig) -> int:
    pipeline = SchemaPipeline(config)
    analyses = pipeline.analyze(pipeline.load(args.files))

    if args.json:
        print(json.dumps([a.to_dict() for a in analyses], indent=2))
        return 0

    for analysis in analyses:
        print(f"{analysis.file.file_name} -> {analysis.table_name} ({analysis.file.total_rows} rows)")
        width = max((len(c.column_name) for c in analysis.columns), default=0)
        for column in analysis.columns:
            result = column.result
            nullable = "NULL" if result.nullable else "NOT NULL"
            print(
                f"  {column.column_name.ljust(width)}  {result.data_type.value:<16} {nullable:<8}"
                f"  confidence={result.confidence:.2f}"
            )
        if analysis.findings:
            print("  findings:")
            _print_findings(analysis.findings)
    return 1 if any(a.has_errors for a in analyses) else 0


def cmd_generate(args: argparse.Namespace, config: SystemConfig) -> int:
    if args.schema_name or args.down:
        updates = {}
        if args.schema_name:
            updates["schema_name"] = args.schema_name
        if args.down:
            updates["include_down"] = True
        config = config.model_copy(update={"emitter": config.emitter.model_copy(update=updates)})

    provider = StaticSuggestionProvider.from_file(args.suggestion) if args.suggestion else None
    pipeline = SchemaPipeline(config)
    result = pipeline.run_paths(
        args.files,
        targets=args.target or ["migration"],
        provider=provider,
        use_case_hint=args.use_case,
        name=args.name,
    )

    source = result.outcome.source.value if result.outcome else "unknown"
    print(f"Schema '{result.schema.name}' ({source}): {len(result.schema.tables)} tables")
    if result.findings or result.validation.findings:
        print("Findings:")
        _print_findings(result.findings + result.validation.findings)

    out_dir = Path(args.out or config.emitter.output_dir)
    for path in result.write(out_dir):
        print(f"  wrote {path}")
    if args.save_schema:
        result.schema.save(out_dir / args.save_schema)
        print(f"  wrote {out_dir / args.save_schema}")

    for target, reason in result.failed_targets.items():
        print(f"  {target} failed: {reason}", file=sys.stderr)
    return 1 if result.failed_targets else 0


def cmd_validate(args: argparse.Namespace, config: SystemConfig) -> int:
    schema = Schema.load(args.schema)
    result = SchemaValidator(config=config.validation).validate(schema)

    if args.json:
        print(json.dumps(result.to_dict(), indent=2))
    else:
        status = "valid" if result.is_valid else "invalid"
        print(f"Schema '{schema.name}' is {status}: "
              f"{len(result.errors)} errors, {len(result.warnings)} warnings, {len(result.infos)} notes")
        _print_findings(result.findings)
    return 0 if result.is_valid else 1


def cmd_targets(args: argparse.Namespace, config: SystemConfig) -> int:
    for info in available_targets():
        print(f"{info.target.value:<12} {info.extension:<10} {info.description}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="schemaforge",
        description="Infer a PostgreSQL schema from CSV files and generate code from it",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--config", help="YAML configuration file (default: environment)")
    parser.add_argument("--log-level", default=None, help="Override the configured log level")
    subparsers = parser.add_subparsers(dest="command", required=True)

    analyze = subparsers.add_parser("analyze", help="Infer column types and report structural findings")
    analyze.add_argument("files", nargs="+", help="CSV files")
    analyze.add_argument("--json", action="store_true", help="Print the analysis as JSON")
    analyze.set_defaults(handler=cmd_analyze)

    generate = subparsers.add_parser("generate", help="Build a schema and emit artifacts")
    generate.add_argument("files", nargs="+", help="CSV files")
    generate.add_argument(
        "--target", "-t", action="append",
        help="Target format (repeatable, default: migration); see 'schemaforge targets'",
    )
    generate.add_argument("--out", "-o", help="Output directory")
    generate.add_argument("--name", help="Schema name")
    generate.add_argument("--suggestion", help="Stored schema suggestion (JSON or YAML)")
    generate.add_argument("--use-case", help="Use case hint for the suggestion provider")
    generate.add_argument("--schema-name", help="PostgreSQL namespace for emitted SQL")
    generate.add_argument("--down", action="store_true", help="Also write a down migration")
    generate.add_argument("--save-schema", help="Also save the schema model under this file name")
    generate.set_defaults(handler=cmd_generate)

    validate = subparsers.add_parser("validate", help="Validate a saved schema model")
    validate.add_argument("schema", help="Schema file (YAML or JSON)")
    validate.add_argument("--json", action="store_true", help="Print the result as JSON")
    validate.set_defaults(handler=cmd_validate)

    targets = subparsers.add_parser("targets", help="List supported target formats")
    targets.set_defaults(handler=cmd_targets)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = _load_config(args.config)
        setup_logging(level=args.log_level or config.log_level, json_format=config.log_json)
        return args.handler(args, config)
    except SchemaForgeError as e:
        print(format_error(e), file=sys.stderr)
        return 2
    except (OSError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
