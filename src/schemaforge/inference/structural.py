"""
Structural checks on tabular input and per-file analysis
"""
from __future__ import annotations

import time
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from ..config import InferenceConfig
from ..schema.findings import Finding, FindingCode
from ..schema.naming import (
    IDENTIFIER_PATTERN,
    MAX_IDENTIFIER_LENGTH,
    is_reserved_header,
    table_name_from_file,
    unique_names,
)
from ..utils import SchemaForgeMetrics, get_logger
from .descriptors import FileDescriptor, Row, is_missing
from .patterns import ValueFormat, classify_value
from .type_inference import InferenceResult, TypeInferrer

logger = get_logger(__name__)

# Formats that legitimately mix within one column
_COMPATIBLE_FORMATS = {
    frozenset({ValueFormat.INTEGER, ValueFormat.DECIMAL}),
    frozenset({ValueFormat.DATE, ValueFormat.TIMESTAMP}),
    frozenset({ValueFormat.DATE, ValueFormat.TIMESTAMPTZ}),
    frozenset({ValueFormat.TIMESTAMP, ValueFormat.TIMESTAMPTZ}),
    frozenset({ValueFormat.INTEGER, ValueFormat.BOOLEAN}),
}


def inspect_headers(headers: Sequence[Optional[str]]) -> List[Finding]:
    """Report empty, duplicate, reserved, oddly named and overlong headers"""
    findings: List[Finding] = []

    empty = [i for i, h in enumerate(headers) if h is None or h.strip() == ""]
    if empty:
        findings.append(Finding.warning(
            FindingCode.EMPTY_HEADERS,
            f"Found {len(empty)} empty header(s) at position(s) {', '.join(str(i + 1) for i in empty)}",
            suggestion="Replace empty headers with descriptive column names",
            auto_fixable=True,
        ))

    counts = Counter(h for h in headers if h and h.strip())
    duplicates = sorted(h for h, n in counts.items() if n > 1)
    if duplicates:
        findings.append(Finding.error(
            FindingCode.DUPLICATE_HEADERS,
            f"Found duplicate headers: {', '.join(duplicates)}",
            suggestion="Ensure all column headers are unique",
            auto_fixable=True,
        ))

    for header in headers:
        if not header or not header.strip():
            continue
        if is_reserved_header(header):
            findings.append(Finding.warning(
                FindingCode.SQL_RESERVED_WORD,
                f"Header {header!r} is a SQL reserved word",
                column=header,
                suggestion=f"Consider renaming to {header.lower()}_column",
                auto_fixable=True,
            ))
        if not IDENTIFIER_PATTERN.match(header):
            findings.append(Finding.info(
                FindingCode.HEADER_NAMING,
                f"Header {header!r} contains special characters or doesn't follow naming conventions",
                column=header,
                suggestion="Use alphanumeric characters and underscores only, starting with a letter",
                auto_fixable=True,
            ))
        if len(header) > MAX_IDENTIFIER_LENGTH:
            findings.append(Finding.warning(
                FindingCode.HEADER_TOO_LONG,
                f"Header {header[:20]!r}... exceeds PostgreSQL identifier limit ({MAX_IDENTIFIER_LENGTH} characters)",
                column=header,
                suggestion="Shorten the header name or use abbreviations",
                auto_fixable=True,
            ))

    return findings


def inspect_rows(
    headers: Sequence[str],
    rows: Sequence[Row],
    config: Optional[InferenceConfig] = None,
) -> List[Finding]:
    """Report empty rows, missing data and mixed value formats"""
    config = config or InferenceConfig()
    findings: List[Finding] = []

    if not rows:
        findings.append(Finding.error(
            FindingCode.NO_DATA,
            "File contains no data rows",
            suggestion="Provide at least one data row so column types can be inferred",
        ))
        return findings

    empty_rows = sum(1 for row in rows if all(is_missing(v) for v in row))
    if empty_rows:
        findings.append(Finding.warning(
            FindingCode.EMPTY_ROWS,
            f"Found {empty_rows} completely empty row(s)",
            suggestion="Remove empty rows",
            auto_fixable=True,
        ))

    for index, header in enumerate(headers):
        values = [row[index] if index < len(row) else None for row in rows]
        missing = sum(1 for v in values if is_missing(v))
        ratio = missing / len(values)
        if ratio > config.high_missing_ratio:
            findings.append(Finding.warning(
                FindingCode.HIGH_MISSING_DATA,
                f"Column {header!r} has {ratio * 100:.1f}% missing values",
                column=header,
                suggestion="Consider providing default values or making this column optional",
            ))
        elif ratio > config.moderate_missing_ratio:
            findings.append(Finding.info(
                FindingCode.MODERATE_MISSING_DATA,
                f"Column {header!r} has {ratio * 100:.1f}% missing values",
                column=header,
                suggestion="Review data collection process for this column",
            ))

        formats = {classify_value(v.strip()) for v in values if not is_missing(v)}
        if len(formats) > 1 and frozenset(formats) not in _COMPATIBLE_FORMATS:
            findings.append(Finding.info(
                FindingCode.INCONSISTENT_FORMAT,
                f"Column {header!r} mixes value formats: {', '.join(sorted(f.value for f in formats))}",
                column=header,
                suggestion="Standardize the values or the column will be stored as text",
            ))

    return findings


@dataclass
class ColumnAnalysis:
    """Inference outcome for one source column"""
    header: str
    column_name: str
    result: InferenceResult

    def to_dict(self) -> Dict[str, Any]:
        return {"header": self.header, "column_name": self.column_name, **self.result.to_dict()}


@dataclass
class FileAnalysis:
    """Everything inference learned about one file"""
    file: FileDescriptor
    table_name: str
    columns: List[ColumnAnalysis] = field(default_factory=list)
    findings: List[Finding] = field(default_factory=list)

    @property
    def has_errors(self) -> bool:
        return any(f.is_error for f in self.findings)

    def get_column(self, column_name: str) -> Optional[ColumnAnalysis]:
        for column in self.columns:
            if column.column_name == column_name:
                return column
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "file_name": self.file.file_name,
            "table_name": self.table_name,
            "total_rows": self.file.total_rows,
            "columns": [c.to_dict() for c in self.columns],
            "findings": [f.to_dict() for f in self.findings],
        }


def analyze_file(file: FileDescriptor, config: Optional[InferenceConfig] = None) -> FileAnalysis:
    """Infer every column of a file and collect structural findings"""
    config = config or InferenceConfig()
    inferrer = TypeInferrer(config)
    start = time.perf_counter()

    findings = inspect_headers(file.headers) + inspect_rows(file.headers, file.rows, config)
    names = unique_names(file.headers, "column")

    columns = []
    for descriptor, name in zip(file.columns, names):
        result = inferrer.infer(
            descriptor.sample_values,
            null_count=descriptor.missing_count,
            total_count=descriptor.total_count,
        )
        columns.append(ColumnAnalysis(header=descriptor.name, column_name=name, result=result))

    analysis = FileAnalysis(
        file=file,
        table_name=table_name_from_file(file.file_name),
        columns=columns,
        findings=findings,
    )

    duration = time.perf_counter() - start
    SchemaForgeMetrics.record_file_analysis(
        duration, [c.result.data_type.value for c in columns], len(findings)
    )
    logger.info(
        f"Analyzed {file.file_name}: {len(columns)} columns, {len(findings)} findings",
        extra={"extra_fields": {
            "file": file.file_name,
            "table": analysis.table_name,
            "columns": len(columns),
            "findings": len(findings),
        }},
    )
    return analysis
