"""
Column and file descriptors

The contract between CSV parsing and inference: per-file headers, sampled
rows and per-column null/empty counts. ``None`` is a null; an empty string
is a distinct, empty value. Both count as missing.
"""
from __future__ import annotations

import csv
import io
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

from ..utils import InputError, get_logger

logger = get_logger(__name__)

DEFAULT_SAMPLE_SIZE = 1000
MAX_UNIQUE_VALUES = 100
SUPPORTED_DELIMITERS = ",;\t|"

Row = Sequence[Optional[str]]


def is_missing(value: Optional[str]) -> bool:
    return value is None or value.strip() == ""


@dataclass
class ColumnDescriptor:
    """Statistics and samples for a single column"""
    name: str
    index: int
    sample_values: List[Optional[str]] = field(default_factory=list)
    null_count: int = 0
    empty_count: int = 0
    total_count: int = 0
    unique_values: List[str] = field(default_factory=list)

    @property
    def missing_count(self) -> int:
        return self.null_count + self.empty_count

    @property
    def missing_ratio(self) -> float:
        return self.missing_count / self.total_count if self.total_count else 0.0

    def to_dict(self, max_samples: Optional[int] = None) -> Dict[str, Any]:
        uniques = self.unique_values if max_samples is None else self.unique_values[:max_samples]
        return {
            "name": self.name,
            "index": self.index,
            "null_count": self.null_count,
            "empty_count": self.empty_count,
            "total_count": self.total_count,
            "unique_values": list(uniques),
        }


@dataclass
class FileDescriptor:
    """Headers, sampled rows and per-column descriptors for one input file"""
    file_name: str
    headers: List[str]
    rows: List[List[Optional[str]]]
    total_rows: int
    columns: List[ColumnDescriptor] = field(default_factory=list)

    @classmethod
    def from_rows(
        cls,
        file_name: str,
        headers: Sequence[str],
        rows: Sequence[Row],
        total_rows: Optional[int] = None,
        sample_size: int = DEFAULT_SAMPLE_SIZE,
    ) -> "FileDescriptor":
        """
        Build a descriptor from parsed rows

        Args:
            file_name: Original file name (used to name the table)
            headers: Header row, in column order
            rows: Parsed data rows; short rows are padded with None
            total_rows: Row count of the full file when ``rows`` is already a sample
            sample_size: Maximum number of rows kept for inference
        """
        width = len(headers)
        sampled = [
            [row[i] if i < len(row) else None for i in range(width)]
            for row in list(rows)[:sample_size]
        ]

        columns = []
        for index, name in enumerate(headers):
            values = [row[index] for row in sampled]
            null_count = sum(1 for v in values if v is None)
            empty_count = sum(1 for v in values if v is not None and v.strip() == "")
            uniques: List[str] = []
            seen = set()
            for v in values:
                if is_missing(v):
                    continue
                v = v.strip()
                if v not in seen:
                    seen.add(v)
                    if len(uniques) < MAX_UNIQUE_VALUES:
                        uniques.append(v)
            columns.append(ColumnDescriptor(
                name=name,
                index=index,
                sample_values=values,
                null_count=null_count,
                empty_count=empty_count,
                total_count=len(values),
                unique_values=uniques,
            ))

        return cls(
            file_name=file_name,
            headers=list(headers),
            rows=sampled,
            total_rows=total_rows if total_rows is not None else len(rows),
            columns=columns,
        )

    @property
    def sampled_rows(self) -> int:
        return len(self.rows)

    def get_column(self, name: str) -> Optional[ColumnDescriptor]:
        for column in self.columns:
            if column.name == name:
                return column
        return None

    def to_dict(self, max_samples: Optional[int] = None) -> Dict[str, Any]:
        """Summary suitable for handing to an external collaborator"""
        return {
            "file_name": self.file_name,
            "headers": list(self.headers),
            "total_rows": self.total_rows,
            "columns": [c.to_dict(max_samples) for c in self.columns],
        }


def sniff_delimiter(sample: str) -> str:
    try:
        return csv.Sniffer().sniff(sample, delimiters=SUPPORTED_DELIMITERS).delimiter
    except csv.Error:
        return ","


def read_csv_text(
    text: str,
    file_name: str,
    sample_size: int = DEFAULT_SAMPLE_SIZE,
    delimiter: Optional[str] = None,
) -> FileDescriptor:
    """Parse CSV text; unquoted empty cells become empty strings"""
    if not text.strip():
        return FileDescriptor.from_rows(file_name, [], [], total_rows=0, sample_size=sample_size)

    delimiter = delimiter or sniff_delimiter(text[:8192])
    reader = csv.reader(io.StringIO(text), delimiter=delimiter)
    try:
        headers = [h.strip() for h in next(reader)]
    except StopIteration:
        headers = []
    except csv.Error as e:
        raise InputError(f"Malformed CSV header in {file_name}: {e}", file_name=file_name, original_error=e) from e

    rows: List[List[Optional[str]]] = []
    total = 0
    try:
        for row in reader:
            total += 1
            if len(rows) < sample_size:
                rows.append(list(row))
    except csv.Error as e:
        raise InputError(
            f"Malformed CSV in {file_name} at line {reader.line_num}: {e}",
            file_name=file_name,
            original_error=e,
        ) from e

    return FileDescriptor.from_rows(file_name, headers, rows, total_rows=total, sample_size=sample_size)


def load_csv(
    path: Union[str, Path],
    sample_size: int = DEFAULT_SAMPLE_SIZE,
    delimiter: Optional[str] = None,
    encoding: str = "utf-8-sig",
) -> FileDescriptor:
    """Read a CSV file from disk into a FileDescriptor"""
    path = Path(path)
    try:
        text = path.read_text(encoding=encoding)
    except (OSError, UnicodeDecodeError) as e:
        raise InputError(f"Cannot read {path}: {e}", file_name=path.name, original_error=e) from e

    descriptor = read_csv_text(text, path.name, sample_size=sample_size, delimiter=delimiter)
    logger.info(
        f"Loaded {path.name}: {len(descriptor.headers)} columns, {descriptor.total_rows} rows",
        extra={"extra_fields": {"file": path.name, "sampled": descriptor.sampled_rows}},
    )
    return descriptor
