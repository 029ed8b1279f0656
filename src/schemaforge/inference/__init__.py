"""
Type Inference Engine
"""
from .descriptors import ColumnDescriptor, FileDescriptor, load_csv, read_csv_text
from .structural import (
    ColumnAnalysis,
    FileAnalysis,
    analyze_file,
    inspect_headers,
    inspect_rows,
)
from .type_inference import InferenceResult, TypeInferrer, infer_column_type

__all__ = [
    "ColumnDescriptor",
    "FileDescriptor",
    "load_csv",
    "read_csv_text",
    "ColumnAnalysis",
    "FileAnalysis",
    "analyze_file",
    "inspect_headers",
    "inspect_rows",
    "InferenceResult",
    "TypeInferrer",
    "infer_column_type",
]
