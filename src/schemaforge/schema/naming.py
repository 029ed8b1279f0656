"""
Identifier rules and name generation for PostgreSQL objects
"""
from __future__ import annotations

import re
from enum import Enum
from typing import Iterable, List, Optional

MAX_IDENTIFIER_LENGTH = 63

IDENTIFIER_PATTERN = re.compile(r"^[A-Za-z][A-Za-z0-9_]*$")

POSTGRES_RESERVED_WORDS = frozenset({
    'all', 'analyse', 'analyze', 'and', 'any', 'array', 'as', 'asc', 'asymmetric',
    'authorization', 'binary', 'both', 'case', 'cast', 'check', 'collate', 'collation',
    'column', 'concurrently', 'constraint', 'create', 'current_catalog', 'current_date',
    'current_role', 'current_schema', 'current_time', 'current_timestamp', 'current_user',
    'default', 'deferrable', 'desc', 'distinct', 'do', 'else', 'end', 'except', 'false',
    'fetch', 'for', 'foreign', 'freeze', 'from', 'full', 'grant', 'group', 'having',
    'ilike', 'in', 'initially', 'inner', 'intersect', 'into', 'is', 'isnull', 'join',
    'lateral', 'leading', 'left', 'like', 'limit', 'localtime', 'localtimestamp', 'natural',
    'not', 'notnull', 'null', 'offset', 'on', 'only', 'or', 'order', 'outer', 'overlaps',
    'placing', 'primary', 'references', 'returning', 'right', 'select', 'session_user',
    'similar', 'some', 'symmetric', 'table', 'tablesample', 'then', 'to', 'trailing',
    'true', 'union', 'unique', 'user', 'using', 'variadic', 'verbose', 'when', 'where',
    'window', 'with',
})

# Statement keywords that are legal identifiers in PostgreSQL but make
# hand-written queries against a CSV-derived table awkward.
SQL_STATEMENT_KEYWORDS = frozenset({
    'select', 'from', 'where', 'order', 'group', 'by', 'having', 'insert', 'update',
    'delete', 'create', 'drop', 'alter', 'table', 'database', 'index', 'view',
    'trigger', 'procedure', 'function',
})

_IRREGULAR_PLURALS = {
    "person": "people",
    "child": "children",
    "foot": "feet",
    "tooth": "teeth",
    "mouse": "mice",
    "goose": "geese",
}
_IRREGULAR_SINGULARS = {v: k for k, v in _IRREGULAR_PLURALS.items()}


class NamingConvention(str, Enum):
    """Identifier casing styles"""
    SNAKE_CASE = "snake_case"
    CAMEL_CASE = "camelCase"
    PASCAL_CASE = "PascalCase"
    OTHER = "other"


def is_reserved_word(name: str) -> bool:
    """True when the name is a PostgreSQL reserved keyword"""
    return name.lower() in POSTGRES_RESERVED_WORDS


def is_reserved_header(name: str) -> bool:
    """True when a CSV header collides with a reserved or statement keyword"""
    lowered = name.lower()
    return lowered in POSTGRES_RESERVED_WORDS or lowered in SQL_STATEMENT_KEYWORDS


def is_valid_identifier(name: Optional[str]) -> bool:
    """Check identifier grammar, length and reserved words"""
    if not name or len(name) > MAX_IDENTIFIER_LENGTH:
        return False
    if not IDENTIFIER_PATTERN.match(name):
        return False
    return not is_reserved_word(name)


def to_snake_case(text: str) -> str:
    """Convert an arbitrary label to snake_case

    Camel humps are split first so that ``customerId`` becomes
    ``customer_id`` rather than ``customerid``.
    """
    text = re.sub(r"([a-z0-9])([A-Z])", r"\1_\2", text.strip())
    text = re.sub(r"[^a-z0-9]", "_", text.lower())
    text = re.sub(r"_+", "_", text)
    return text.strip("_")


def to_pascal_case(text: str) -> str:
    parts = [p for p in re.split(r"[^A-Za-z0-9]", text.strip()) if p]
    return "".join(p[0].upper() + p[1:].lower() for p in parts)


def to_camel_case(text: str) -> str:
    pascal = to_pascal_case(text)
    return pascal[:1].lower() + pascal[1:]


def pluralize(word: str) -> str:
    lower = word.lower()
    if lower in _IRREGULAR_PLURALS:
        return _IRREGULAR_PLURALS[lower]
    if re.search(r"([sxz]|[cs]h)$", lower):
        return word + "es"
    if re.search(r"[^aeiou]y$", lower):
        return word[:-1] + "ies"
    return word + "s"


def singularize(word: str) -> str:
    lower = word.lower()
    if lower in _IRREGULAR_SINGULARS:
        return _IRREGULAR_SINGULARS[lower]
    if lower.endswith("ies") and len(lower) > 3:
        return word[:-3] + "y"
    if re.search(r"([sxz]|[cs]h)es$", lower):
        return word[:-2]
    if re.search(r"[^s]s$", lower):
        return word[:-1]
    return word


def sanitize_identifier(name: str, kind: str = "column") -> str:
    """
    Turn a free-form label into a valid PostgreSQL identifier

    Args:
        name: Raw label, e.g. a CSV header or file name
        kind: Object kind used for prefixes/placeholders ("table", "column", "index")
    """
    sanitized = to_snake_case(name)

    if not sanitized:
        sanitized = f"untitled_{kind}"

    if sanitized[0].isdigit():
        sanitized = f"{kind}_{sanitized}"

    if sanitized in POSTGRES_RESERVED_WORDS:
        sanitized = f"{sanitized}_value"

    if len(sanitized) > MAX_IDENTIFIER_LENGTH:
        sanitized = sanitized[:MAX_IDENTIFIER_LENGTH].rstrip("_")

    return sanitized


def table_name_from_file(file_name: str) -> str:
    """Derive a table name from a CSV file name"""
    stem = re.sub(r"\.(csv|tsv|txt)$", "", file_name.rsplit("/", 1)[-1], flags=re.IGNORECASE)
    return sanitize_identifier(stem, "table")


def unique_names(names: Iterable[str], kind: str = "column") -> List[str]:
    """Sanitize names and disambiguate duplicates with numeric suffixes"""
    seen = set()
    result = []
    for raw in names:
        base = sanitize_identifier(raw, kind)
        candidate = base
        n = 2
        while candidate in seen:
            candidate = f"{base}_{n}"
            n += 1
        seen.add(candidate)
        result.append(candidate)
    return result


def index_name(table: str, columns: Iterable[str], unique: bool = False) -> str:
    prefix = "uk" if unique else "idx"
    name = f"{prefix}_{table}_{'_'.join(list(columns)[:3])}"
    return name[:MAX_IDENTIFIER_LENGTH]


def foreign_key_name(table: str, column: str) -> str:
    return f"fk_{table}_{column}"[:MAX_IDENTIFIER_LENGTH]


def detect_naming_convention(name: str) -> NamingConvention:
    if re.match(r"^[a-z][a-z0-9]*(_[a-z0-9]+)*$", name):
        return NamingConvention.SNAKE_CASE
    if re.match(r"^[a-z][a-zA-Z0-9]*$", name):
        return NamingConvention.CAMEL_CASE
    if re.match(r"^[A-Z][a-zA-Z0-9]*$", name):
        return NamingConvention.PASCAL_CASE
    return NamingConvention.OTHER
