"""
Suggestion providers

A provider takes the file descriptors produced by inference plus a use
case hint and returns a SchemaSuggestion. Providers may raise; the
schema builder treats any failure as a reason to fall back to the
rule-based schema.
"""
from __future__ import annotations

import json
import re
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

import yaml

from ..inference.descriptors import FileDescriptor
from ..utils import UpstreamSuggestionError, get_logger
from .models import SchemaSuggestion
from .normalize import parse_suggestion

logger = get_logger(__name__)

_FENCED_BLOCK = re.compile(r"```(?:json)?\s*(\{.*\})\s*```", re.DOTALL)

DEFAULT_MAX_SAMPLES = 20


def summarize_files(files: Sequence[FileDescriptor], max_samples: int = DEFAULT_MAX_SAMPLES) -> List[Dict[str, Any]]:
    """Descriptors in the capped form handed to a suggestion service"""
    return [f.to_dict(max_samples) for f in files]


def extract_json_object(text: str) -> Dict[str, Any]:
    """
    Pull the first JSON object out of a model reply

    Replies often wrap the object in a fenced code block or surround it
    with prose.
    """
    fenced = _FENCED_BLOCK.search(text)
    candidate = fenced.group(1) if fenced else text
    start, end = candidate.find("{"), candidate.rfind("}")
    if start == -1 or end <= start:
        raise UpstreamSuggestionError("Suggestion reply contains no JSON object")
    try:
        data = json.loads(candidate[start:end + 1])
    except json.JSONDecodeError as e:
        raise UpstreamSuggestionError(f"Suggestion reply is not valid JSON: {e.msg}", original_error=e) from e
    if not isinstance(data, dict):
        raise UpstreamSuggestionError("Suggestion reply must be a JSON object")
    return data


class SuggestionProvider(ABC):
    """Abstract base class for schema suggestion collaborators"""

    name = "provider"

    def __init__(self, max_samples: int = DEFAULT_MAX_SAMPLES):
        self.max_samples = max_samples

    @abstractmethod
    def suggest(
        self,
        files: Sequence[FileDescriptor],
        use_case_hint: Optional[str] = None,
    ) -> SchemaSuggestion:
        """Return a candidate schema for the given files"""
        pass

    def is_available(self) -> bool:
        return True

    def summarize(self, files: Sequence[FileDescriptor]) -> List[Dict[str, Any]]:
        return summarize_files(files, self.max_samples)


class StaticSuggestionProvider(SuggestionProvider):
    """
    Returns a fixed payload

    Useful for replaying a stored suggestion and for tests.
    """

    name = "static"

    def __init__(self, payload: Union[SchemaSuggestion, Dict[str, Any]], max_samples: int = DEFAULT_MAX_SAMPLES):
        super().__init__(max_samples)
        self.payload = payload

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "StaticSuggestionProvider":
        """Load a stored suggestion from a JSON or YAML file"""
        path = Path(path)
        try:
            with open(path, "r", encoding="utf-8") as f:
                text = f.read()
        except OSError as e:
            raise UpstreamSuggestionError(f"Cannot read suggestion file {path}: {e}", original_error=e) from e

        try:
            if path.suffix.lower() in (".yaml", ".yml"):
                data = yaml.safe_load(text)
            else:
                data = json.loads(text)
        except (yaml.YAMLError, json.JSONDecodeError) as e:
            raise UpstreamSuggestionError(f"Cannot parse suggestion file {path}: {e}", original_error=e) from e
        return cls(data)

    def suggest(
        self,
        files: Sequence[FileDescriptor],
        use_case_hint: Optional[str] = None,
    ) -> SchemaSuggestion:
        return parse_suggestion(self.payload)


class CallableSuggestionProvider(SuggestionProvider):
    """
    Adapts a plain function to the provider interface

    The function receives the summarized files and the hint and returns
    either a payload dict or the raw reply text of a language model.
    """

    name = "callable"

    def __init__(
        self,
        func: Callable[[List[Dict[str, Any]], Optional[str]], Union[str, Dict[str, Any]]],
        max_samples: int = DEFAULT_MAX_SAMPLES,
    ):
        super().__init__(max_samples)
        self.func = func

    def suggest(
        self,
        files: Sequence[FileDescriptor],
        use_case_hint: Optional[str] = None,
    ) -> SchemaSuggestion:
        reply = self.func(self.summarize(files), use_case_hint)
        if isinstance(reply, str):
            reply = extract_json_object(reply)
        logger.debug(f"Suggestion provider '{self.name}' replied")
        return parse_suggestion(reply)
