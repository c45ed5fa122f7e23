"""
Structured output extraction.

Models are asked for bare JSON but routinely wrap it in prose, markdown
fences or ``<think>`` blocks. ``decode`` recovers the payload and validates
it against a schema. Recovery runs in a fixed order, each step only when the
previous one failed:

1. Direct decode of the stripped text.
2. Fence/boundary extraction: body of a ```json fence if present, then the
   first balanced ``{...}`` / ``[...]`` span (brackets inside strings ignored).
3. Reasoning-tag removal on the original text, then extraction again.
4. Re-decode; failing that, raise LLMDecodeError with a bounded preview.

Everything here is pure: no I/O, no logging, no shared state besides a
cache of pydantic TypeAdapters.
"""

from __future__ import annotations

import re
from functools import lru_cache
from typing import Any, Dict, Optional, Tuple, Type, TypeVar

from pydantic import BaseModel, ConfigDict, TypeAdapter, ValidationError, model_validator
from pydantic.alias_generators import to_camel

from exceptions import LLMDecodeError

T = TypeVar("T")

_FENCE_RE = re.compile(r"```(?:json)?[ \t]*\r?\n?(.*?)\s*```", re.IGNORECASE | re.DOTALL)
_OPEN_FENCE_RE = re.compile(r"^```(?:json)?[ \t]*\r?\n?", re.IGNORECASE)
_REASONING_RE = re.compile(r"<(think|thinking|reasoning)\b[^>]*>.*?</\1\s*>", re.IGNORECASE | re.DOTALL)

_CLOSERS = {"{": "}", "[": "]"}


def _fold(name: str) -> str:
    return name.replace("_", "").replace("-", "").lower()


class StructuredModel(BaseModel):
    """
    Base for schemas decoded from model output.

    Field names are matched case-insensitively and regardless of
    snake/camel case, so ``storyParts``, ``StoryParts`` and ``story_parts``
    all populate ``story_parts``. Serializing with ``by_alias=True`` yields
    camelCase keys.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    @model_validator(mode="before")
    @classmethod
    def match_field_names(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data

        lookup = _field_lookup(cls)
        matched: Dict[Any, Any] = {}
        for key, value in data.items():
            target = lookup.get(_fold(key), key) if isinstance(key, str) else key
            matched.setdefault(target, value)
        return matched


@lru_cache(maxsize=None)
def _field_lookup(model: Type[BaseModel]) -> Dict[str, str]:
    lookup: Dict[str, str] = {}
    for name, info in model.model_fields.items():
        lookup[_fold(name)] = name
        if info.alias:
            lookup[_fold(info.alias)] = name
    return lookup


@lru_cache(maxsize=None)
def _adapter_for(schema: Any) -> TypeAdapter:
    return TypeAdapter(schema)


def strip_code_fence(text: str) -> str:
    """
    Return the body of the first triple-backtick fence, or ``text`` unchanged.

    An opening fence without a closing one (truncated output) is also removed.
    """
    match = _FENCE_RE.search(text)
    if match:
        return match.group(1).strip()
    stripped = text.strip()
    if stripped.startswith("```"):
        return _OPEN_FENCE_RE.sub("", stripped, count=1).strip()
    return text


def strip_reasoning(text: str) -> str:
    """Remove ``<think>...</think>``-style blocks (case-insensitive, multi-line)."""
    return _REASONING_RE.sub("", text).strip()


def find_json_span(text: str) -> Optional[str]:
    """
    Slice the first balanced JSON object or array out of ``text``.

    Brackets inside string literals (with escape handling) do not count
    toward depth. Returns None when there is no opening bracket or the
    brackets never balance.

    Examples:
        >>> find_json_span('prefix {"a":"}{"} suffix')
        '{"a":"}{"}'
    """
    start = -1
    for index, char in enumerate(text):
        if char in _CLOSERS:
            start = index
            break
    if start < 0:
        return None

    expected: list[str] = []
    in_string = False
    escaped = False
    for index in range(start, len(text)):
        char = text[index]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue

        if char == '"':
            in_string = True
        elif char in _CLOSERS:
            expected.append(_CLOSERS[char])
        elif char in ("}", "]"):
            if not expected or expected[-1] != char:
                return None
            expected.pop()
            if not expected:
                return text[start : index + 1]
    return None


def extract_json_candidate(text: str) -> Optional[str]:
    """Apply fence stripping then balanced-span extraction."""
    body = strip_code_fence(text)
    span = find_json_span(body)
    if span is not None:
        return span
    return body if body != text else None


def _try_decode(adapter: TypeAdapter, candidate: Optional[str]) -> Tuple[bool, Any]:
    if candidate is None:
        return False, None
    try:
        return True, adapter.validate_json(candidate)
    except ValidationError:
        return False, None


def decode(raw_text: str, schema: Type[T]) -> T:
    """
    Decode model output into ``schema``.

    Args:
        raw_text: Raw reply text from the model
        schema: A pydantic model class, or any type a TypeAdapter accepts

    Returns:
        The validated value

    Raises:
        LLMDecodeError: If no recovery step produces a valid value
    """
    adapter = _adapter_for(schema)
    text = (raw_text or "").strip()

    ok, value = _try_decode(adapter, text)
    if ok:
        return value

    ok, value = _try_decode(adapter, extract_json_candidate(text))
    if ok:
        return value

    cleaned = strip_reasoning(text)
    ok, value = _try_decode(adapter, extract_json_candidate(cleaned))
    if ok:
        return value

    raise LLMDecodeError(raw_text or "", getattr(schema, "__name__", str(schema)))


def encode(value: Any) -> str:
    """Canonical JSON for a decoded value (camelCase keys for StructuredModel)."""
    if isinstance(value, BaseModel):
        return value.model_dump_json(by_alias=True)
    return _adapter_for(type(value)).dump_json(value).decode("utf-8")
