"""Canonicalization of provider model identifiers."""

import re
from typing import NamedTuple

MODEL_DEFAULT = "(default)"

_DEFAULT_ALIASES = {"", "default", "auto", "unknown"}

_SUFFIX_RE = re.compile(r"\s*(?:\(([^)]+)\)|\[([^\]]+)\])\s*$")

_SUFFIX_QUALIFIERS = {
    "t": "thinking",
    "thinking": "thinking",
    "ht": "high-thinking",
    "high thinking": "high-thinking",
    "high-thinking": "high-thinking",
}

# (pattern, replacement template, qualifier); first match wins
_RULES: list[tuple[re.Pattern[str], str, str | None]] = [
    # claude-3-5-haiku-20241022 -> haiku-3.5
    (re.compile(r"^claude-(\d+)-(\d+)-([a-z]+)-\d{8}$"), r"\3-\1.\2", None),
    # claude-sonnet-4-20250514 -> sonnet-4
    (re.compile(r"^claude-([a-z]+)-(\d+)-\d{8}$"), r"\1-\2", None),
    # claude-opus-4-5-20251101 -> opus-4.5
    (re.compile(r"^claude-([a-z]+)-(\d+)-(\d+)-\d{8}$"), r"\1-\2.\3", None),
    # 3-5-haiku-20241022 -> haiku-3.5
    (re.compile(r"^(\d+)-(\d+)-([a-z]+)-\d{8}$"), r"\3-\1.\2", None),
    # claude-4-sonnet-high-thinking -> sonnet-4
    (re.compile(r"^claude-(\d+(?:\.\d+)?)-([a-z]+)-high-thinking$"), r"\2-\1", "high-thinking"),
    # claude-4-sonnet-thinking -> sonnet-4
    (re.compile(r"^claude-(\d+(?:\.\d+)?)-([a-z]+)-thinking$"), r"\2-\1", "thinking"),
    # claude-4.5-opus -> opus-4.5
    (re.compile(r"^claude-(\d+(?:\.\d+)?)-([a-z]+)$"), r"\2-\1", None),
    # 4-sonnet -> sonnet-4
    (re.compile(r"^(\d+(?:\.\d+)?)-([a-z]+)$"), r"\2-\1", None),
]

_BARE_VERSION_RE = re.compile(r"^\d+(?:\.\d+)?$")


class ModelName(NamedTuple):
    """A canonical model name and an optional variant qualifier."""

    base: str
    qualifier: str | None = None


def parse_model_name(raw: str | None) -> ModelName:
    """
    Canonicalize a provider model identifier.

    Date suffixes are stripped, thinking variants collapse to their base
    model with a qualifier, and empty/default/auto/unknown map to
    MODEL_DEFAULT. Unrecognized identifiers are returned lower-cased.

    >>> parse_model_name("claude-3-5-haiku-20241022")
    ModelName(base='haiku-3.5', qualifier=None)
    >>> parse_model_name("claude-4-sonnet-thinking")
    ModelName(base='sonnet-4', qualifier='thinking')
    """
    normalized = (raw or "").strip().lower()
    if normalized in _DEFAULT_ALIASES:
        return ModelName(MODEL_DEFAULT)

    qualifier: str | None = None
    suffix = _SUFFIX_RE.search(normalized)
    if suffix:
        content = (suffix.group(1) or suffix.group(2)).strip()
        qualifier = _SUFFIX_QUALIFIERS.get(content, content)
        normalized = normalized[: suffix.start()].strip()

    for pattern, template, rule_qualifier in _RULES:
        match = pattern.match(normalized)
        if match:
            normalized = match.expand(template)
            qualifier = rule_qualifier or qualifier
            break

    if _BARE_VERSION_RE.match(normalized):
        normalized = f"sonnet-{normalized}"

    return ModelName(normalized or MODEL_DEFAULT, qualifier)
