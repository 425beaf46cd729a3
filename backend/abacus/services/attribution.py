"""AI-attribution detection for commit metadata."""

import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass

from abacus.config import AttributionRuleConfig
from abacus.schemas.records import Attribution

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AttributionRule:
    """
    A pattern that marks a commit as AI-assisted.

    Message rules run against the commit message, author rules against
    "<author name> <author email>". A named group `model` in the pattern
    supplies the model (e.g. "Opus 4.5" -> "opus-4.5").
    """

    pattern: re.Pattern[str]
    tool: str
    model: str | None = None
    field: str = "message"

    @classmethod
    def compile(cls, pattern: str, tool: str, model: str | None = None, field: str = "message"):
        return cls(re.compile(pattern, re.IGNORECASE), tool, model, field)

    @property
    def source(self) -> str:
        if self.field == "author":
            return "author_field"
        if "co-authored-by" in self.pattern.pattern.lower():
            return "co_author"
        return "message_pattern"

    def extract_model(self, match: re.Match[str]) -> str | None:
        if "model" in self.pattern.groupindex:
            part = (match.group("model") or "").strip()
            # "Code" is the product name, not a model
            if part and part.lower() != "code":
                return re.sub(r"\s+", "-", part.lower())
            return None
        return self.model


_VERBS = r"(?:generated|written|created|assisted) (?:with|using|by)"

DEFAULT_RULES: list[AttributionRule] = [
    # Claude Code
    AttributionRule.compile(
        r"Co-Authored-By:\s+Claude\b(?P<model>[^<]*)<[^>]+@anthropic\.com>", "claude_code"
    ),
    AttributionRule.compile(r"Generated with \[Claude Code\]", "claude_code"),
    AttributionRule.compile(rf"{_VERBS} Claude\b", "claude_code"),
    # OpenAI Codex
    AttributionRule.compile(r"Co-Authored-By:\s+Codex\b[^<]*<[^>]+>", "codex"),
    AttributionRule.compile(rf"{_VERBS} Codex\b", "codex"),
    AttributionRule.compile(r"\bCodex (?:assisted|generated|helped)", "codex"),
    # GitHub Copilot
    AttributionRule.compile(r"Co-Authored-By:\s+(?:GitHub )?Copilot\b[^<]*<[^>]+>", "github_copilot"),
    AttributionRule.compile(rf"{_VERBS} (?:GitHub )?Copilot\b", "github_copilot"),
    AttributionRule.compile(
        r"\b(?:GitHub )?Copilot (?:assisted|generated|helped|suggestion)", "github_copilot"
    ),
    AttributionRule.compile(r"\bAccepted (?:GitHub )?Copilot suggestion", "github_copilot"),
    # Cursor
    AttributionRule.compile(r"Co-Authored-By:\s+Cursor\b[^<]*<[^>]+>", "cursor"),
    AttributionRule.compile(rf"{_VERBS} Cursor\b", "cursor"),
    AttributionRule.compile(r"\bCursor (?:AI )?(?:assisted|generated|helped|completion)", "cursor"),
    # Windsurf (Codeium)
    AttributionRule.compile(r"Co-Authored-By:\s+(?:Windsurf|Codeium)\b[^<]*<[^>]+>", "windsurf"),
    AttributionRule.compile(rf"{_VERBS} (?:Windsurf|Codeium)\b", "windsurf"),
    AttributionRule.compile(r"\b(?:Windsurf|Codeium) (?:AI )?(?:assisted|generated|helped)", "windsurf"),
    # Copilot coding agent commits as its own author
    AttributionRule.compile(r"copilot-swe-agent\[bot\]", "github_copilot", field="author"),
]


class AttributionDetector:
    """Detects every AI tool named by a commit, one attribution per tool."""

    def __init__(self, rules: Iterable[AttributionRule] | None = None):
        self.rules = list(rules) if rules is not None else list(DEFAULT_RULES)

    @classmethod
    def from_config(cls, extra: Iterable[AttributionRuleConfig]) -> "AttributionDetector":
        """Configured rules take precedence over the defaults."""
        custom = []
        for rule in extra:
            try:
                custom.append(AttributionRule.compile(rule.pattern, rule.tool, rule.model, rule.field))
            except re.error as e:
                logger.warning(f"Ignoring invalid attribution pattern {rule.pattern!r}: {e}")
        return cls([*custom, *DEFAULT_RULES])

    def detect(
        self,
        message: str | None,
        author_name: str | None = None,
        author_email: str | None = None,
    ) -> list[Attribution]:
        """
        Run all rules against a commit.

        Returns:
            Attributions in rule order; the first is the primary one.
            Empty for human-authored commits.
        """
        author = f"{author_name or ''} {author_email or ''}"
        attributions: list[Attribution] = []
        seen: set[str] = set()

        for rule in self.rules:
            if rule.tool in seen:
                continue
            text = author if rule.field == "author" else (message or "")
            match = rule.pattern.search(text)
            if match:
                seen.add(rule.tool)
                attributions.append(Attribution(rule.tool, rule.extract_model(match), rule.source))

        return attributions
