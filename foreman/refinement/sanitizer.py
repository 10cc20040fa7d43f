"""
Deterministic sanitizer for generated artifacts.

Mechanically removes formatting artifacts that model output often carries
(explanatory preambles, markdown fences, typographic punctuation,
invisible characters) so refinement cycles are not spent on them. No
generation calls are made.
"""

import hashlib
import re
from collections.abc import Callable
from dataclasses import dataclass, field


@dataclass
class FixResult:
    """Result of one sanitizer fix."""

    text: str
    changed: bool
    description: str


@dataclass
class SanitizerSummary:
    """Sanitized text plus what was changed."""

    sanitized: str
    changes_made: list[str] = field(default_factory=list)
    functions_triggered: int = 0
    pre_size: int = 0
    post_size: int = 0
    pre_hash: str = ""
    post_hash: str = ""

    @property
    def telemetry(self) -> dict[str, int | str]:
        """Telemetry in plain-data form."""
        return {
            "functions_triggered": self.functions_triggered,
            "pre_size": self.pre_size,
            "post_size": self.post_size,
            "pre_hash": self.pre_hash,
            "post_hash": self.post_hash,
        }


SanitizerFix = Callable[[str], FixResult]

_FENCED_BLOCK = re.compile(r"```[\w+-]*[ \t]*\n(.*?)\n?```", re.DOTALL)
_FENCE_LINE = re.compile(r"^[ \t]*```[\w+-]*[ \t]*$\n?", re.MULTILINE)
_PROSE_LINE = re.compile(
    r"^\s*(?:here(?:'s| is| are)\b|below is\b|the following\b|sure[,!.]|certainly[,!.]"
    r"|i(?:'ve| have) (?:fixed|updated|corrected)\b|#{2,6}\s)",
    re.IGNORECASE,
)
_INVISIBLE = re.compile("[\u200b-\u200d\ufeff\x00-\x08\x0b\x0c\x0e-\x1f]")


# =============================================================================
# FIXES
# =============================================================================


def extract_fenced_code(text: str) -> FixResult:
    """Keep only the code when the artifact is prose wrapped around a fence."""
    blocks = _FENCED_BLOCK.findall(text)
    if not blocks:
        return FixResult(text, False, "")
    code = max(blocks, key=len)
    if code.strip() == text.strip():
        return FixResult(text, False, "")
    return FixResult(code, True, "Extracted code from markdown response")


def strip_leading_prose(text: str) -> FixResult:
    """Drop explanatory or heading lines before the first line of code."""
    lines = text.split("\n")
    start = 0
    while start < len(lines) and (not lines[start].strip() or _PROSE_LINE.match(lines[start])):
        start += 1
    if start == 0 or start == len(lines):
        return FixResult(text, False, "")
    return FixResult("\n".join(lines[start:]), True, "Leading explanatory text removed")


def remove_fence_markers(text: str) -> FixResult:
    """Remove leftover ``` fence lines."""
    replaced = _FENCE_LINE.sub("", text)
    return FixResult(replaced, replaced != text, "Markdown code fences removed")


def fix_smart_quotes(text: str) -> FixResult:
    """Replace curly quotes with ASCII quotes."""
    replaced = (
        text.replace("\u201c", '"')
        .replace("\u201d", '"')
        .replace("\u2018", "'")
        .replace("\u2019", "'")
    )
    return FixResult(replaced, replaced != text, "Smart quotes -> ASCII")


def fix_dashes(text: str) -> FixResult:
    """Replace em dash, en dash and minus sign with a hyphen."""
    replaced = re.sub("[\u2014\u2013\u2212]", "-", text)
    return FixResult(replaced, replaced != text, "Em/en dashes -> hyphens")


def strip_invisible_chars(text: str) -> FixResult:
    """Remove zero-width characters, BOMs and control characters."""
    replaced = _INVISIBLE.sub("", text)
    return FixResult(replaced, replaced != text, "Zero-width/control chars removed")


def strip_duplicate_exports(text: str) -> FixResult:
    """Remove repeated identical ``export`` lines."""
    seen: set[str] = set()
    kept = []
    changed = False
    for line in text.split("\n"):
        stripped = line.strip()
        if stripped.startswith("export "):
            if stripped in seen:
                changed = True
                continue
            seen.add(stripped)
        kept.append(line)
    return FixResult("\n".join(kept), changed, "Duplicate exports removed")


def strip_trailing_whitespace(text: str) -> FixResult:
    """Remove trailing whitespace and end with exactly one newline."""
    replaced = "\n".join(line.rstrip() for line in text.strip("\n").split("\n")) + "\n"
    return FixResult(replaced, replaced != text, "Trailing whitespace removed")


DEFAULT_FIXES: list[SanitizerFix] = [
    extract_fenced_code,
    strip_leading_prose,
    remove_fence_markers,
    fix_smart_quotes,
    fix_dashes,
    strip_invisible_chars,
    strip_duplicate_exports,
    strip_trailing_whitespace,
]


def _digest(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()[:12]


def sanitize(text: str, fixes: list[SanitizerFix] | None = None) -> SanitizerSummary:
    """Run every fix in order.

    Example:
        >>> sanitize("Here is the code:\\n```ts\\nconst a = \\u201cx\\u201d;\\n```").sanitized
        'const a = "x";\\n'
    """
    changes: list[str] = []
    current = text
    for fix in fixes if fixes is not None else DEFAULT_FIXES:
        result = fix(current)
        if result.changed:
            current = result.text
            changes.append(result.description)

    return SanitizerSummary(
        sanitized=current,
        changes_made=changes,
        functions_triggered=len(changes),
        pre_size=len(text),
        post_size=len(current),
        pre_hash=_digest(text),
        post_hash=_digest(current),
    )
