"""Response Classifier — tags a text-only model turn as final or non-compliant.

Invariants:
    - PURE: same (text, workflow_complete) always yields the same ResponseKind
    - Precedence: CODE_LIKE > STATED_INTENT > INCOMPLETE > FINAL
    - FINAL requires a complete workflow and non-empty, plain text
"""

import re

from tradepilot.core.domain_types import ResponseKind

MAX_PLAIN_TEXT_LENGTH = 500

CODE_MARKERS = (
    "import ", "def ", "function ", "pandas", "talib", "DataFrame",
)
_SPECIAL_TOKEN_RE = re.compile(r"<\|.*?\|>")
_FENCE_RE = re.compile(r"^\s*```", re.MULTILINE)

INTENT_PHRASES = (
    "i'll call", "i will call", "now i'll", "now i will",
    "next i'll", "next i will", "will call", "going to call",
    "let me call", "i need to call", "calling the", "let me fetch",
    "i'll fetch", "i will fetch", "let me use", "i'll use the",
)


def is_code_like(text: str) -> bool:
    if any(marker in text for marker in CODE_MARKERS):
        return True
    return bool(_SPECIAL_TOKEN_RE.search(text) or _FENCE_RE.search(text))


def has_stated_intent(text: str) -> bool:
    lowered = text.lower()
    return any(phrase in lowered for phrase in INTENT_PHRASES)


def classify_response(text: str, workflow_complete: bool) -> ResponseKind:
    """Classify free text returned instead of a tool call."""
    stripped = (text or "").strip()
    if is_code_like(stripped):
        return ResponseKind.CODE_LIKE
    if not workflow_complete and len(stripped) > MAX_PLAIN_TEXT_LENGTH:
        return ResponseKind.CODE_LIKE
    if has_stated_intent(stripped):
        return ResponseKind.STATED_INTENT
    if not workflow_complete or not stripped:
        return ResponseKind.INCOMPLETE
    return ResponseKind.FINAL
