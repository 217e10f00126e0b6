"""Post-conversion text cleanup rules.

Markdown produced from a rendered page still carries residue that the HTML
structure did not reveal: framework state dumps, leftover script bodies,
analytics snippets.  Each kind of residue is handled by one named, pure
:class:`TextRule`; :data:`CLEANUP_RULES` is the ordered pipeline applied by
:func:`apply_rules`.

To add a rule, write a ``str -> str`` function (or use :func:`regex_rule`) and
insert it in :data:`CLEANUP_RULES` before ``collapse_blank_lines``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable, Iterable, Iterator, Tuple


@dataclass(frozen=True)
class TextRule:
    """A named text transform.

    Attributes:
        name: Short identifier used in logs and tests.
        description: What residue the rule removes.
        apply: The pure transform.
    """

    name: str
    description: str
    apply: Callable[[str], str]

    def __call__(self, text: str) -> str:
        return self.apply(text)


def regex_rule(
    name: str,
    description: str,
    pattern: str,
    replacement: str = "",
    flags: int = 0,
) -> TextRule:
    """Build a rule that substitutes every match of *pattern*."""
    compiled = re.compile(pattern, flags)
    return TextRule(name, description, lambda text: compiled.sub(replacement, text))


# ---------------------------------------------------------------------------
# Embedded state blobs
# ---------------------------------------------------------------------------

#: JSON keys that betray framework build / hydration / analytics state.
STATE_KEYS: Tuple[str, ...] = (
    "props",
    "__N_SSP",
    "buildId",
    "scripts",
    "gtag",
    "page",
    "query",
    "gssp",
    "scriptLoader",
    "isFallback",
    "isExperimentalCompile",
)

_STATE_KEY_PATTERN = re.compile(
    r'"(?:' + "|".join(re.escape(k) for k in STATE_KEYS) + r')"\s*:'
)


def _balanced_objects(text: str) -> Iterator[Tuple[int, int]]:
    """Yield ``(start, end)`` of every outermost balanced ``{...}`` span.

    Braces inside double-quoted strings are ignored.  An unclosed ``{`` never
    yields a span.
    """
    depth = 0
    start = 0
    in_string = False
    escaped = False
    for i, ch in enumerate(text):
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"' and depth > 0:
            in_string = True
        elif ch == "{":
            if depth == 0:
                start = i
            depth += 1
        elif ch == "}" and depth > 0:
            depth -= 1
            if depth == 0:
                yield start, i + 1


def strip_state_blobs(text: str) -> str:
    """Remove JSON objects keyed by any of :data:`STATE_KEYS`."""
    pieces = []
    cursor = 0
    for start, end in _balanced_objects(text):
        if _STATE_KEY_PATTERN.search(text, start, end):
            pieces.append(text[cursor:start])
            cursor = end
    pieces.append(text[cursor:])
    return "".join(pieces)


def collapse_blank_lines(text: str) -> str:
    """Squeeze 3+ consecutive newlines into one blank line and trim."""
    return re.sub(r"\n{3,}", "\n\n", text).strip()


# ---------------------------------------------------------------------------
# Rule pipeline
# ---------------------------------------------------------------------------

CLEANUP_RULES: Tuple[TextRule, ...] = (
    TextRule(
        "state_blobs",
        "JSON objects carrying build metadata, hydration state or analytics config",
        strip_state_blobs,
    ),
    regex_rule(
        "build_manifest",
        "Next.js build manifest tail that lost its opening brace",
        r',?\s*"buildId":"[^"]+"\s*,\s*"isFallback":(?:true|false)\s*,'
        r'\s*"isExperimentalCompile":(?:true|false)\s*,\s*"gssp":(?:true|false)'
        r'\s*,\s*"scriptLoader":\[\]\}',
    ),
    regex_rule(
        "window_globals",
        "window.__SOMETHING__ = {...} assignments",
        r"window\.__[A-Z_]+\s*=\s*\{[^}]*\}",
    ),
    regex_rule(
        "initial_state",
        "__INITIAL_STATE__ = {...} assignments",
        r"__INITIAL_STATE__\s*=\s*\{[^}]*\}",
    ),
    regex_rule(
        "script_tags",
        "literal <script> blocks that survived conversion",
        r"<script[^>]*>[\s\S]*?</script>",
        flags=re.IGNORECASE,
    ),
    regex_rule(
        "jquery_ready",
        "$(document).ready(function() {...}); handlers",
        r"\$\(document\)\.ready\(function\(\)\s*\{[^}]*\}\);",
        flags=re.DOTALL,
    ),
    regex_rule(
        "scroll_listeners",
        "window.addEventListener('scroll', function() {...}); handlers",
        r"""window\.addEventListener\(['"]scroll['"],\s*function\(\)\s*\{[^}]*\}\);""",
        flags=re.DOTALL,
    ),
    regex_rule(
        "console_calls",
        "console.log(...) statements",
        r"console\.log\([^)]*\);?",
    ),
    regex_rule(
        "analytics_snippets",
        "gtag(...) calls and dataLayer bootstrapping",
        r"gtag\([^)]*\);?|window\.dataLayer\s*=\s*window\.dataLayer\s*\|\|\s*\[\];?"
        r"|dataLayer\.push\(\{[^}]*\}\);?",
    ),
    TextRule(
        "collapse_blank_lines",
        "runs of 3+ newlines",
        collapse_blank_lines,
    ),
)


def apply_rules(text: str, rules: Iterable[TextRule] = CLEANUP_RULES) -> str:
    """Run *text* through *rules* in order."""
    for rule in rules:
        text = rule(text)
    return text
