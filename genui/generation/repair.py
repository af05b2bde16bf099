"""
repair.py — turns the model's JSON payload into a usable {jsx_body, css_code} pair.

Pipeline (ResponseRepairer.repair):
  1. Parse the payload as a JSON object          → PayloadParseError (attempt is retried)
  2. Flatten tree-shaped jsxCode to text          (generation/nodes.py)
  3. jsxCode still not text                       → INVALID_RESPONSE_PLACEHOLDER, css cleared
  4. Trim, unwrap `return ( ... );`
  5. Body does not open with markup               → INVALID_CODE_PLACEHOLDER
  6. Several balanced top-level nodes             → wrapped in a <>...</> fragment

Only step 1 raises. Every later problem ends in a placeholder that still
renders, and is logged at WARNING without the offending payload.
"""
import json
import logging
import re
from dataclasses import dataclass
from typing import Optional

from genui.errors import PayloadParseError
from genui.generation.nodes import VOID_TAGS, flatten

logger = logging.getLogger(__name__)

INVALID_RESPONSE_PLACEHOLDER = (
    "<div style={{color: 'orange', padding: '1rem', border: '1px solid orange', "
    "borderRadius: '8px', fontFamily: 'sans-serif'}}>"
    "Sorry, the AI returned an invalid response. Please try rephrasing your prompt."
    "</div>"
)

INVALID_CODE_PLACEHOLDER = (
    "<div style={{color: 'orange', padding: '1rem', border: '1px solid orange', "
    "borderRadius: '8px', fontFamily: 'sans-serif'}}>"
    "Sorry, the AI returned invalid code. Please try rephrasing your prompt."
    "</div>"
)

_CODE_FENCE = re.compile(r"^```(?:json)?\s*([\s\S]*?)\s*```$")
_RETURN_WRAPPER = re.compile(r"^return\s*\(([\s\S]*)\);?$")
_TAG_NAME = re.compile(r"^</?\s*([A-Za-z][\w.:-]*)?")
_QUOTES = "'\"`"


@dataclass(frozen=True)
class RepairedComponent:
    jsx_body: str
    css_code: str


# ---------------------------------------------------------------------------
# Markup scanning
# ---------------------------------------------------------------------------

def _skip_quoted(text: str, i: int) -> Optional[int]:
    """Index of the closing quote matching text[i], or None."""
    quote = text[i]
    end = text.find(quote, i + 1)
    return end if end != -1 else None


def _brace_end(text: str, start: int) -> Optional[int]:
    depth = 0
    i = start
    while i < len(text):
        ch = text[i]
        if ch in _QUOTES:
            i = _skip_quoted(text, i)
            if i is None:
                return None
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return i
        i += 1
    return None


def _tag_end(text: str, start: int) -> Optional[int]:
    i = start + 1
    while i < len(text):
        ch = text[i]
        if ch in "'\"":
            i = _skip_quoted(text, i)
            if i is None:
                return None
        elif ch == "{":
            i = _brace_end(text, i)
            if i is None:
                return None
        elif ch == ">":
            return i
        i += 1
    return None


def count_root_nodes(markup: str) -> Optional[int]:
    """
    Count top-level nodes (elements, expressions, non-blank text runs).
    Returns None when the tags do not balance or a tag/expression never closes.
    """
    depth = 0
    roots = 0
    i = 0
    while i < len(markup):
        ch = markup[i]
        if ch == "<":
            end = _tag_end(markup, i)
            if end is None:
                return None
            tag = markup[i:end + 1]
            name_match = _TAG_NAME.match(tag)
            name = name_match.group(1) if name_match else None
            if tag.startswith("</"):
                depth -= 1
                if depth < 0:
                    return None
            else:
                if depth == 0:
                    roots += 1
                if not tag.endswith("/>") and name not in VOID_TAGS:
                    depth += 1
            i = end + 1
        elif ch == "{":
            end = _brace_end(markup, i)
            if end is None:
                return None
            if depth == 0:
                roots += 1
            i = end + 1
        elif depth == 0 and not ch.isspace():
            roots += 1
            while i < len(markup) and markup[i] not in "<{":
                i += 1
        else:
            i += 1
    return roots if depth == 0 else None


def unwrap_return(code: str) -> str:
    """`return ( <div/> );` → `<div/>`; anything else is only trimmed."""
    snippet = code.strip()
    match = _RETURN_WRAPPER.match(snippet)
    if match:
        snippet = match.group(1)
    return snippet.strip().rstrip(";").rstrip()


def ensure_single_root(body: str) -> str:
    roots = count_root_nodes(body)
    if roots is not None and roots > 1:
        logger.info("Wrapping %d top-level nodes in a fragment", roots)
        return f"<>\n{body}\n</>"
    return body


# ---------------------------------------------------------------------------
# Repairer
# ---------------------------------------------------------------------------

class ResponseRepairer:
    """Stateless; one instance is shared by every GenerationInvoker."""

    def parse(self, payload: str) -> dict:
        text = payload.strip()
        fenced = _CODE_FENCE.match(text)
        if fenced:
            text = fenced.group(1)
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            raise PayloadParseError(f"Payload is not valid JSON: {exc.msg}") from exc
        if not isinstance(data, dict):
            raise PayloadParseError(f"Payload is a JSON {type(data).__name__}, not an object")
        return data

    def repair(self, payload: str) -> RepairedComponent:
        data = self.parse(payload)

        css_code = data.get("cssCode")
        if not isinstance(css_code, str):
            css_code = ""

        jsx_code = flatten(data.get("jsxCode"))
        if not isinstance(jsx_code, str):
            logger.warning(
                "AI response did not contain a valid jsxCode string (got %s) — using placeholder",
                type(jsx_code).__name__,
            )
            return RepairedComponent(jsx_body=INVALID_RESPONSE_PLACEHOLDER, css_code="")

        body = unwrap_return(jsx_code)
        if not body.startswith("<"):
            logger.warning("AI returned invalid JSX (len=%d) — using placeholder", len(body))
            return RepairedComponent(jsx_body=INVALID_CODE_PLACEHOLDER, css_code=css_code)

        return RepairedComponent(jsx_body=ensure_single_root(body), css_code=css_code)
