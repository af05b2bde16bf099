"""
formatter.py — best-effort pretty-printing of generated JSX and CSS.

Formatting is cosmetic: if jsbeautifier / cssbeautifier cannot handle the
input, the original text is returned unchanged and the failure is only logged.

Also owns the GeneratedComponent shell:
  wrap_component()    fragment → full component text (display/formatting only)
  extract_fragment()  full component text → fragment (for legacy stored wrappers)
"""
import logging
import re
from enum import Enum

import cssbeautifier
import jsbeautifier

logger = logging.getLogger(__name__)

COMPONENT_NAME = "GeneratedComponent"

# Only the whole legacy shell is unwrapped; a fragment may contain inner `return (`
_COMPONENT_SHELL = re.compile(
    r"^\s*const\s+\w+\s*=\s*\(\s*\)\s*=>\s*\{\s*return\s*\(([\s\S]*)\)\s*;\s*\}\s*;?\s*$"
)


class CodeKind(str, Enum):
    markup = "markup"
    style = "style"


def wrap_component(body: str) -> str:
    indented = "\n".join(f"    {line}" if line.strip() else line for line in body.splitlines())
    return f"const {COMPONENT_NAME} = () => {{\n  return (\n{indented}\n  );\n}};"


def extract_fragment(code: str) -> str:
    """
    Body of a legacy `const X = () => { return ( ... ); };` shell, or the stripped
    text itself (the normal case: code_body is stored as a fragment).
    """
    match = _COMPONENT_SHELL.match(code)
    if match:
        return match.group(1).strip()
    return code.strip()


class CodeFormatter:
    """
    Canonical printing for markup (JSX, e4x mode) and stylesheets.
    Two-space indent, trailing newline, blank lines between CSS rules.
    """

    def __init__(self, indent_size: int = 2):
        self._js_options = jsbeautifier.default_options()
        self._js_options.indent_size = indent_size
        self._js_options.e4x = True
        self._js_options.end_with_newline = True
        self._js_options.preserve_newlines = True
        self._js_options.max_preserve_newlines = 2

        self._css_options = cssbeautifier.default_options()
        self._css_options.indent_size = indent_size
        self._css_options.end_with_newline = True
        self._css_options.newline_between_rules = True

    def format(self, text: str, kind: CodeKind) -> str:
        if not text.strip():
            return text
        try:
            if kind == CodeKind.markup:
                return jsbeautifier.beautify(text, self._js_options)
            return cssbeautifier.beautify(text, self._css_options)
        except Exception as exc:
            logger.warning("Formatting failed for %s (%s) — keeping original text", kind.value, exc)
            return text

    def render_component(self, body: str) -> str:
        """Fragment → formatted GeneratedComponent definition."""
        return self.format(wrap_component(body), CodeKind.markup)
