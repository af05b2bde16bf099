"""
nodes.py — tree-shaped markup the model sometimes returns instead of JSX text.

Instead of a string, jsxCode may arrive as
    {"type": "element", "name": "img", "attrs": {"src": "a"}, "children": [...]}
or a list mixing such objects with plain strings. parse_node() turns that JSON
into the TextNode | ElementNode variant and render() flattens it back to text.
"""
from dataclasses import dataclass, field
from typing import Any, Union

VOID_TAGS = frozenset({"input", "br", "hr", "img", "meta", "link"})


@dataclass(frozen=True)
class TextNode:
    text: str


@dataclass(frozen=True)
class ElementNode:
    tag: str
    attributes: dict[str, Any] = field(default_factory=dict)
    children: tuple["Node", ...] = ()


Node = Union[TextNode, ElementNode]


def parse_node(raw: Any) -> Node:
    """Anything that is neither a string nor an element object becomes an empty text node."""
    if isinstance(raw, str):
        return TextNode(raw)
    if not isinstance(raw, dict) or raw.get("type") != "element":
        return TextNode("")

    attrs = raw.get("attrs")
    children = raw.get("children")
    return ElementNode(
        tag=raw.get("name") or "div",
        attributes=dict(attrs) if isinstance(attrs, dict) else {},
        children=tuple(parse_node(c) for c in children) if isinstance(children, list) else (),
    )


def _render_attributes(attributes: dict[str, Any]) -> str:
    # Capitalised attribute names are internal to the model's tree format
    return " ".join(
        f'{name}="{value}"'
        for name, value in attributes.items()
        if name and not name[0].isupper()
    )


def render(node: Node) -> str:
    if isinstance(node, TextNode):
        return node.text

    attrs = _render_attributes(node.attributes)
    opening = f"{node.tag} {attrs}" if attrs else node.tag
    children = "".join(render(c) for c in node.children)
    if node.tag in VOID_TAGS and not children:
        return f"<{opening} />"
    return f"<{opening}>{children}</{node.tag}>"


def flatten(raw: Any) -> Any:
    """
    Flatten a tree-shaped jsxCode value to text.

    Lists are rendered item by item and concatenated; a single object is
    rendered on its own. Any other value is returned untouched so the caller
    can decide what to do with it.
    """
    if isinstance(raw, list):
        return "".join(render(parse_node(item)) for item in raw)
    if isinstance(raw, dict):
        return render(parse_node(raw))
    return raw
