"""
Text and XML normalization shared by the XML-speaking source adapters.

Backends return the same logical field (an abstract, an author name) in
inconsistently shaped trees: a bare string, repeated sibling elements,
inline markup such as <sup>/<i>, or text that is still entity-escaped after
XML parsing. Everything here reduces those shapes to one plain display string.

The parse tree is a closed two-variant type:

    Node = TextNode | ElementNode

and ``flatten`` is a structural recursion over it that handles every node
shape, discarding attributes.

Example:
    >>> root = parse_xml("<a>H<sub>2</sub>O &amp;#x2009;ok</a>")
    >>> flatten(root)
    'H2O ok'
"""

from __future__ import annotations

import html
import re
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from xml.etree.ElementTree import Element

import defusedxml.ElementTree as ET  # Security: prevent XML attacks
from defusedxml import DefusedXmlException

from .exceptions import ParseError

# Markup that sits inside running text; flattened without a separating space
INLINE_TAGS = frozenset(
    {"b", "bold", "em", "i", "italic", "sc", "span", "strong", "sub", "sup", "u"}
)

_WHITESPACE = re.compile(r"\s+")


def decode_entities(text: str) -> str:
    """
    Decode numeric (``&#x2009;``, ``&#8201;``) and named (``&nbsp;``) entities.

    Several backends escape their payload twice, so entities survive XML
    parsing. Decoding plain text is a no-op.
    """
    if not text:
        return ""
    return html.unescape(text)


def normalize_whitespace(text: str) -> str:
    """Collapse runs of whitespace (including NBSP) into single spaces."""
    return _WHITESPACE.sub(" ", text).strip()


def clean_text(text: str, fixes: Mapping[re.Pattern[str], str]) -> str:
    """Apply a table of regex repairs for backend-specific tokenization artifacts."""
    for pattern, replacement in fixes.items():
        text = pattern.sub(replacement, text)
    return normalize_whitespace(text)


# =============================================================================
# Parse tree
# =============================================================================


@dataclass(frozen=True, slots=True)
class TextNode:
    """Character data between or inside elements."""

    text: str

    def render(self) -> str:
        return decode_entities(self.text)

    def is_block(self) -> bool:
        return False

    def as_elements(self) -> Iterator[ElementNode]:
        return iter(())


@dataclass(frozen=True, slots=True)
class ElementNode:
    """An element with its local tag name, attributes and ordered children."""

    tag: str
    attrs: dict[str, str] = field(default_factory=dict)
    children: tuple[Node, ...] = ()

    def render(self) -> str:
        # A block element is spaced off from whatever renders on either side of it
        parts: list[str] = []
        after_block = False
        for child in self.children:
            piece = child.render()
            if not piece:
                continue
            block = child.is_block()
            if parts and (block or after_block):
                parts.append(" ")
            parts.append(piece)
            after_block = block
        return "".join(parts)

    def is_block(self) -> bool:
        return self.tag not in INLINE_TAGS

    # -- navigation -----------------------------------------------------------

    @property
    def elements(self) -> Iterator[ElementNode]:
        """Child elements, skipping text nodes."""
        for child in self.children:
            yield from child.as_elements()

    def as_elements(self) -> Iterator[ElementNode]:
        yield self

    def find(self, tag: str) -> ElementNode | None:
        """First child element with the given local tag."""
        return next((el for el in self.elements if el.tag == tag), None)

    def find_all(self, tag: str) -> list[ElementNode]:
        """All child elements with the given local tag."""
        return [el for el in self.elements if el.tag == tag]

    def path(self, *tags: str) -> ElementNode | None:
        """Follow a chain of child tags, returning None when any step is missing."""
        node: ElementNode | None = self
        for tag in tags:
            if node is None:
                return None
            node = node.find(tag)
        return node

    def attr(self, name: str, default: str = "") -> str:
        return self.attrs.get(name, default)


Node = TextNode | ElementNode


def _local_name(name: str) -> str:
    """Strip an ElementTree ``{namespace}`` prefix."""
    return name.rsplit("}", 1)[-1]


def _convert(element: Element) -> ElementNode:
    children: list[Node] = []
    if element.text:
        children.append(TextNode(element.text))
    for sub in element:
        children.append(_convert(sub))
        if sub.tail:
            children.append(TextNode(sub.tail))
    attrs = {_local_name(k): v for k, v in element.attrib.items()}
    return ElementNode(tag=_local_name(str(element.tag)), attrs=attrs, children=tuple(children))


def parse_xml(payload: str | bytes, *, source: str | None = None) -> ElementNode:
    """
    Parse an XML document into the closed Node tree.

    Raises:
        ParseError: When the payload is not well-formed or is rejected by defusedxml
    """
    try:
        root = ET.fromstring(payload)
    except (ET.ParseError, DefusedXmlException) as e:
        raise ParseError(f"Invalid XML: {e}", source=source) from e
    return _convert(root)


def flatten(node: Node | None) -> str:
    """
    Reduce any node to a plain display string.

    Block elements are separated from neighbouring text by a single space,
    inline markup is joined without one, entities are decoded and whitespace
    is collapsed.
    """
    if node is None:
        return ""
    return normalize_whitespace(node.render())


def first_text(*nodes: Node | None) -> str:
    """Flattened text of the first node that yields a non-empty string."""
    for node in nodes:
        text = flatten(node)
        if text:
            return text
    return ""
