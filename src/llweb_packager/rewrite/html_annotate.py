from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Final, Iterable

from bs4 import BeautifulSoup, Comment, Doctype, ParserRejectedMarkup
from bs4.element import PageElement, Tag

from ..errors import EntryError
from ..records import BindingRecord, RecordIndex
from .paths import DEFAULT_RULE, REWRITTEN_ATTRIBUTES, PathRewriteRule

logger = logging.getLogger(__name__)

MARKER_ATTR: Final[str] = "nv"
PAR_ATTR: Final[str] = "data-llweb-par"
REFRESH_ATTR: Final[str] = "data-llweb-refresh"
FORMAT_ATTR: Final[str] = "data-llweb-format"

DOCTYPE_LINE: Final[str] = "<!DOCTYPE html>\n"

# Tags that stay in <head> when they precede <html>.
HEAD_TAGS: Final[frozenset[str]] = frozenset(
    {"base", "link", "meta", "script", "style", "title"}
)

FORMAT_TABLE: Final[dict[str, str]] = {
    "xxx.y": "%.1D",
    "xx.yy": "%.2D",
    "x.yyy": "%.3D",
    "%04x": "%04x",
    "HH:MM": "HH:MM",
}


@dataclass
class DocumentStats:
    elements_processed: int = 0
    attributes_added: int = 0


@dataclass(frozen=True)
class AnnotatedDocument:
    html: str
    stats: DocumentStats


@dataclass(frozen=True)
class AttributeEdit:
    element: Tag
    attributes: dict[str, str]
    weight: int


def format_attribute(token: str) -> str | None:
    """Display format for a CSV format token.

    An empty token yields an empty attribute; an unknown token yields None
    and no attribute is written at all.
    """

    if token == "":
        return ""
    return FORMAT_TABLE.get(token)


def binding_attributes(element: Tag, record: BindingRecord) -> tuple[dict[str, str], int]:
    """Attributes for one matched element plus its nominal count.

    The count is fixed per element kind (radio 4, other bound kinds 3) and
    does not track how many attributes were actually written.
    """

    address = record.address
    attrs = {PAR_ATTR: address, REFRESH_ATTR: "true"}

    if element.name == "input":
        input_type = str(element.get("type") or "").strip().lower()
        if input_type == "checkbox":
            attrs["id"] = f"chk-ctrl-{address}"
            return attrs, 3
        if input_type == "radio":
            value = str(element.get("value") or "").strip().lower()
            suffix = "1" if value in {"true", "1"} else "2"
            attrs["name"] = f"rad-{address}"
            attrs["id"] = f"rad-ctrl-{address}-{suffix}"
            return attrs, 4
        attrs["id"] = f"txt-ctrl-{address}"
        display_format = format_attribute(record.format)
        if display_format is not None:
            attrs[FORMAT_ATTR] = display_format
        return attrs, 3

    if element.name == "select":
        attrs["id"] = f"sel-ctrl-{address}"
        return attrs, 3

    if element.name == "button":
        value = element.get("value")
        if value == "true":
            attrs["id"] = f"btn-ctrl-{address}-1"
        elif value == "false":
            attrs["id"] = f"btn-ctrl-{address}-2"
        return attrs, 3

    # Matched, but not a control kind the refresh library binds.
    return {}, 0


def plan_bindings(soup: BeautifulSoup, index: RecordIndex) -> list[AttributeEdit]:
    edits: list[AttributeEdit] = []
    for element in soup.select(f"[{MARKER_ATTR}]"):
        marker = str(element.get(MARKER_ATTR) or "")
        record = index.lookup(marker)
        if record is None:
            logger.debug("No binding for nv=%r", marker)
            continue
        attrs, weight = binding_attributes(element, record)
        logger.debug("Binding nv=%r on <%s> to %s", marker, element.name, record.address)
        edits.append(AttributeEdit(element=element, attributes=attrs, weight=weight))
    return edits


def apply_edits(edits: Iterable[AttributeEdit]) -> DocumentStats:
    stats = DocumentStats()
    for edit in edits:
        for key, value in edit.attributes.items():
            edit.element[key] = value
        stats.elements_processed += 1
        stats.attributes_added += edit.weight
    return stats


def rewrite_document_paths(soup: BeautifulSoup, rule: PathRewriteRule) -> None:
    for attr in REWRITTEN_ATTRIBUTES:
        for element in soup.find_all(attrs={attr: True}):
            value = element.get(attr)
            if isinstance(value, str):
                element[attr] = rule.apply(value)
    for style in soup.find_all("style"):
        text = style.string
        if text:
            # Keep the Stylesheet string type so the CSS is not entity-escaped.
            style.string = type(text)(rule.apply(str(text)))


def remove_external_links(soup: BeautifulSoup, substrings: Iterable[str]) -> int:
    substrings = tuple(substrings)
    removed = 0
    for link in soup.find_all("link", href=True):
        href = str(link.get("href") or "")
        if any(s in href for s in substrings):
            link.decompose()
            removed += 1
    return removed


def _is_head_content(node: PageElement) -> bool:
    if isinstance(node, Tag):
        return node.name in HEAD_TAGS
    return isinstance(node, Comment) or not str(node).strip()


def _ensure_anchors(soup: BeautifulSoup) -> tuple[Tag, Tag, Tag]:
    """Return (html, head, body), creating whichever the markup left out.

    ``html.parser`` keeps whatever sits outside ``<html>`` as top-level
    siblings, and content around ``<body>`` as direct ``<html>`` children.
    Only ``<html>`` is serialized, so all of it is moved inside: leading
    head-type tags into ``<head>``, everything else into ``<body>`` in
    document order.
    """

    html = soup.find("html", recursive=False)
    if html is None:
        html = soup.new_tag("html")
        for node in list(soup.contents):
            if not isinstance(node, Doctype):
                html.append(node.extract())
        soup.append(html)

    top = list(soup.contents)
    at = next(i for i, node in enumerate(top) if node is html)
    leading = [node for node in top[:at] if not isinstance(node, Doctype)]
    trailing = [node for node in top[at + 1 :] if not isinstance(node, Doctype)]

    head = html.find("head", recursive=False)
    if head is None:
        head = soup.new_tag("head")
        html.insert(0, head)

    body = html.find("body", recursive=False)
    if body is None:
        body = soup.new_tag("body")
        html.append(body)

    head_front: list[PageElement] = []
    head_back: list[PageElement] = []
    body_front: list[PageElement] = []
    body_back: list[PageElement] = []

    seen_head = seen_body = False
    in_head = True
    for node in leading + list(html.contents) + trailing:
        if node is head:
            seen_head = True
        elif node is body:
            seen_body = True
        elif seen_body:
            body_back.append(node)
        elif in_head and _is_head_content(node):
            (head_back if seen_head else head_front).append(node)
        else:
            in_head = False
            body_front.append(node)

    for offset, node in enumerate(head_front):
        head.insert(offset, node.extract())
    for node in head_back:
        head.append(node.extract())
    for offset, node in enumerate(body_front):
        body.insert(offset, node.extract())
    for node in body_back:
        body.append(node.extract())

    return html, head, body


def _append_markup(target: Tag, markup: str) -> None:
    fragment = BeautifulSoup(markup, "html.parser")
    for node in list(fragment.contents):
        target.append(node.extract())


def _parse(text: str) -> BeautifulSoup:
    try:
        return BeautifulSoup(text, "html.parser")
    except (ParserRejectedMarkup, RecursionError) as e:
        raise EntryError("<document>", "html", f"parse failed: {e}") from e


def collect_markers(text: str) -> list[tuple[str, str]]:
    """(marker, tag name) for every nv-marked element, in document order."""

    soup = _parse(text)
    return [
        (str(element.get(MARKER_ATTR) or ""), element.name)
        for element in soup.select(f"[{MARKER_ATTR}]")
    ]


class HtmlAnnotator:
    """Rewrite one HTML document for the LLWeb runtime."""

    def __init__(
        self,
        index: RecordIndex,
        *,
        head_markup: str,
        body_markup: str,
        rule: PathRewriteRule = DEFAULT_RULE,
        blocked_link_substrings: Iterable[str] = (),
    ) -> None:
        self.index = index
        self.head_markup = head_markup
        self.body_markup = body_markup
        self.rule = rule
        self.blocked_link_substrings = tuple(blocked_link_substrings)

    def annotate(self, text: str) -> AnnotatedDocument:
        soup = _parse(text)

        rewrite_document_paths(soup, self.rule)
        remove_external_links(soup, self.blocked_link_substrings)

        html, head, body = _ensure_anchors(soup)
        _append_markup(head, self.head_markup)
        _append_markup(body, self.body_markup)

        stats = apply_edits(plan_bindings(soup, self.index))

        try:
            serialized = DOCTYPE_LINE + str(html)
        except RecursionError as e:
            raise EntryError("<document>", "html", f"serialize failed: {e}") from e
        return AnnotatedDocument(html=serialized, stats=stats)

    def __call__(self, text: str) -> tuple[str, DocumentStats]:
        doc = self.annotate(text)
        return doc.html, doc.stats
