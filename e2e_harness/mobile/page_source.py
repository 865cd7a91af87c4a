from __future__ import annotations

from dataclasses import dataclass
from typing import Optional
from xml.etree import ElementTree

# UIAutomator2 (Android) and XCUITest (iOS) expose the same facts under different attribute names.
_TEXT_ATTRS = ("text", "value")
_LABEL_ATTRS = ("content-desc", "label", "name")
_VISIBLE_ATTRS = ("displayed", "visible")


@dataclass(frozen=True)
class SourceNode:
    tag: str
    text: Optional[str]
    label: Optional[str]
    visible: bool


def _first_attr(attrib: dict[str, str], names: tuple[str, ...]) -> Optional[str]:
    for name in names:
        value = attrib.get(name)
        if value:
            return value
    return None


def _is_visible(attrib: dict[str, str]) -> bool:
    for name in _VISIBLE_ATTRS:
        if name in attrib:
            return attrib[name].strip().lower() != "false"
    return True


def extract_nodes(page_source_xml: str, *, limit: int = 2000) -> list[SourceNode]:
    """
    Flatten an Appium `/source` dump into nodes carrying text, label and visibility.
    """
    if not page_source_xml.strip():
        return []

    try:
        root = ElementTree.fromstring(page_source_xml)
    except ElementTree.ParseError as e:
        raise ValueError(f"Failed to parse page source XML: {e}") from e

    nodes: list[SourceNode] = []
    for el in root.iter():
        if len(nodes) >= limit:
            break
        attrib = el.attrib or {}
        nodes.append(
            SourceNode(
                tag=el.tag,
                text=_first_attr(attrib, _TEXT_ATTRS),
                label=_first_attr(attrib, _LABEL_ATTRS),
                visible=_is_visible(attrib),
            )
        )
    return nodes


def extract_visible_strings(page_source_xml: str, *, limit: int = 2000) -> list[str]:
    """
    De-duplicated, ordered text and label strings of the currently visible nodes.
    """
    seen: set[str] = set()
    out: list[str] = []
    for node in extract_nodes(page_source_xml, limit=limit):
        if not node.visible:
            continue
        for candidate in (node.text, node.label):
            if not candidate:
                continue
            normalized = candidate.strip()
            if not normalized or normalized in seen:
                continue
            seen.add(normalized)
            out.append(normalized)
    return out


def ui_snapshot(page_source_xml: str) -> tuple[str, ...]:
    """Comparable fingerprint of what is on screen; equal snapshots mean nothing moved."""
    return tuple(extract_visible_strings(page_source_xml))
