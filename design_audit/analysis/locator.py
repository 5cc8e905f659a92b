"""Component locator: name-pattern search over a design document.

The walk tracks two pieces of context per node: the nearest enclosing
frame (a proxy for the screen the component lives on) and the enclosing
page. Nodes that match are still descended into, so nested matches such as
a ``Toast/Success`` inside a ``Toast`` group are both reported.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .document import Bounds, DesignDocument, DesignNode
from .guidelines import ComponentType, get_guideline

logger = logging.getLogger("design_audit.analysis.locator")

FRAME_TYPES = frozenset({"FRAME"})
PAGE_TYPE = "CANVAS"


@dataclass
class ComponentMatch:
    node_id: str
    name: str
    node_type: str
    frame_name: Optional[str] = None
    page_name: Optional[str] = None
    bounds: Optional[Bounds] = None
    node: Optional[DesignNode] = field(default=None, repr=False, compare=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "node_id": self.node_id,
            "name": self.name,
            "node_type": self.node_type,
            "frame_name": self.frame_name,
            "page_name": self.page_name,
            "bounds": self.bounds.to_dict() if self.bounds else None,
        }


def find_components(
    document: DesignDocument,
    component_type: "str | ComponentType",
    page_name: Optional[str] = None,
) -> List[ComponentMatch]:
    """Return every node whose name matches the type's naming patterns.

    Args:
        document: Parsed design document.
        component_type: Component key; unsupported keys yield no matches.
        page_name: When given, only nodes inside the page of that exact name
            are considered. Other pages are skipped along with their subtrees.

    Returns:
        Matches in depth-first pre-order.
    """
    guideline = get_guideline(component_type)
    if not guideline.name_patterns:
        return []

    matches: List[ComponentMatch] = []
    # (node, inherited frame name, enclosing page name)
    stack: List[tuple] = [(document.root, None, None)]
    while stack:
        node, frame_name, current_page = stack.pop()

        if node.type == PAGE_TYPE:
            if page_name is not None and node.name != page_name:
                continue
            current_page = node.name

        if node.type in FRAME_TYPES:
            frame_name = node.name

        collect = page_name is None or current_page is not None
        if collect and node.name and guideline.matches_name(node.name):
            matches.append(ComponentMatch(
                node_id=node.id,
                name=node.name,
                node_type=node.type,
                frame_name=frame_name,
                page_name=current_page,
                bounds=node.bounds,
                node=node,
            ))

        for child in reversed(node.children):
            stack.append((child, frame_name, current_page))

    logger.debug(
        f"find_components: file={document.file_key}, type={guideline.component_type.value}, "
        f"page={page_name!r}, matches={len(matches)}"
    )
    return matches


def extract_text_content(node: DesignNode) -> str:
    """Concatenate the characters of every TEXT node in a subtree."""
    texts = [
        n.characters.strip()
        for n in node.walk()
        if n.type == "TEXT" and n.characters and n.characters.strip()
    ]
    return " ".join(texts)


def describe_component(match: ComponentMatch) -> Dict[str, Any]:
    """Detail view of a match: position, text content and styling hints."""
    details = match.to_dict()
    node = match.node
    if node is None:
        details.update({"text_content": "", "child_count": 0, "fills": [], "effects": []})
        return details
    details.update({
        "text_content": extract_text_content(node),
        "child_count": len(node.children),
        "fills": node.raw.get("fills", []),
        "effects": node.raw.get("effects", []),
    })
    return details
