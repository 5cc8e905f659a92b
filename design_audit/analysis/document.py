"""In-memory design document tree built from a Figma file payload.

Only the fields the audit needs are lifted into typed attributes; the raw
node dict is kept on every node for callers that need anything else.
Construction and traversal are iterative so arbitrarily deep trees never
hit the interpreter recursion limit.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional


@dataclass(frozen=True)
class Bounds:
    x: float
    y: float
    width: float
    height: float

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional["Bounds"]:
        if not data:
            return None
        return cls(
            x=data.get("x", 0),
            y=data.get("y", 0),
            width=data.get("width", 0),
            height=data.get("height", 0),
        )

    def to_dict(self) -> Dict[str, float]:
        return {"x": self.x, "y": self.y, "width": self.width, "height": self.height}


@dataclass
class DesignNode:
    """One node of a design document (DOCUMENT, CANVAS, FRAME, TEXT, ...)."""

    id: str
    name: str
    type: str
    bounds: Optional[Bounds] = None
    characters: Optional[str] = None
    children: List["DesignNode"] = field(default_factory=list)
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DesignNode":
        """Build a node tree from a Figma node dict."""
        root = cls._shallow(data)
        stack = [(root, data)]
        while stack:
            node, payload = stack.pop()
            for child_payload in payload.get("children") or []:
                child = cls._shallow(child_payload)
                node.children.append(child)
                stack.append((child, child_payload))
        return root

    @classmethod
    def _shallow(cls, data: Dict[str, Any]) -> "DesignNode":
        return cls(
            id=str(data.get("id", "")),
            name=data.get("name") or "",
            type=data.get("type") or "",
            bounds=Bounds.from_dict(data.get("absoluteBoundingBox")),
            characters=data.get("characters"),
            raw=data,
        )

    def walk(self) -> Iterator["DesignNode"]:
        """Yield this node and every descendant in depth-first pre-order."""
        stack = [self]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.children))


@dataclass
class DesignDocument:
    """A fetched design file: metadata plus the root DOCUMENT node."""

    file_key: str
    name: str
    root: DesignNode
    version: Optional[str] = None
    last_modified: Optional[str] = None

    @classmethod
    def from_file_response(cls, file_key: str, data: Dict[str, Any]) -> "DesignDocument":
        """Build from a GET /v1/files/:key response body."""
        document = data.get("document") or {"id": "0:0", "name": "Document", "type": "DOCUMENT"}
        return cls(
            file_key=file_key,
            name=data.get("name", ""),
            root=DesignNode.from_dict(document),
            version=data.get("version"),
            last_modified=data.get("lastModified"),
        )

    @property
    def pages(self) -> List[DesignNode]:
        return [child for child in self.root.children if child.type == "CANVAS"]

    def page_names(self) -> List[str]:
        return [page.name for page in self.pages]
