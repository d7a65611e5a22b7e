"""
Markdown Syntax Tree
====================
mdast-style nodes carrying ``[start, end)`` source offsets.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional

# Node kinds whose source is hidden from the checker as a whole
MARKUP_TYPES = frozenset({
    'yaml', 'code', 'math', 'html', 'image', 'imageReference',
    'footnoteReference', 'definition',
})

# Node kinds that only group their children
TRANSPARENT_TYPES = frozenset({
    'strong', 'emphasis', 'delete', 'footnoteDefinition', 'linkReference',
    'blockquote',
})


@dataclass
class Node:
    """One syntax tree node."""
    type: str
    start: int
    end: int
    children: List['Node'] = field(default_factory=list)
    value: Optional[str] = None
    column: int = 1  # 1-based, tabs count as one column

    # Kind specific attributes
    depth: Optional[int] = None       # heading
    ordered: Optional[bool] = None    # list
    spread: Optional[bool] = None     # list, listItem
    checked: Optional[bool] = None    # listItem (task lists)
    url: Optional[str] = None         # link, image, definition
    label: Optional[str] = None       # references, definitions
    # text: source offset where each continuation line's content begins
    line_starts: Optional[List[int]] = None

    def walk(self) -> Iterator['Node']:
        """Depth-first, document order."""
        yield self
        for child in self.children:
            yield from child.walk()

    def find(self, node_type: str) -> List['Node']:
        return [n for n in self.walk() if n.type == node_type]

    def contains(self, pos: int) -> bool:
        return self.start <= pos < self.end

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            'type': self.type,
            'start': self.start,
            'end': self.end,
            'column': self.column,
        }
        for name in ('value', 'depth', 'ordered', 'spread', 'checked', 'url', 'label'):
            attr = getattr(self, name)
            if attr is not None:
                data[name] = attr
        if self.children:
            data['children'] = [c.to_dict() for c in self.children]
        return data


def assign_columns(root: Node, text: str):
    """Fill in the 1-based column of every node from its start offset."""
    for node in root.walk():
        line_start = text.rfind('\n', 0, node.start) + 1
        node.column = node.start - line_start + 1
