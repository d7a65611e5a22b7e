"""
Structure Index
===============
Structural classification of document offsets.

``classify(pos)`` returns the space-separated classes of the constructs that
contain ``pos``. Block and inline constructs come from the syntax tree;
Obsidian syntax the tree does not model (tags, block ids, templater commands,
wiki links, inline math) is found with regular expressions.
"""

import re
from typing import Dict, List, Tuple

from .blocks import parse

CLASS_BY_TYPE: Dict[str, str] = {
    'yaml': 'frontmatter',
    'code': 'code',
    'inlineCode': 'inline-code',
    'math': 'math',
    'html': 'html',
    'table': 'table',
}

PATTERNS: List[Tuple[str, 're.Pattern']] = [
    ('hashtag', re.compile(r'(?<![^\s(])#[\w\-/]*[^\W\d][\w\-/]*')),
    ('blockid', re.compile(r'(?:^|(?<=\s))\^[A-Za-z0-9\-]+[ \t]*\r?$', re.M)),
    ('templater', re.compile(r'<%[\s\S]*?%>')),
    ('internal-link', re.compile(r'!?\[\[[^\[\]\n]*\]\]')),
    ('math', re.compile(r'(?<![\\$])\$(?=[^\s$])[^$\n]*?(?<=[^\s\\])\$(?!\$)')),
]


class StructureIndex:
    """Classified ranges of one document version."""

    def __init__(self, text: str):
        self.text = text
        self.ranges: List[Tuple[int, int, str]] = []

        for node in parse(text).walk():
            name = CLASS_BY_TYPE.get(node.type)
            if name:
                self.ranges.append((node.start, node.end, name))
        for name, pattern in PATTERNS:
            for match in pattern.finditer(text):
                self.ranges.append((match.start(), match.end(), name))
        self.ranges.sort()

    def classify(self, pos: int) -> str:
        classes = []
        for start, end, name in self.ranges:
            if start > pos:
                break
            if pos < end and name not in classes:
                classes.append(name)
        return ' '.join(classes)

    __call__ = classify
