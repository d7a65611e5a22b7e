"""
Markdown support for ltcheck: a position-preserving parser, the annotator that
turns a document into checker input, and the structure index used to keep
markers out of code, math and front matter.
"""

from .nodes import Node
from .blocks import parse
from .inlines import parse_inlines
from .annotator import MarkdownAnnotator, annotate
from .structure import StructureIndex

__all__ = [
    'Node',
    'parse',
    'parse_inlines',
    'MarkdownAnnotator',
    'annotate',
    'StructureIndex',
]
