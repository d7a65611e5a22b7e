"""
Markdown Annotator
==================
Walks a markdown syntax tree and produces the ``AnnotatedText`` sent to the
checker: prose as text, everything else as markup with a suitable
interpretation (line breaks, bullets, stand-in words).
"""

import re
from typing import List, Optional

from config_logging import MarkdownAnnotationError, get_logger
from ltcheck.annotated import AnnotatedText
from .blocks import parse
from .nodes import MARKUP_TYPES, Node

logger = get_logger('ltcheck.markdown')

ESCAPE_RE = re.compile(r'\\([!-/:-@\[-`{-~])')
BULLET = '• '
LINK_STAND_IN = 'DUMMY'


class MarkdownAnnotator:
    """Single-use converter from markdown source to ``AnnotatedText``."""

    def __init__(self, source: str):
        self.source = source
        self.output = AnnotatedText()
        self.cursor = 0

    def annotate(self) -> AnnotatedText:
        root = parse(self.source)
        self._children(root.children)
        self._pad(len(self.source))
        if self.cursor != len(self.source):
            raise MarkdownAnnotationError(
                f"Annotation stopped at {self.cursor} of {len(self.source)}",
                node_type='root', start=0, end=len(self.source))
        self.output.optimize()
        self.output.verify(self.source)
        logger.debug(f"Annotated {len(self.source)} characters into {len(self.output)} segments")
        return self.output

    # -------------------------------------------------------------------------
    # Stream helpers
    # -------------------------------------------------------------------------

    def _pad(self, position: int):
        """Hide the source between the cursor and ``position``."""
        if position < self.cursor:
            raise MarkdownAnnotationError(
                f"Node at {position} overlaps content ending at {self.cursor}",
                start=position, end=self.cursor)
        if position > self.cursor:
            self.output.push_markup(self.source[self.cursor:position])
            self.cursor = position

    def _separate(self, newlines: int):
        """Top the stream's trailing newlines up to ``newlines``."""
        tail = self.output.interpreted_tail(newlines)
        if not tail:
            return
        existing = len(tail) - len(tail.rstrip('\n'))
        if existing < newlines:
            self.output.push_markup('', '\n' * (newlines - existing))

    def _markup(self, node: Node, interpret_as: Optional[str] = None):
        self._pad(node.start)
        self.output.push_markup(self.source[node.start:node.end], interpret_as)
        self.cursor = node.end

    def _error(self, message: str, node: Node) -> MarkdownAnnotationError:
        return MarkdownAnnotationError(
            message, node_type=node.type, start=node.start, end=node.end,
            raw=self.source[node.start:node.end])

    # -------------------------------------------------------------------------
    # Walk
    # -------------------------------------------------------------------------

    def _children(self, nodes: List[Node]):
        for node in nodes:
            self._node(node)

    def _node(self, node: Node, loose: bool = False):
        kind = node.type
        if kind == 'text':
            self._text(node)
        elif kind in MARKUP_TYPES:
            self._markup(node)
        elif kind == 'inlineCode':
            self._markup(node, node.value or '')
        elif kind == 'break':
            self._markup(node, '\n')
        elif kind == 'thematicBreak':
            tail = self.output.interpreted_tail(2)
            existing = len(tail) - len(tail.rstrip('\n'))
            self._markup(node, '\n' * (2 - existing) if tail else None)
        elif kind == 'paragraph':
            self._separate(2)
            self._children(node.children)
            self._separate(2)
        elif kind == 'heading':
            self._separate(2)
            self._children(node.children)
            self._separate(2)
        elif kind == 'list':
            for item in node.children:
                self._list_item(item, loose=bool(node.spread))
            self._separate(2)
        elif kind == 'listItem':
            self._list_item(node, loose)
        elif kind == 'link':
            if node.children:
                self._children(node.children)
            else:
                self._markup(node, LINK_STAND_IN)
        elif kind == 'table':
            self._separate(1)
            for row in node.children:
                for cell in row.children:
                    self._children(cell.children)
                    self._separate(1)
                self._separate(2)
        else:
            # strong, emphasis, delete, blockquote, references, footnotes
            self._children(node.children)

    def _list_item(self, node: Node, loose: bool):
        self._pad(node.start)
        self._separate(1)
        self.output.push_markup('', BULLET)
        children = list(node.children)
        if children and children[0].type == 'paragraph':
            self._children(children.pop(0).children)
        self._children(children)
        self._separate(2 if loose else 1)

    def _text(self, node: Node):
        self._pad(node.start)
        raw = self.source[node.start:node.end]
        value = node.value or ''
        lines = raw.split('\n')
        prefixes = [0]
        line_start = node.start
        starts = node.line_starts or []
        for k, line in enumerate(lines[:-1]):
            line_start += len(line) + 1
            prefixes.append(starts[k] - line_start if k < len(starts) else 0)

        expected = len(value) + sum(prefixes)
        span = node.end - node.start
        if expected > span:
            raise self._error(
                f"Text value ({expected} characters) longer than its span ({span})", node)

        emitted = []
        for k, line in enumerate(lines):
            if k:
                self.output.push_markup(line[:prefixes[k]])
            content = line[prefixes[k]:]
            if k < len(lines) - 1:
                content += '\n'
            if expected == span:
                self.output.push_text(content)
                emitted.append(content)
            else:
                emitted.append(self._escaped(content))

        if ''.join(emitted) != value:
            raise self._error("Text value does not match its source span", node)
        self.cursor = node.end

    def _escaped(self, content: str) -> str:
        """Emit ``content`` hiding escaping backslashes; returns the text sent."""
        sent = []
        position = 0
        for match in ESCAPE_RE.finditer(content):
            sent.append(content[position:match.start()])
            self.output.push_text(content[position:match.start()])
            self.output.push_markup('\\', '')
            self.output.push_text(match.group(1))
            sent.append(match.group(1))
            position = match.end()
        self.output.push_text(content[position:])
        sent.append(content[position:])
        return ''.join(sent)


def annotate(source: str) -> AnnotatedText:
    """Markdown ``source`` as annotated text for the checker."""
    return MarkdownAnnotator(source).annotate()
