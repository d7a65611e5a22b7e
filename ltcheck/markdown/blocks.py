"""
Block Markdown Parser
=====================
Line-based block structure (GFM flavoured, Obsidian aware).

Supported blocks:
- YAML front matter, fenced and indented code, ``$$`` math, HTML blocks
- ATX and setext headings, thematic breaks
- Block quotes (with lazy continuation), bullet and ordered lists, task items
- GFM tables, link reference definitions, footnote definitions, paragraphs

Container blocks are parsed recursively on ``Line`` views whose container
prefix has been sliced off, so every node keeps its absolute source offsets.
Inline content is parsed once all reference definitions are known.
"""

import re
from dataclasses import dataclass
from typing import List, Optional, Set, Tuple

from .inlines import normalize_label, parse_inlines
from .nodes import Node, assign_columns

FENCE_RE = re.compile(r'^( {0,3})(`{3,}|~{3,})(.*)$')
FENCE_CLOSE_RE = re.compile(r'^ {0,3}(`{3,}|~{3,})[ \t]*$')
ATX_RE = re.compile(r'^( {0,3})(#{1,6})(?=[ \t]|$)')
ATX_CLOSE_RE = re.compile(r'(?:^|[ \t]+)#+[ \t]*$')
THEMATIC_RE = re.compile(r'^ {0,3}(?:(?:\*[ \t]*){3,}|(?:-[ \t]*){3,}|(?:_[ \t]*){3,})$')
SETEXT_RE = re.compile(r'^ {0,3}(=+|-+)[ \t]*$')
QUOTE_RE = re.compile(r'^( {0,3})>[ ]?')
BULLET_RE = re.compile(r'^( {0,3})([-+*])([ \t]+|$)')
ORDERED_RE = re.compile(r'^( {0,3})(\d{1,9})([.)])([ \t]+|$)')
TASK_RE = re.compile(r'^\[([ xX])\](?=[ \t]|$)[ \t]*')
TABLE_DELIM_RE = re.compile(r'^ {0,3}\|?[ \t]*:?-+:?[ \t]*(?:\|[ \t]*:?-+:?[ \t]*)*\|?[ \t]*$')
DEFINITION_RE = re.compile(
    r'^ {0,3}\[((?:[^\[\]\\]|\\.)+)\]:[ \t]*(<[^>\n]*>|\S+)'
    r'(?:[ \t]+("[^"]*"|\'[^\']*\'|\([^)]*\)))?[ \t]*$')
FOOTNOTE_DEF_RE = re.compile(r'^( {0,3})\[\^([^\]\s]+)\]:[ \t]?')
MATH_OPEN_RE = re.compile(r'^( {0,3})\$\$')

HTML_COMMENT_RE = re.compile(r'^ {0,3}<!--')
HTML_RAW_RE = re.compile(r'^ {0,3}<(script|pre|style|textarea)(?:[ \t>]|$)', re.I)
HTML_BLOCK_RE = re.compile(
    r'^ {0,3}</?(?:address|article|aside|base|basefont|blockquote|body|caption|center|'
    r'col|colgroup|dd|details|dialog|dir|div|dl|dt|fieldset|figcaption|figure|footer|'
    r'form|frame|frameset|h[1-6]|head|header|hr|html|iframe|legend|li|link|main|menu|'
    r'menuitem|nav|noframes|ol|optgroup|option|p|param|section|summary|table|tbody|td|'
    r'tfoot|th|thead|title|tr|track|ul)(?:[ \t]|/?>|$)', re.I)
HTML_TAG_LINE_RE = re.compile(
    r'^ {0,3}(?:<[A-Za-z][A-Za-z0-9\-]*'
    r'(?:\s+[A-Za-z_:][\w.:\-]*(?:\s*=\s*(?:[^\s"\'=<>`]+|\'[^\']*\'|"[^"]*"))?)*\s*/?>'
    r'|</[A-Za-z][A-Za-z0-9\-]*\s*>)[ \t]*$')


# =============================================================================
# Lines
# =============================================================================

@dataclass(frozen=True)
class Line:
    """A source line, or the part of it left after container prefixes."""
    text: str
    offset: int

    @property
    def body(self) -> str:
        """Text without the carriage return of a CRLF ending."""
        return self.text[:-1] if self.text.endswith('\r') else self.text

    @property
    def end(self) -> int:
        return self.offset + len(self.body.rstrip())

    def is_blank(self) -> bool:
        return not self.text.strip()

    def advance(self, count: int) -> 'Line':
        return Line(self.text[count:], self.offset + count)


def split_lines(text: str) -> List[Line]:
    lines = []
    offset = 0
    for part in text.split('\n'):
        lines.append(Line(part, offset))
        offset += len(part) + 1
    return lines


def _indent_width(text: str) -> int:
    width = 0
    for ch in text:
        if ch == ' ':
            width += 1
        elif ch == '\t':
            width += 4 - (width % 4)
        else:
            break
    return width


def _strip_indent(line: Line, columns: int) -> Line:
    width = 0
    k = 0
    text = line.text
    while k < len(text) and width < columns and text[k] in ' \t':
        width = width + 4 - (width % 4) if text[k] == '\t' else width + 1
        k += 1
    return line.advance(k)


def _leading(text: str) -> int:
    return len(text) - len(text.lstrip(' \t'))


@dataclass
class ListMarker:
    """A list item marker found at the start of a line."""
    kind: str           # bullet character, or '1.' / '1)' style for ordered lists
    ordered: bool
    number: int
    indent: int         # characters before the marker
    content_start: int  # characters before the item content on the first line
    empty: bool


def list_marker(body: str) -> Optional[ListMarker]:
    m = BULLET_RE.match(body)
    if m:
        ordered, number, marker_end, kind = False, 0, m.end(2), m.group(2)
    else:
        m = ORDERED_RE.match(body)
        if not m:
            return None
        ordered, number, marker_end, kind = True, int(m.group(2)), m.end(3), m.group(3)

    spaces = m.group(m.lastindex)
    rest = body[m.end():]
    if not rest.strip():
        content_start = marker_end + min(len(spaces), 1)
    elif _indent_width(spaces) >= 5:
        content_start = marker_end + 1
    else:
        content_start = m.end()
    return ListMarker(kind, ordered, number, len(m.group(1)), content_start, not rest.strip())


def html_kind(body: str) -> Optional[str]:
    if HTML_COMMENT_RE.match(body):
        return 'comment'
    if HTML_RAW_RE.match(body):
        return 'raw'
    if HTML_BLOCK_RE.match(body):
        return 'block'
    if HTML_TAG_LINE_RE.match(body):
        return 'tag'
    return None


def split_row(line: Line) -> List[Tuple[str, int]]:
    """Trimmed cell contents of a table row with their source offsets."""
    body = line.body
    start = _leading(body)
    end = len(body.rstrip())
    if start < end and body[start] == '|':
        start += 1
    if end > start and body[end - 1] == '|' and (end < 2 or body[end - 2] != '\\'):
        end -= 1

    cells = []
    cell_start = start
    k = start
    while k <= end:
        if k == end or (body[k] == '|' and body[k - 1] != '\\'):
            raw = body[cell_start:k]
            lead = _leading(raw)
            content = raw.strip(' \t')
            cells.append((content, line.offset + cell_start + lead))
            cell_start = k + 1
        k += 1
    return cells


# =============================================================================
# Parser
# =============================================================================

class BlockParser:
    """Parses a whole document into a ``root`` node."""

    def __init__(self, text: str):
        self.text = text
        self.definitions: Set[str] = set()
        self._inline_queue: List[Tuple[Node, List[Tuple[str, int]]]] = []

    def parse(self) -> Node:
        lines = split_lines(self.text)
        root = Node('root', 0, len(self.text))

        first = 0
        front_matter = self._front_matter(lines)
        if front_matter is not None:
            node, first = front_matter
            root.children.append(node)
        root.children.extend(self._blocks(lines[first:]))

        for node, pieces in self._inline_queue:
            node.children = parse_inlines(pieces, self.definitions)
        assign_columns(root, self.text)
        return root

    def _queue_inlines(self, node: Node, pieces: List[Tuple[str, int]]):
        if pieces:
            self._inline_queue.append((node, pieces))

    def _front_matter(self, lines: List[Line]) -> Optional[Tuple[Node, int]]:
        if not lines or lines[0].body != '---':
            return None
        for k in range(1, len(lines)):
            if lines[k].body in ('---', '...'):
                value = '\n'.join(l.body for l in lines[1:k])
                return Node('yaml', 0, lines[k].offset + len(lines[k].body), value=value), k + 1
        return None

    # -------------------------------------------------------------------------
    # Dispatch
    # -------------------------------------------------------------------------

    def _blocks(self, lines: List[Line]) -> List[Node]:
        nodes: List[Node] = []
        i = 0
        while i < len(lines):
            line = lines[i]
            if line.is_blank():
                i += 1
                continue
            body = line.body

            if _indent_width(body) >= 4:
                node, i = self._indented_code(lines, i)
            elif self._fence(body):
                node, i = self._fenced_code(lines, i, self._fence(body))
            elif MATH_OPEN_RE.match(body):
                node, i = self._math(lines, i)
            elif html_kind(body):
                node, i = self._html(lines, i, html_kind(body))
            elif ATX_RE.match(body):
                node, i = self._atx_heading(lines, i)
            elif THEMATIC_RE.match(body):
                node = Node('thematicBreak', line.offset + _leading(body), line.end)
                i += 1
            elif QUOTE_RE.match(body):
                node, i = self._blockquote(lines, i)
            elif list_marker(body):
                node, i = self._list(lines, i)
            elif self._is_table_start(lines, i):
                node, i = self._table(lines, i)
            elif FOOTNOTE_DEF_RE.match(body):
                node, i = self._footnote_definition(lines, i)
            elif DEFINITION_RE.match(body):
                node, i = self._definition(lines, i)
            else:
                node, i = self._paragraph(lines, i)
            nodes.append(node)
        return nodes

    @staticmethod
    def _fence(body: str):
        m = FENCE_RE.match(body)
        if m and not (m.group(2)[0] == '`' and '`' in m.group(3)):
            return m
        return None

    def _interrupts(self, line: Line) -> bool:
        """Whether ``line`` starts a block that ends an open paragraph."""
        body = line.body
        if _indent_width(body) >= 4:
            return False
        if ATX_RE.match(body) or THEMATIC_RE.match(body) or QUOTE_RE.match(body):
            return True
        if self._fence(body) or MATH_OPEN_RE.match(body):
            return True
        kind = html_kind(body)
        if kind and kind != 'tag':
            return True
        marker = list_marker(body)
        return bool(marker and not marker.empty and (not marker.ordered or marker.number == 1))

    def _paragraph_like(self, line: Line) -> bool:
        """Whether ``line`` can be the tail of an open paragraph."""
        body = line.body
        return (not line.is_blank() and _indent_width(body) < 4 and not self._interrupts(line)
                and not SETEXT_RE.match(body) and html_kind(body) is None)

    # -------------------------------------------------------------------------
    # Leaf blocks
    # -------------------------------------------------------------------------

    def _indented_code(self, lines: List[Line], i: int) -> Tuple[Node, int]:
        last = i
        j = i
        while j < len(lines):
            if lines[j].is_blank():
                j += 1
            elif _indent_width(lines[j].body) >= 4:
                last = j
                j += 1
            else:
                break
        value = '\n'.join(_strip_indent(l, 4).body for l in lines[i:last + 1])
        return Node('code', lines[i].offset, lines[last].end, value=value), last + 1

    def _fenced_code(self, lines: List[Line], i: int, m) -> Tuple[Node, int]:
        line = lines[i]
        fence = m.group(2)
        close = None
        for j in range(i + 1, len(lines)):
            cm = FENCE_CLOSE_RE.match(lines[j].body)
            if cm and cm.group(1)[0] == fence[0] and len(cm.group(1)) >= len(fence):
                close = j
                break
        last = close if close is not None else len(lines) - 1
        value = '\n'.join(l.body for l in lines[i + 1:close if close is not None else len(lines)])
        end = lines[last].offset + len(lines[last].body)
        return Node('code', line.offset + len(m.group(1)), end, value=value), last + 1

    def _math(self, lines: List[Line], i: int) -> Tuple[Node, int]:
        line = lines[i]
        start = line.offset + _leading(line.body)
        rest = line.body.strip()[2:]
        if len(rest.rstrip()) >= 2 and rest.rstrip().endswith('$$'):
            return Node('math', start, line.end, value=rest.rstrip()[:-2]), i + 1
        last = len(lines) - 1
        for j in range(i + 1, len(lines)):
            if lines[j].body.rstrip().endswith('$$'):
                last = j
                break
        value = '\n'.join(l.body for l in lines[i + 1:last])
        return Node('math', start, lines[last].offset + len(lines[last].body), value=value), last + 1

    def _html(self, lines: List[Line], i: int, kind: str) -> Tuple[Node, int]:
        line = lines[i]
        last = len(lines) - 1
        if kind == 'comment':
            terminator = '-->'
        elif kind == 'raw':
            terminator = '</' + HTML_RAW_RE.match(line.body).group(1).lower() + '>'
        else:
            terminator = None

        for j in range(i, len(lines)):
            body = lines[j].body
            if terminator is not None:
                if terminator in body.lower():
                    last = j
                    break
            elif lines[j].is_blank():
                last = j - 1
                break
        value = '\n'.join(l.body for l in lines[i:last + 1])
        start = line.offset + _leading(line.body)
        return Node('html', start, lines[last].offset + len(lines[last].body), value=value), last + 1

    def _atx_heading(self, lines: List[Line], i: int) -> Tuple[Node, int]:
        line = lines[i]
        body = line.body
        m = ATX_RE.match(body)
        content_start = m.end() + _leading(body[m.end():])
        content = body[content_start:].rstrip()
        closing = ATX_CLOSE_RE.search(content)
        if closing:
            content = content[:closing.start()].rstrip()

        node = Node('heading', line.offset + len(m.group(1)), line.end, depth=len(m.group(2)))
        if content:
            self._queue_inlines(node, [(content, line.offset + content_start)])
        return node, i + 1

    def _definition(self, lines: List[Line], i: int) -> Tuple[Node, int]:
        line = lines[i]
        m = DEFINITION_RE.match(line.body)
        label = normalize_label(m.group(1))
        self.definitions.add(label)
        url = m.group(2)
        if url.startswith('<') and url.endswith('>'):
            url = url[1:-1]
        return Node('definition', line.offset + _leading(line.body), line.end, url=url, label=label), i + 1

    def _paragraph(self, lines: List[Line], i: int) -> Tuple[Node, int]:
        para = [lines[i]]
        j = i + 1
        underline = None
        while j < len(lines):
            line = lines[j]
            if line.is_blank():
                break
            if SETEXT_RE.match(line.body):
                underline = line
                j += 1
                break
            if self._interrupts(line):
                break
            para.append(line)
            j += 1

        pieces = []
        for k, line in enumerate(para):
            lead = _leading(line.text)
            content = line.text[lead:]
            if k == len(para) - 1:
                content = content.rstrip()
            pieces.append((content, line.offset + lead))

        start = pieces[0][1]
        if underline is not None:
            depth = 1 if underline.body.strip()[0] == '=' else 2
            node = Node('heading', start, underline.end, depth=depth)
        else:
            node = Node('paragraph', start, pieces[-1][1] + len(pieces[-1][0]))
        self._queue_inlines(node, pieces)
        return node, j

    # -------------------------------------------------------------------------
    # Containers
    # -------------------------------------------------------------------------

    def _blockquote(self, lines: List[Line], i: int) -> Tuple[Node, int]:
        inner: List[Line] = []
        last = i
        j = i
        while j < len(lines):
            line = lines[j]
            m = QUOTE_RE.match(line.body)
            if m:
                inner.append(line.advance(m.end()))
            elif inner and self._paragraph_like(line) and self._paragraph_like(inner[-1]):
                inner.append(line)
            else:
                break
            last = j
            j += 1

        start = lines[i].offset + _leading(lines[i].body)
        return Node('blockquote', start, lines[last].end, children=self._blocks(inner)), last + 1

    def _list(self, lines: List[Line], i: int) -> Tuple[Node, int]:
        items: List[Node] = []
        kind = None
        ordered = False
        j = i
        while j < len(lines):
            k = j
            while k < len(lines) and lines[k].is_blank():
                k += 1
            if k >= len(lines):
                break
            body = lines[k].body
            marker = list_marker(body)
            if marker is None or THEMATIC_RE.match(body) or (kind is not None and marker.kind != kind):
                break
            item, j = self._list_item(lines, k, marker)
            items.append(item)
            kind = marker.kind
            ordered = marker.ordered

        spread = any(item.spread for item in items) or any(
            self._blank_between(a, b) for a, b in zip(items, items[1:]))
        node = Node('list', items[0].start, items[-1].end, children=items, ordered=ordered, spread=spread)
        return node, j

    def _list_item(self, lines: List[Line], i: int, marker: ListMarker) -> Tuple[Node, int]:
        first = lines[i]
        content = first.advance(marker.content_start)
        checked = None
        task = TASK_RE.match(content.body)
        if task:
            checked = task.group(1) != ' '
            content = content.advance(task.end())

        # Width of the marker plus its padding, in columns
        content_indent = _indent_width(' ' * marker.content_start)
        inner = [content]
        last = i
        j = i + 1
        while j < len(lines):
            line = lines[j]
            if line.is_blank():
                if content.is_blank() and j == i + 1:
                    break
                inner.append(line)
            elif _indent_width(line.body) >= content_indent:
                inner.append(_strip_indent(line, content_indent))
                last = j
            elif (not lines[j - 1].is_blank() and self._paragraph_like(line)
                  and self._paragraph_like(inner[-1]) and not list_marker(line.body)):
                inner.append(line)
                last = j
            else:
                break
            j += 1
        inner = inner[:last - i + 1]

        children = self._blocks(inner)
        spread = any(self._blank_between(a, b) for a, b in zip(children, children[1:]))
        start = first.offset + marker.indent
        node = Node('listItem', start, max(lines[last].end, start + 1),
                    children=children, spread=spread, checked=checked)
        return node, last + 1

    def _blank_between(self, a: Node, b: Node) -> bool:
        return self.text.count('\n', a.end, b.start) >= 2

    def _is_table_start(self, lines: List[Line], i: int) -> bool:
        if i + 1 >= len(lines) or '|' not in lines[i].body:
            return False
        delimiter = lines[i + 1].body
        if not TABLE_DELIM_RE.match(delimiter):
            return False
        if '|' not in delimiter and len(split_row(lines[i])) < 2:
            return False
        return len(split_row(lines[i])) == len(split_row(lines[i + 1]))

    def _table(self, lines: List[Line], i: int) -> Tuple[Node, int]:
        rows = [self._table_row(lines[i])]
        j = i + 2
        while j < len(lines) and not lines[j].is_blank() and not self._interrupts(lines[j]):
            rows.append(self._table_row(lines[j]))
            j += 1
        return Node('table', rows[0].start, rows[-1].end, children=rows), j

    def _table_row(self, line: Line) -> Node:
        cells = []
        for content, offset in split_row(line):
            cell = Node('tableCell', offset, offset + len(content))
            self._queue_inlines(cell, [(content, offset)] if content else [])
            cells.append(cell)
        return Node('tableRow', line.offset + _leading(line.body), line.end, children=cells)

    def _footnote_definition(self, lines: List[Line], i: int) -> Tuple[Node, int]:
        line = lines[i]
        m = FOOTNOTE_DEF_RE.match(line.body)
        inner = [line.advance(m.end())]
        last = i
        j = i + 1
        while j < len(lines):
            current = lines[j]
            if current.is_blank():
                inner.append(current)
            elif _indent_width(current.body) >= 4:
                inner.append(_strip_indent(current, 4))
                last = j
            elif (not lines[j - 1].is_blank() and self._paragraph_like(current)
                  and not FOOTNOTE_DEF_RE.match(current.body)
                  and not DEFINITION_RE.match(current.body)):
                inner.append(current)
                last = j
            else:
                break
            j += 1
        inner = inner[:last - i + 1]

        start = line.offset + len(m.group(1))
        node = Node('footnoteDefinition', start, lines[last].end,
                    children=self._blocks(inner), label=m.group(2))
        return node, last + 1


def parse(text: str) -> Node:
    """Parse ``text`` into a ``root`` node."""
    return BlockParser(text).parse()
