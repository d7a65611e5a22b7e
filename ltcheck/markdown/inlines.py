"""
Inline Markdown Parser
======================
Parses the inline content of a paragraph, heading or table cell.

The content arrives as ``(text, offset)`` pieces, one per source line with the
container prefix and leading whitespace already removed. The pieces are joined
with newlines, parsed, and every node is mapped back to source offsets, so a
``text`` node that spans lines also spans the prefixes between them.
"""

import re
import unicodedata
from bisect import bisect_right
from dataclasses import dataclass
from typing import AbstractSet, List, Sequence, Tuple

from .nodes import Node

ASCII_PUNCTUATION = frozenset('!"#$%&\'()*+,-./:;<=>?@[\\]^_`{|}~')

AUTOLINK_RE = re.compile(r'<([A-Za-z][A-Za-z0-9+.\-]{1,31}:[^<>\s]*)>')
EMAIL_AUTOLINK_RE = re.compile(
    r'<([A-Za-z0-9.!#$%&\'*+/=?^_`{|}~\-]+@[A-Za-z0-9](?:[A-Za-z0-9\-]{0,61}[A-Za-z0-9])?'
    r'(?:\.[A-Za-z0-9](?:[A-Za-z0-9\-]{0,61}[A-Za-z0-9])?)*)>')
INLINE_HTML_RE = re.compile(
    r'<!--.*?-->'
    r'|<\?.*?\?>'
    r'|<!\[CDATA\[.*?\]\]>'
    r'|<![A-Za-z][^>]*>'
    r'|</[A-Za-z][A-Za-z0-9\-]*\s*>'
    r'|<[A-Za-z][A-Za-z0-9\-]*'
    r'(?:\s+[A-Za-z_:][\w.:\-]*(?:\s*=\s*(?:[^\s"\'=<>`]+|\'[^\']*\'|"[^"]*"))?)*'
    r'\s*/?>',
    re.DOTALL)
BARE_URL_RE = re.compile(r'(?:https?://|www\.)[^\s<]*[^\s<?!.,:;*_~\'"]')
FOOTNOTE_REF_RE = re.compile(r'\[\^([^\]\s]+)\]')
LINK_TAIL_RE = re.compile(
    r'\(\s*(<[^<>\n]*>|(?:[^\s()\\]|\\.|\([^\s()]*\))*)'
    r'(?:\s+("(?:[^"\\]|\\.)*"|\'(?:[^\'\\]|\\.)*\'|\((?:[^()\\]|\\.)*\)))?\s*\)',
    re.DOTALL)
REF_LABEL_RE = re.compile(r'\[((?:[^\[\]\\]|\\.){0,999})\]')
PLAIN_RE = re.compile(r'[^\\`<!\[\]*_~ hw]+')


def normalize_label(label: str) -> str:
    """Reference labels match case-insensitively with collapsed whitespace."""
    return ' '.join(label.split()).casefold()


def _is_punct(ch: str) -> bool:
    return ch in ASCII_PUNCTUATION or unicodedata.category(ch).startswith(('P', 'S'))


def _trim_parens(url: str) -> str:
    while url.endswith(')') and url.count('(') < url.count(')'):
        url = url[:-1]
    return url


# =============================================================================
# Scratch items (positions are offsets into the joined content)
# =============================================================================

@dataclass
class _Text:
    start: int
    end: int
    value: str


@dataclass
class _Delim:
    char: str
    start: int
    count: int
    length: int
    can_open: bool
    can_close: bool


@dataclass
class _Bracket:
    start: int
    image: bool
    active: bool = True


def _finish(items: Sequence, text: str) -> List[Node]:
    """Turn scratch items into nodes, merging adjacent text."""
    nodes: List[Node] = []
    for item in items:
        if isinstance(item, _Text):
            start, end, value = item.start, item.end, item.value
        elif isinstance(item, _Delim):
            start, end = item.start, item.start + item.count
            value = text[start:end]
        elif isinstance(item, _Bracket):
            start, end = item.start, item.start + (2 if item.image else 1)
            value = text[start:end]
        else:
            nodes.append(item)
            continue
        if start == end:
            continue
        last = nodes[-1] if nodes else None
        if last is not None and last.type == 'text' and last.end == start:
            last.end = end
            last.value += value
        else:
            nodes.append(Node('text', start, end, value=value))
    return nodes


def _process_emphasis(items: Sequence, text: str) -> List:
    """Pair ``*``, ``_`` and ``~`` runs into emphasis, strong and delete nodes."""
    items = list(items)
    ci = 0
    while ci < len(items):
        closer = items[ci]
        if not (isinstance(closer, _Delim) and closer.can_close and closer.count):
            ci += 1
            continue

        oi = ci - 1
        while oi >= 0:
            opener = items[oi]
            if (isinstance(opener, _Delim) and opener.can_open and opener.count
                    and opener.char == closer.char):
                if opener.char == '~':
                    if opener.count == closer.count:
                        break
                elif not ((opener.can_close or closer.can_open)
                          and (opener.length + closer.length) % 3 == 0
                          and not (opener.length % 3 == 0 and closer.length % 3 == 0)):
                    break
            oi -= 1

        if oi < 0:
            ci += 1
            continue

        opener = items[oi]
        if closer.char == '~':
            use, kind = closer.count, 'delete'
        else:
            use = 2 if opener.count >= 2 and closer.count >= 2 else 1
            kind = 'strong' if use == 2 else 'emphasis'

        opener.count -= use
        node = Node(kind, opener.start + opener.count, closer.start + use,
                    children=_finish(items[oi + 1:ci], text))
        closer.start += use
        closer.count -= use

        head = items[:oi] + ([opener] if opener.count else []) + [node]
        tail = ([closer] if closer.count else []) + items[ci + 1:]
        items = head + tail
        ci = len(head)
    return items


class InlineParser:
    """Parser for one block's inline content."""

    def __init__(self, pieces: Sequence[Tuple[str, int]], definitions: AbstractSet[str] = frozenset()):
        self.pieces = list(pieces)
        self.definitions = definitions
        self.text = '\n'.join(t for t, _ in self.pieces)
        self._bases: List[int] = []
        base = 0
        for piece_text, _ in self.pieces:
            self._bases.append(base)
            base += len(piece_text) + 1
        self.items: List = []
        self.brackets: List[int] = []

    def parse(self) -> List[Node]:
        s = self.text
        n = len(s)
        i = 0
        while i < n:
            c = s[i]
            if c == '\\':
                i = self._escape(i)
            elif c == '`':
                i = self._code_span(i)
            elif c == '<':
                i = self._angle(i)
            elif c == '!' and s.startswith('[', i + 1):
                self.brackets.append(len(self.items))
                self.items.append(_Bracket(i, image=True))
                i += 2
            elif c == '[':
                m = FOOTNOTE_REF_RE.match(s, i)
                if m:
                    self.items.append(Node('footnoteReference', i, m.end(), label=m.group(1)))
                    i = m.end()
                else:
                    self.brackets.append(len(self.items))
                    self.items.append(_Bracket(i, image=False))
                    i += 1
            elif c == ']':
                i = self._close_bracket(i)
            elif c in '*_~':
                i = self._delimiter_run(i)
            elif c == ' ':
                i = self._spaces(i)
            elif c in 'hw' and (i == 0 or s[i - 1].isspace() or s[i - 1] in '*_~('):
                i = self._bare_url(i)
            else:
                m = PLAIN_RE.match(s, i)
                end = m.end() if m else i + 1
                self._push_text(i, end, s[i:end])
                i = end

        nodes = _finish(_process_emphasis(self.items, s), s)
        for node in nodes:
            self._map(node)
        return nodes

    # -------------------------------------------------------------------------
    # Constructs
    # -------------------------------------------------------------------------

    def _push_text(self, start: int, end: int, value: str):
        last = self.items[-1] if self.items else None
        if isinstance(last, _Text) and last.end == start:
            last.end = end
            last.value += value
        else:
            self.items.append(_Text(start, end, value))

    def _escape(self, i: int) -> int:
        s = self.text
        nxt = s[i + 1] if i + 1 < len(s) else ''
        if nxt == '\n':
            self.items.append(Node('break', i, i + 2))
            return i + 2
        if nxt and nxt in ASCII_PUNCTUATION:
            self._push_text(i, i + 2, nxt)
            return i + 2
        self._push_text(i, i + 1, '\\')
        return i + 1

    def _code_span(self, i: int) -> int:
        s = self.text
        j = i
        while j < len(s) and s[j] == '`':
            j += 1
        ticks = j - i
        k = j
        while True:
            k = s.find('`', k)
            if k < 0:
                break
            m = k
            while m < len(s) and s[m] == '`':
                m += 1
            if m - k == ticks:
                content = s[j:k].replace('\n', ' ')
                if len(content) >= 2 and content[0] == ' ' and content[-1] == ' ' and content.strip(' '):
                    content = content[1:-1]
                self.items.append(Node('inlineCode', i, m, value=content))
                return m
            k = m
        self._push_text(i, j, s[i:j])
        return j

    def _angle(self, i: int) -> int:
        s = self.text
        m = AUTOLINK_RE.match(s, i)
        if m:
            self.items.append(Node('link', i, m.end(), url=m.group(1)))
            return m.end()
        m = EMAIL_AUTOLINK_RE.match(s, i)
        if m:
            self.items.append(Node('link', i, m.end(), url='mailto:' + m.group(1)))
            return m.end()
        m = INLINE_HTML_RE.match(s, i)
        if m:
            self.items.append(Node('html', i, m.end(), value=m.group(0)))
            return m.end()
        self._push_text(i, i + 1, '<')
        return i + 1

    def _bare_url(self, i: int) -> int:
        s = self.text
        m = BARE_URL_RE.match(s, i)
        if not m:
            self._push_text(i, i + 1, s[i])
            return i + 1
        url = _trim_parens(m.group(0))
        end = i + len(url)
        if url.startswith('www.'):
            url = 'http://' + url
        self.items.append(Node('link', i, end, url=url))
        return end

    def _spaces(self, i: int) -> int:
        s = self.text
        j = i
        while j < len(s) and s[j] == ' ':
            j += 1
        if j < len(s) and s[j] == '\n' and j - i >= 2:
            self.items.append(Node('break', i, j + 1))
            return j + 1
        self._push_text(i, j, s[i:j])
        return j

    def _delimiter_run(self, i: int) -> int:
        s = self.text
        c = s[i]
        j = i
        while j < len(s) and s[j] == c:
            j += 1
        count = j - i
        before = s[i - 1] if i > 0 else '\n'
        after = s[j] if j < len(s) else '\n'

        left = not after.isspace() and (not _is_punct(after) or before.isspace() or _is_punct(before))
        right = not before.isspace() and (not _is_punct(before) or after.isspace() or _is_punct(after))
        if c == '_':
            can_open = left and (not right or _is_punct(before))
            can_close = right and (not left or _is_punct(after))
        elif c == '~' and count > 2:
            can_open = can_close = False
        else:
            can_open, can_close = left, right

        if can_open or can_close:
            self.items.append(_Delim(c, i, count, count, can_open, can_close))
        else:
            self._push_text(i, j, s[i:j])
        return j

    def _close_bracket(self, i: int) -> int:
        s = self.text
        if not self.brackets:
            self._push_text(i, i + 1, ']')
            return i + 1

        index = self.brackets.pop()
        opener = self.items[index]
        if not opener.active:
            self._push_text(i, i + 1, ']')
            return i + 1

        label_start = opener.start + (2 if opener.image else 1)
        end = None
        url = None
        label = None

        m = LINK_TAIL_RE.match(s, i + 1)
        if m:
            end = m.end()
            url = m.group(1)
            if url.startswith('<') and url.endswith('>'):
                url = url[1:-1]
        else:
            m = REF_LABEL_RE.match(s, i + 1)
            if m and m.group(1).strip():
                candidate = normalize_label(m.group(1))
                if candidate in self.definitions:
                    end, label = m.end(), candidate
            else:
                candidate = normalize_label(s[label_start:i])
                if candidate and candidate in self.definitions:
                    end = m.end() if m else i + 1
                    label = candidate

        if end is None:
            self._push_text(i, i + 1, ']')
            return i + 1

        if opener.image:
            node = Node('imageReference' if label else 'image', opener.start, end, url=url, label=label)
        else:
            children = _finish(_process_emphasis(self.items[index + 1:], s), s)
            node = Node('linkReference' if label else 'link', opener.start, end,
                        children=children, url=url, label=label)
            for b in self.brackets:
                if not self.items[b].image:
                    self.items[b].active = False

        del self.items[index:]
        self.items.append(node)
        return end

    # -------------------------------------------------------------------------
    # Offsets
    # -------------------------------------------------------------------------

    def _source_pos(self, i: int) -> int:
        k = bisect_right(self._bases, i) - 1
        return self.pieces[k][1] + (i - self._bases[k])

    def _map(self, node: Node):
        if node.type == 'text':
            node.line_starts = [self._source_pos(p + 1) for p in range(node.start, node.end - 1)
                                if self.text[p] == '\n']
        start = self._source_pos(node.start)
        end = self._source_pos(node.end - 1) + 1 if node.end > node.start else start
        node.start, node.end = start, end
        for child in node.children:
            self._map(child)


def parse_inlines(pieces: Sequence[Tuple[str, int]], definitions: AbstractSet[str] = frozenset()) -> List[Node]:
    """Inline nodes of one block, positioned in source offsets."""
    if not pieces:
        return []
    return InlineParser(pieces, definitions).parse()
