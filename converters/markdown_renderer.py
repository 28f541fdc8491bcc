"""Render Feishu docx block listings to Markdown."""

import logging
import re
from typing import Any, Dict, List, Optional, Tuple

from .block_tree import BlockNode, BlockTree
from .code_language import resolve_code_language
from .rich_text import escape_table_cell, join_nonempty, normalize_line, render_plain_text, render_rich_text

logger = logging.getLogger('feishu_md_exporter.converters.markdown_renderer')

HEADING_LINE_PATTERN = re.compile(r'^(#{1,6})\s+(.*)$')
FENCE_LINE_PATTERN = re.compile(r'^(`{3,}|~{3,})(.*)$')
BACKTICK_RUN_PATTERN = re.compile(r'`+')
BOLD_CODE_PATTERN = re.compile(r'\*\*(`+[^`]*?`+)\*\*')

ORDER_HINT_KEYS = ('order', 'number', 'start', 'sequence', 'seq')


def render_docx_markdown(
    blocks: Optional[List[Any]] = None,
    title: Optional[str] = None,
    raw_content: Optional[str] = None
) -> str:
    """
    Render a docx document to Markdown.

    Args:
        blocks: Block records as returned by the block listing endpoint
        title: Optional document title, rendered as a level-1 heading
        raw_content: Plain-text body used when the blocks produce no body

    Returns:
        Markdown text ending with a newline, or an empty string
    """
    sections: List[Tuple[bool, str]] = []

    heading = normalize_line(title or '')
    if heading:
        sections.append((False, f"# {heading}"))

    sections.extend(BlockRenderer(BlockTree(blocks)).render())

    raw = normalize_markdown(raw_content.strip()) if raw_content else ''
    if not sections:
        return f"{raw}\n" if raw else ''

    if raw and not any(not _is_heading_section(text) for _, text in sections):
        sections.append((False, raw))

    body = normalize_markdown(_join_sections(sections)).strip()
    return f"{body}\n" if body else ''


def normalize_markdown(markdown: str) -> str:
    """
    Repair heading formatting outside fenced code.

    Heading lines lose bold markers (bold wrapped around inline code is
    collapsed to the code span) and have their whitespace collapsed. Lines
    inside fences pass through untouched. List numbering is left alone.
    """
    lines = markdown.replace('\r\n', '\n').split('\n')
    normalized = []
    open_fence: Optional[str] = None

    for line in lines:
        fence = FENCE_LINE_PATTERN.match(line.strip())
        if open_fence is not None:
            # Only a bare run of the same character, at least as long, closes the fence
            if fence and fence.group(1)[0] == open_fence[0] and len(fence.group(1)) >= len(open_fence) \
                    and not fence.group(2).strip():
                open_fence = None
            normalized.append(line)
            continue

        if fence:
            open_fence = fence.group(1)
            normalized.append(line)
            continue

        match = HEADING_LINE_PATTERN.match(line)
        if match:
            text = BOLD_CODE_PATTERN.sub(r'\1', match.group(2)).replace('**', '')
            line = f"{match.group(1)} {' '.join(text.split())}".rstrip()

        normalized.append(line)

    return '\n'.join(normalized)


def has_markdown_body_content(markdown: str) -> bool:
    """True when the Markdown has at least one non-blank line that is not a heading."""
    for line in markdown.replace('\r\n', '\n').split('\n'):
        stripped = line.strip()
        if stripped and not HEADING_LINE_PATTERN.match(stripped):
            return True
    return False


def _is_heading_section(text: str) -> bool:
    return not has_markdown_body_content(text)


def _join_sections(sections: List[Tuple[bool, str]]) -> str:
    """Join rendered blocks: list items stay tight, everything else gets a blank line."""
    parts: List[str] = []
    previous_is_list = False

    for index, (is_list, text) in enumerate(sections):
        if index > 0:
            parts.append('\n' if is_list and previous_is_list else '\n\n')
        parts.append(text)
        previous_is_list = is_list

    return ''.join(parts)


class BlockRenderer:
    """Single rendering pass over a BlockTree."""

    def __init__(self, tree: BlockTree):
        self.tree = tree
        self.ordered_counters: Dict[Tuple[Optional[str], int], int] = {}

    def render(self) -> List[Tuple[bool, str]]:
        """
        Render every block in tree order.

        Returns:
            List of (is_list_item, markdown) sections
        """
        sections: List[Tuple[bool, str]] = []

        for node in self.tree.order:
            if node.block_type in ('page', 'table_cell') or self.tree.inside_table(node):
                continue

            text = self.render_block(node)
            if not text:
                continue

            if node.block_type != 'ordered' and not self.tree.has_list_ancestor(node):
                self.ordered_counters.clear()

            sections.append((node.is_list_item, text))

        return sections

    def render_block(self, node: BlockNode) -> str:
        if node.block_type == 'table':
            return '\n'.join(self.render_table(node))
        if node.block_type == 'code':
            return self.render_code(node)

        text = normalize_line(render_rich_text(node.payload))
        if not text:
            return ''

        if node.heading_level:
            return f"{'#' * node.heading_level} {text}"
        if node.is_list_item:
            indent = '  ' * self.tree.list_depth(node)
            return f"{indent}{self.list_marker(node)}{text}"
        if node.block_type == 'quote':
            return f"> {text}"
        return text

    def list_marker(self, node: BlockNode) -> str:
        if node.block_type == 'bullet':
            return '- '
        if node.block_type == 'todo':
            style = node.payload.get('style') if isinstance(node.payload, dict) else None
            done = isinstance(style, dict) and style.get('done') is True
            return '- [x] ' if done else '- [ ] '
        return f"{self.next_ordered_number(node)}. "

    def next_ordered_number(self, node: BlockNode) -> int:
        """Explicit hints render as-is and reset the counter of their (parent, depth) group."""
        key = (node.parent_id, self.tree.list_depth(node))
        hint = find_order_hint(node)
        number = hint if hint is not None else self.ordered_counters.get(key, 0) + 1
        self.ordered_counters[key] = number
        return number

    def render_code(self, node: BlockNode) -> str:
        content = render_plain_text(node.payload).replace('\r\n', '\n').strip()
        if not content:
            return ''
        language = resolve_code_language(node.payload, node.raw, content)
        fence = code_fence(content)
        return f"{fence}{language}\n{content}\n{fence}"

    def render_table(self, node: BlockNode) -> List[str]:
        matrix = self.table_matrix(node)
        width = max((len(row) for row in matrix), default=0)
        if width == 0:
            return []

        rows = [row + [''] * (width - len(row)) for row in matrix]

        lines = [_table_row(rows[0]), _table_row(['---'] * width)]
        lines.extend(_table_row(row) for row in rows[1:])
        return lines

    def table_matrix(self, node: BlockNode) -> List[List[str]]:
        payload = node.payload if isinstance(node.payload, dict) else {}
        size = _table_size(payload, node.raw)

        for key in ('rows', 'cells', 'cell_ids'):
            value = payload.get(key)
            if not isinstance(value, list) or not value:
                continue
            if all(isinstance(row, list) for row in value):
                return [[self.cell_text(cell) for cell in row] for row in value]
            columns = size[1] if size and size[1] > 0 else len(value)
            return [
                [self.cell_text(cell) for cell in value[start:start + columns]]
                for start in range(0, len(value), columns)
            ]

        if size:
            row_count, column_count = size
            if row_count > 0 and column_count > 0 and len(node.children) >= row_count * column_count:
                return [
                    [self.cell_text(cell) for cell in node.children[row * column_count:(row + 1) * column_count]]
                    for row in range(row_count)
                ]

        return []

    def cell_text(self, reference: Any) -> str:
        """Resolve a cell reference (block id, literal string or embedded record) to cell text."""
        if isinstance(reference, str):
            referenced = self.tree.get(reference)
            if referenced is None:
                return escape_table_cell(reference.strip())
            return escape_table_cell(self.block_text(referenced, set()))

        if isinstance(reference, dict):
            referenced = self.tree.get(reference.get('block_id') or reference.get('id'))
            if referenced is not None:
                return escape_table_cell(self.block_text(referenced, set()))
            return escape_table_cell(normalize_line(render_rich_text(reference)))

        return ''

    def block_text(self, node: BlockNode, visited: set) -> str:
        """Own text of a block followed by its descendants' text, one line each."""
        if node.id in visited:
            return ''
        visited.add(node.id)

        parts = []
        if node.block_type == 'code':
            parts.append(render_plain_text(node.payload).strip())
        elif node.block_type not in ('table', 'table_cell', 'page'):
            parts.append(normalize_line(render_rich_text(node.payload)))

        for child_id in node.children:
            child = self.tree.get(child_id)
            if child is not None:
                parts.append(self.block_text(child, visited))

        return join_nonempty(parts)


def find_order_hint(node: BlockNode) -> Optional[int]:
    """Explicit list number from the ordered payload, its style, the record or the record's style."""
    candidates = []
    if isinstance(node.payload, dict):
        candidates.extend([node.payload, node.payload.get('style')])
    candidates.extend([node.raw, node.raw.get('style')])

    for candidate in candidates:
        if not isinstance(candidate, dict):
            continue
        for key in ORDER_HINT_KEYS:
            number = _parse_order_number(candidate.get(key))
            if number is not None:
                return number
    return None


def _parse_order_number(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return None


def _table_size(payload: Dict[str, Any], record: Dict[str, Any]) -> Optional[Tuple[int, int]]:
    for source in (payload.get('property'), payload, record.get('property')):
        if not isinstance(source, dict):
            continue
        rows = source.get('row_size')
        columns = source.get('column_size')
        if isinstance(rows, int) and isinstance(columns, int):
            return rows, columns
    return None


def code_fence(content: str) -> str:
    """Backtick fence longer than any backtick run in content, at least three long."""
    longest_run = max((len(run) for run in BACKTICK_RUN_PATTERN.findall(content)), default=0)
    return '`' * max(3, longest_run + 1)


def _table_row(cells: List[str]) -> str:
    return f"| {' | '.join(cells)} |"


__all__ = [
    'render_docx_markdown',
    'normalize_markdown',
    'has_markdown_body_content',
    'BlockRenderer',
    'find_order_hint',
    'code_fence',
]
