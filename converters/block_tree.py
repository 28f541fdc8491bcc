"""Tagged block arena built from Feishu docx block listings.

Block listings arrive as loosely shaped dicts. The hierarchy may be declared
from the child side (a parent pointer), from the parent side (a list of child
ids or embedded child records), or both. Everything is resolved here in one
pass so the renderer can dispatch on ``BlockNode.block_type`` alone.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Tuple

logger = logging.getLogger('feishu_md_exporter.converters.block_tree')

HEADING_TYPES = tuple(f"heading{level}" for level in range(1, 7))
LIST_TYPES = frozenset({'bullet', 'ordered', 'todo'})
TABLE_TYPES = frozenset({'table', 'table_cell'})

# Payload keys naming a specific block type, checked in this order
SPECIFIC_PAYLOAD_KEYS = HEADING_TYPES + (
    'bullet', 'ordered', 'todo', 'code', 'quote', 'table', 'table_cell', 'page',
)

# Generic payload keys carrying paragraph-like text
GENERIC_PAYLOAD_KEYS = ('text', 'callout')

NUMERIC_BLOCK_TYPES = {
    1: 'page',
    2: 'paragraph',
    3: 'heading1',
    4: 'heading2',
    5: 'heading3',
    6: 'heading4',
    7: 'heading5',
    8: 'heading6',
    9: 'bullet',
    10: 'ordered',
    11: 'code',
    12: 'quote',
    13: 'ordered',
    14: 'todo',
    31: 'table',
    32: 'table_cell',
}

STRING_BLOCK_TYPES = {
    **{name: name for name in SPECIFIC_PAYLOAD_KEYS},
    'text': 'paragraph',
    'paragraph': 'paragraph',
    'callout': 'paragraph',
    'unordered': 'bullet',
    'bulleted': 'bullet',
    'numbered': 'ordered',
    'quote_container': 'quote',
    'tablecell': 'table_cell',
}

ID_KEYS = ('block_id', 'id', 'blockId')
PARENT_KEYS = ('parent_id', 'parentId', 'parent_block_id')
CHILD_LIST_KEYS = ('child_ids', 'children_ids')
CHILD_CONTAINER_KEYS = ('items', 'block_ids', 'ids')
TABLE_REFERENCE_KEYS = ('rows', 'cells', 'cell_ids')


@dataclass
class BlockNode:
    """A block with its hierarchy and type resolved."""

    id: str
    block_type: str
    payload: Any
    raw: Dict[str, Any]
    parent_id: Optional[str] = None
    children: List[str] = field(default_factory=list)

    @property
    def is_list_item(self) -> bool:
        return self.block_type in LIST_TYPES

    @property
    def heading_level(self) -> int:
        if self.block_type in HEADING_TYPES:
            return int(self.block_type[-1])
        return 0


def resolve_block_type(record: Dict[str, Any]) -> Tuple[str, Any]:
    """
    Resolve the type tag and payload of a raw block record.

    A specific payload key on the record wins, then a string type tag, then a
    numeric type code. Records matching none of these are paragraphs.

    Returns:
        Tuple of (block_type, payload)
    """
    for key in SPECIFIC_PAYLOAD_KEYS:
        if key in record and record[key] is not None:
            return key, record[key]

    block_type = None
    for key in ('block_type', 'type'):
        value = record.get(key)
        if isinstance(value, str) and value.strip():
            block_type = STRING_BLOCK_TYPES.get(value.strip().lower(), 'paragraph')
            break

    if block_type is None:
        numeric = record.get('block_type')
        if isinstance(numeric, int) and not isinstance(numeric, bool):
            block_type = NUMERIC_BLOCK_TYPES.get(numeric, 'paragraph')
        else:
            block_type = 'paragraph'

    return block_type, _find_payload(record, block_type)


def _find_payload(record: Dict[str, Any], block_type: str) -> Any:
    if block_type in record and record[block_type] is not None:
        return record[block_type]
    for key in GENERIC_PAYLOAD_KEYS:
        if key in record and record[key] is not None:
            return record[key]
    return record


def _first_string(record: Dict[str, Any], keys) -> Optional[str]:
    for key in keys:
        value = record.get(key)
        if isinstance(value, str) and value:
            return value
    return None


def read_block_id(record: Dict[str, Any]) -> Optional[str]:
    return _first_string(record, ID_KEYS)


def read_parent_id(record: Dict[str, Any]) -> Optional[str]:
    parent_id = _first_string(record, PARENT_KEYS)
    if parent_id:
        return parent_id

    parent = record.get('parent')
    if isinstance(parent, str) and parent:
        return parent
    if isinstance(parent, dict):
        return _first_string(parent, ('block_id', 'id'))
    return None


def read_child_references(record: Dict[str, Any]) -> List[Any]:
    """Child references in declaration order: id strings or embedded records."""
    references: List[Any] = []

    children = record.get('children')
    if isinstance(children, list):
        references.extend(children)
    elif isinstance(children, dict):
        for key in CHILD_CONTAINER_KEYS:
            value = children.get(key)
            if isinstance(value, list):
                references.extend(value)
                break

    for key in CHILD_LIST_KEYS:
        value = record.get(key)
        if isinstance(value, list):
            references.extend(value)

    return [ref for ref in references if isinstance(ref, dict) or (isinstance(ref, str) and ref)]


class BlockTree:
    """Arena of blocks keyed by id, plus the order blocks should be rendered in."""

    def __init__(self, blocks: Optional[List[Any]] = None):
        self.nodes: Dict[str, BlockNode] = {}
        self.order: List[BlockNode] = []
        self._anonymous_count = 0

        for block in blocks or []:
            if isinstance(block, dict):
                self._add(block, None)

        self._backfill_parents()
        logger.debug(f"Built block tree with {len(self.order)} blocks")

    def _add(self, record: Dict[str, Any], embedding_parent: Optional[str]) -> str:
        block_id = read_block_id(record)
        if block_id and block_id in self.nodes:
            return block_id

        if block_id is None:
            self._anonymous_count += 1
            block_id = f"#anonymous-{self._anonymous_count}"

        block_type, payload = resolve_block_type(record)
        node = BlockNode(
            id=block_id,
            block_type=block_type,
            payload=payload,
            raw=record,
            parent_id=read_parent_id(record) or embedding_parent,
        )
        self.nodes[block_id] = node
        self.order.append(node)

        for reference in read_child_references(record):
            if isinstance(reference, dict):
                child_id = self._add(reference, block_id)
            else:
                child_id = reference
            if child_id not in node.children:
                node.children.append(child_id)

        return block_id

    def _backfill_parents(self) -> None:
        for node in self.order:
            for child_id in node.children + self.table_references(node):
                child = self.nodes.get(child_id)
                if child is not None and child.parent_id is None and child.id != node.id:
                    child.parent_id = node.id

    def table_references(self, node: BlockNode) -> List[str]:
        """Block ids referenced from a table payload's cell lists."""
        if node.block_type != 'table' or not isinstance(node.payload, dict):
            return []

        references = []
        for key in TABLE_REFERENCE_KEYS:
            references.extend(_flatten_strings(node.payload.get(key)))
        return references

    def get(self, block_id: Optional[str]) -> Optional[BlockNode]:
        if block_id is None:
            return None
        return self.nodes.get(block_id)

    def ancestors(self, node: BlockNode) -> Iterator[BlockNode]:
        """Walk the parent chain, nearest first, stopping on unknown ids or cycles."""
        visited = {node.id}
        parent = self.get(node.parent_id)
        while parent is not None and parent.id not in visited:
            yield parent
            visited.add(parent.id)
            parent = self.get(parent.parent_id)

    def list_depth(self, node: BlockNode) -> int:
        return sum(1 for ancestor in self.ancestors(node) if ancestor.is_list_item)

    def has_list_ancestor(self, node: BlockNode) -> bool:
        return any(ancestor.is_list_item for ancestor in self.ancestors(node))

    def inside_table(self, node: BlockNode) -> bool:
        return any(ancestor.block_type in TABLE_TYPES for ancestor in self.ancestors(node))


def _flatten_strings(value: Any) -> List[str]:
    if isinstance(value, str):
        return [value]
    if isinstance(value, list):
        flattened: List[str] = []
        for item in value:
            flattened.extend(_flatten_strings(item))
        return flattened
    return []


__all__ = [
    'BlockNode',
    'BlockTree',
    'resolve_block_type',
    'read_block_id',
    'read_parent_id',
    'read_child_references',
    'LIST_TYPES',
    'HEADING_TYPES',
]
