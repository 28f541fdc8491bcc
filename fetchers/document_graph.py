"""Identity keys, relation bookkeeping and forest construction for discovered documents."""

from typing import Dict, List, Optional, Set

from models import DocumentItem, DocumentRelation, DocumentTreeNode, ResourceKind

RELATION_SEPARATOR = '=>'

WIKI_OBJECT_KINDS = {
    'docx': ResourceKind.DOCX,
    'doc': ResourceKind.DOCX,
    'sheet': ResourceKind.SHEET,
    'sheets': ResourceKind.SHEET,
    'bitable': ResourceKind.BASE,
    'base': ResourceKind.BASE,
    'slides': ResourceKind.SLIDES,
    'wiki': ResourceKind.WIKI,
}


def resource_id(kind: ResourceKind, token: str) -> str:
    return f"{kind.value}:{token}"


def map_wiki_object_kind(obj_kind: Optional[str]) -> ResourceKind:
    """Map a wiki node's obj_type onto the resource kind it can be crawled as."""
    return WIKI_OBJECT_KINDS.get((obj_kind or '').lower(), ResourceKind.UNKNOWN)


def merge_parent_relation(item: DocumentItem, parent_id: Optional[str], relations: Dict[str, None]) -> None:
    """Record parent_id as a parent of item, at most once.

    relations is used as an insertion-ordered set of "parent=>child" keys.
    """
    if not parent_id:
        return

    if parent_id not in item.parent_ids:
        item.parent_ids.append(parent_id)

    relations.setdefault(f"{parent_id}{RELATION_SEPARATOR}{item.id}", None)


def serialize_relations(relations) -> List[DocumentRelation]:
    """Turn "parent=>child" strings into relation records, keeping iteration order."""
    serialized = []
    for relation in relations:
        parent_id, _, child_id = relation.partition(RELATION_SEPARATOR)
        serialized.append(DocumentRelation(parent_id=parent_id, child_id=child_id))
    return serialized


def build_document_tree(
    documents: List[DocumentItem],
    relations: List[DocumentRelation]
) -> List[DocumentTreeNode]:
    """
    Build the rooted forest of discovered documents.

    A document is a root when no relation between known documents names it as
    a child. A node that reappears on its own root-to-node path is emitted
    with no children, which truncates every relation cycle.

    Args:
        documents: Discovered documents in discovery order
        relations: Parent/child relations

    Returns:
        List of root DocumentTreeNode objects
    """
    known_ids = {item.id for item in documents}
    children_by_parent: Dict[str, List[str]] = {}
    child_ids: Set[str] = set()

    for relation in relations:
        if relation.parent_id not in known_ids or relation.child_id not in known_ids:
            continue
        child_ids.add(relation.child_id)
        children_by_parent.setdefault(relation.parent_id, []).append(relation.child_id)

    return [
        _to_tree_node(item.id, children_by_parent, frozenset())
        for item in documents
        if item.id not in child_ids
    ]


def _to_tree_node(node_id: str, children_by_parent: Dict[str, List[str]], trail: frozenset) -> DocumentTreeNode:
    if node_id in trail:
        return DocumentTreeNode(id=node_id)

    next_trail = trail | {node_id}
    return DocumentTreeNode(
        id=node_id,
        children=[
            _to_tree_node(child_id, children_by_parent, next_trail)
            for child_id in children_by_parent.get(node_id, [])
        ],
    )


__all__ = [
    'resource_id',
    'map_wiki_object_kind',
    'merge_parent_relation',
    'serialize_relations',
    'build_document_tree',
]
