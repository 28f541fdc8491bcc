"""Tests for relation bookkeeping and forest construction."""

from fetchers.document_graph import (
    build_document_tree,
    map_wiki_object_kind,
    merge_parent_relation,
    resource_id,
    serialize_relations,
)
from models import DocumentItem, DocumentRelation, ResourceKind


def make_item(item_id):
    kind, _, token = item_id.partition(':')
    return DocumentItem(id=item_id, kind=ResourceKind(kind), token=token,
                        url=f"https://a.feishu.cn/{kind}/{token}", depth=0)


def tree_ids(node):
    return (node.id, [tree_ids(child) for child in node.children])


def max_repeats_on_path(node, trail=()):
    """Largest number of times any id occurs on a single root-to-leaf path."""
    path = trail + (node.id,)
    if not node.children:
        return max(path.count(item) for item in path)
    return max(max_repeats_on_path(child, path) for child in node.children)


class TestRelations:
    def test_resource_id(self):
        assert resource_id(ResourceKind.WIKI, 'abc') == 'wiki:abc'

    def test_merge_parent_relation_deduplicates(self):
        item = make_item('docx:b')
        relations = {}

        merge_parent_relation(item, 'docx:a', relations)
        merge_parent_relation(item, 'wiki:w', relations)
        merge_parent_relation(item, 'docx:a', relations)
        merge_parent_relation(item, None, relations)

        assert item.parent_ids == ['docx:a', 'wiki:w']
        assert list(relations) == ['docx:a=>docx:b', 'wiki:w=>docx:b']

    def test_serialize_relations_keeps_order(self):
        relations = serialize_relations(['docx:a=>docx:b', 'wiki:w=>docx:b'])

        assert relations == [
            DocumentRelation(parent_id='docx:a', child_id='docx:b'),
            DocumentRelation(parent_id='wiki:w', child_id='docx:b'),
        ]

    def test_map_wiki_object_kind(self):
        assert map_wiki_object_kind('docx') == ResourceKind.DOCX
        assert map_wiki_object_kind('DOC') == ResourceKind.DOCX
        assert map_wiki_object_kind('bitable') == ResourceKind.BASE
        assert map_wiki_object_kind('file') == ResourceKind.UNKNOWN
        assert map_wiki_object_kind(None) == ResourceKind.UNKNOWN


class TestBuildDocumentTree:
    def test_children_attach_in_relation_order(self):
        documents = [make_item(i) for i in ('docx:root', 'docx:a', 'docx:b', 'docx:c')]
        relations = [
            DocumentRelation('docx:root', 'docx:b'),
            DocumentRelation('docx:root', 'docx:a'),
            DocumentRelation('docx:a', 'docx:c'),
        ]

        tree = build_document_tree(documents, relations)

        assert [tree_ids(node) for node in tree] == [
            ('docx:root', [('docx:b', []), ('docx:a', [('docx:c', [])])]),
        ]

    def test_relations_to_unknown_ids_are_ignored(self):
        documents = [make_item('docx:a'), make_item('docx:b')]
        relations = [DocumentRelation('docx:ghost', 'docx:b'), DocumentRelation('docx:a', 'docx:ghost')]

        tree = build_document_tree(documents, relations)

        assert [tree_ids(node) for node in tree] == [('docx:a', []), ('docx:b', [])]

    def test_shared_child_appears_under_every_parent(self):
        documents = [make_item(i) for i in ('docx:r', 'docx:x', 'docx:y', 'docx:shared')]
        relations = [
            DocumentRelation('docx:r', 'docx:x'),
            DocumentRelation('docx:r', 'docx:y'),
            DocumentRelation('docx:x', 'docx:shared'),
            DocumentRelation('docx:y', 'docx:shared'),
        ]

        tree = build_document_tree(documents, relations)

        assert tree_ids(tree[0]) == (
            'docx:r', [('docx:x', [('docx:shared', [])]), ('docx:y', [('docx:shared', [])])]
        )

    def test_cycle_is_truncated(self):
        documents = [make_item(i) for i in ('docx:r', 'docx:a', 'docx:b')]
        relations = [
            DocumentRelation('docx:r', 'docx:a'),
            DocumentRelation('docx:a', 'docx:b'),
            DocumentRelation('docx:b', 'docx:a'),
        ]

        tree = build_document_tree(documents, relations)

        assert tree_ids(tree[0]) == ('docx:r', [('docx:a', [('docx:b', [('docx:a', [])])])])
        assert max_repeats_on_path(tree[0]) <= 2

    def test_self_loop_is_truncated(self):
        documents = [make_item('docx:r'), make_item('docx:s')]
        relations = [DocumentRelation('docx:r', 'docx:s'), DocumentRelation('docx:s', 'docx:s')]

        tree = build_document_tree(documents, relations)

        assert tree_ids(tree[0]) == ('docx:r', [('docx:s', [('docx:s', [])])])

    def test_reentered_node_has_no_children(self):
        documents = [make_item(i) for i in ('docx:r', 'docx:a', 'docx:b', 'docx:c')]
        relations = [
            DocumentRelation('docx:r', 'docx:a'),
            DocumentRelation('docx:a', 'docx:b'),
            DocumentRelation('docx:b', 'docx:c'),
            DocumentRelation('docx:c', 'docx:a'),
        ]

        tree = build_document_tree(documents, relations)

        node = tree[0]
        for expected in ('docx:a', 'docx:b', 'docx:c', 'docx:a'):
            assert len(node.children) == 1
            node = node.children[0]
            assert node.id == expected
        assert node.children == []
