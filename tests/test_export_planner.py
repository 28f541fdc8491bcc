"""Tests for export path planning."""

from exporters import build_export_plan, is_wiki_mapped_docx_child, sanitize_path_segment
from models import DiscoverResult, DocumentItem, DocumentTreeNode, ResourceKind


def item(kind, token, title=None, obj_kind=None, obj_token=None):
    return DocumentItem(id=f"{kind}:{token}", kind=ResourceKind(kind), token=token,
                        url=f"https://a.feishu.cn/{kind}/{token}", depth=0, title=title,
                        obj_kind=obj_kind, obj_token=obj_token)


def node(node_id, *children):
    return DocumentTreeNode(id=node_id, children=list(children))


def manifest(documents, tree):
    return DiscoverResult(generated_at='2026-01-01T00:00:00.000Z', root_url=documents[0].url,
                          total=len(documents), documents=documents, tree=tree)


def paths(plan):
    return [(entry.item.id, '/'.join(entry.path_segments)) for entry in plan]


class TestSanitizePathSegment:
    def test_illegal_characters_replaced(self):
        assert sanitize_path_segment('a/b:c*?', 'fallback') == 'a-b-c'

    def test_whitespace_collapsed_and_trimmed(self):
        assert sanitize_path_segment('  Release   notes\t2024 ') == 'Release notes 2024'

    def test_fallback_for_empty_titles(self):
        assert sanitize_path_segment(None, 'docx-abc') == 'docx-abc'
        assert sanitize_path_segment('   ', 'docx-abc') == 'docx-abc'
        assert sanitize_path_segment('???', 'docx-abc') == 'docx-abc'

    def test_unicode_titles_survive(self):
        assert sanitize_path_segment('产品 文档') == '产品 文档'


class TestBuildExportPlan:
    def test_nested_paths_follow_tree(self):
        documents = [item('docx', 'r', 'Root'), item('docx', 'a', 'Child'), item('docx', 'b')]
        plan = build_export_plan(manifest(documents, [node('docx:r', node('docx:a', node('docx:b')))]))

        assert paths(plan) == [
            ('docx:r', 'Root'),
            ('docx:a', 'Root/Child'),
            ('docx:b', 'Root/Child/docx-b'),
        ]

    def test_sibling_collisions_get_suffixes(self):
        documents = [item('docx', 'r', 'Root'), item('docx', 'a', 'Same'), item('docx', 'b', 'Same'),
                     item('docx', 'c', 'Same'), item('docx', 'd', 'Same')]
        tree = [node('docx:r', node('docx:a'), node('docx:b'), node('docx:c', node('docx:d')))]

        plan = build_export_plan(manifest(documents, tree))

        assert paths(plan) == [
            ('docx:r', 'Root'),
            ('docx:a', 'Root/Same'),
            ('docx:b', 'Root/Same-2'),
            ('docx:c', 'Root/Same-3'),
            ('docx:d', 'Root/Same-3/Same'),
        ]

    def test_wiki_mapped_page_is_suppressed(self):
        wiki = item('wiki', 'w1', 'Home', obj_kind='docx', obj_token='d1')
        mapped = item('docx', 'd1', 'Home')
        other = item('docx', 'd2', 'Other')
        tree = [node('wiki:w1', node('docx:d1', node('docx:d2')))]

        plan = build_export_plan(manifest([wiki, mapped, other], tree))

        assert paths(plan) == [('wiki:w1', 'Home'), ('docx:d2', 'Home/Other')]

    def test_empty_tree_uses_flat_forest(self):
        documents = [item('docx', 'a', 'A'), item('docx', 'b', 'A')]

        plan = build_export_plan(manifest(documents, []))

        assert paths(plan) == [('docx:a', 'A'), ('docx:b', 'A-2')]

    def test_unknown_tree_ids_are_ignored(self):
        documents = [item('docx', 'a', 'A')]

        plan = build_export_plan(manifest(documents, [node('docx:ghost'), node('docx:a')]))

        assert paths(plan) == [('docx:a', 'A')]


class TestWikiMappedDocxChild:
    def test_requires_matching_token(self):
        wiki = item('wiki', 'w1', obj_kind='docx', obj_token='d1')
        assert is_wiki_mapped_docx_child(item('docx', 'd1'), wiki)
        assert not is_wiki_mapped_docx_child(item('docx', 'd2'), wiki)

    def test_requires_wiki_parent_and_docx_object(self):
        assert not is_wiki_mapped_docx_child(item('docx', 'd1'), None)
        assert not is_wiki_mapped_docx_child(item('docx', 'd1'), item('docx', 'x', obj_kind='docx', obj_token='d1'))
        assert not is_wiki_mapped_docx_child(item('docx', 'd1'), item('wiki', 'w', obj_kind='sheet', obj_token='d1'))
