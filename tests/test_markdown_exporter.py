"""Tests for writing planned documents to Markdown files."""

import pytest

from exporters import ManifestError, MarkdownExporter, export_markdown, write_manifest
from feishu_client import FeishuApiError
from models import (
    DiscoverResult,
    DocumentItem,
    DocumentTreeNode,
    DriveFileDownload,
    ExportOptions,
    ResourceKind,
    WikiNode,
)


def text_block(content, block_type=2, key='text'):
    return {'block_type': block_type, key: {'elements': [{'text_run': {'content': content}}]}}


def item(kind, token, title=None, obj_kind=None, obj_token=None):
    return DocumentItem(id=f"{kind}:{token}", kind=ResourceKind(kind), token=token,
                        url=f"https://a.feishu.cn/{kind}/{token}", depth=0, title=title,
                        obj_kind=obj_kind, obj_token=obj_token)


class FakeExportClient:
    def __init__(self, blocks=None, raw=None, files=None, wiki_nodes=None, failing=()):
        self.blocks = blocks or {}
        self.raw = raw or {}
        self.files = files or {}
        self.wiki_nodes = wiki_nodes or {}
        self.failing = set(failing)
        self.calls = []

    def get_docx_blocks(self, token):
        self.calls.append(('blocks', token))
        if token in self.failing:
            raise FeishuApiError(f"Feishu API error (/docx/v1/documents/{token}/blocks): 1770002 not found")
        return self.blocks.get(token, [])

    def get_docx_raw_content(self, token):
        self.calls.append(('raw', token))
        return self.raw.get(token)

    def download_drive_file(self, token):
        self.calls.append(('file', token))
        return self.files[token]

    def get_wiki_node(self, token):
        self.calls.append(('wiki', token))
        return self.wiki_nodes[token]


def run_export(tmp_path, documents, tree, client):
    manifest_path = tmp_path / 'out' / 'manifest.json'
    write_manifest(DiscoverResult(generated_at='2026-01-01T00:00:00.000Z', root_url=documents[0].url,
                                  total=len(documents), documents=documents, tree=tree), manifest_path)
    events = []
    options = ExportOptions(app_id='app', app_secret='secret', manifest_path=str(manifest_path),
                            output_dir_path=str(tmp_path / 'out'), on_progress=events.append)
    return export_markdown(options, client), events


class TestMarkdownExporter:
    def test_wiki_tree_is_written_to_nested_files(self, tmp_path):
        documents = [
            item('wiki', 'w1', 'Home', obj_kind='docx', obj_token='d1'),
            item('docx', 'd1', 'Home'),
            item('wiki', 'w2', 'Uploads: notes'),
        ]
        tree = [DocumentTreeNode('wiki:w1', [DocumentTreeNode('docx:d1'), DocumentTreeNode('wiki:w2')])]
        client = FakeExportClient(
            blocks={'d1': [text_block('Welcome')]},
            wiki_nodes={'w2': WikiNode(node_token='w2', obj_type='file', obj_token='f1')},
            files={'f1': DriveFileDownload(content='# Notes\n\nbody text', content_type='text/markdown')},
        )

        result, events = run_export(tmp_path, documents, tree, client)

        assert (result.total, result.written, result.skipped) == (2, 2, 0)
        assert (tmp_path / 'out' / 'Home.md').read_text(encoding='utf-8') == '# Home\n\nWelcome\n'
        assert (tmp_path / 'out' / 'Home' / 'Uploads- notes.md').read_text(encoding='utf-8') == \
            '# Notes\n\nbody text\n'
        assert ('wiki', 'w1') not in client.calls
        assert [event.status for event in events] == ['processing', 'success', 'processing', 'success']
        assert events[1].target_path.endswith('Home.md')

    def test_file_object_kind_is_downloaded_without_node_lookup(self, tmp_path):
        documents = [item('wiki', 'w1', 'Attachment', obj_kind='file', obj_token='f1')]
        client = FakeExportClient(files={'f1': DriveFileDownload(
            content='<html><head><title>x</title></head><body><h1>Title</h1><p>Para</p></body></html>',
            content_type='application/octet-stream',
            content_disposition="attachment; filename*=UTF-8''page.html",
        )})

        result, _ = run_export(tmp_path, documents, [DocumentTreeNode('wiki:w1')], client)

        assert result.written == 1
        assert client.calls == [('file', 'f1')]
        assert (tmp_path / 'out' / 'Attachment.md').read_text(encoding='utf-8') == '# Title\n\nPara\n'

    def test_shared_source_is_fetched_once(self, tmp_path):
        documents = [
            item('wiki', 'w1', 'One', obj_kind='docx', obj_token='d1'),
            item('wiki', 'w2', 'Two', obj_kind='docx', obj_token='d1'),
        ]
        tree = [DocumentTreeNode('wiki:w1'), DocumentTreeNode('wiki:w2')]
        client = FakeExportClient(blocks={'d1': [text_block('Shared body')]})

        result, _ = run_export(tmp_path, documents, tree, client)

        assert result.written == 2
        assert client.calls.count(('blocks', 'd1')) == 1
        # The cached markdown keeps the first entry's title
        assert (tmp_path / 'out' / 'Two.md').read_text(encoding='utf-8') == '# One\n\nShared body\n'

    def test_raw_content_fallback(self, tmp_path):
        documents = [item('docx', 'd1', 'Raw')]
        client = FakeExportClient(raw={'d1': 'plain body'})

        result, _ = run_export(tmp_path, documents, [DocumentTreeNode('docx:d1')], client)

        assert result.written == 1
        assert (tmp_path / 'out' / 'Raw.md').read_text(encoding='utf-8') == '# Raw\n\nplain body\n'

    def test_heading_only_document_is_skipped_and_stale_file_removed(self, tmp_path):
        stale = tmp_path / 'out' / 'Empty.md'
        stale.parent.mkdir(parents=True)
        stale.write_text('old content\n', encoding='utf-8')
        documents = [item('docx', 'd1', 'Empty')]
        client = FakeExportClient(blocks={'d1': [text_block('Section', block_type=4, key='heading2')]})

        result, events = run_export(tmp_path, documents, [DocumentTreeNode('docx:d1')], client)

        assert (result.written, result.skipped) == (0, 1)
        assert result.warnings == ['Skip docx:d1: markdown has no body content']
        assert not stale.exists()
        assert events[-1].status == 'skip'

    def test_unsupported_kinds_are_skipped(self, tmp_path):
        documents = [item('sheet', 's1', 'Sheet'), item('wiki', 'w1', 'Board', obj_kind='mindnote', obj_token='m1')]
        tree = [DocumentTreeNode('sheet:s1'), DocumentTreeNode('wiki:w1')]

        client = FakeExportClient(wiki_nodes={'w1': WikiNode(node_token='w1', obj_type='mindnote', obj_token='m1')})

        result, _ = run_export(tmp_path, documents, tree, client)

        assert client.calls == [('wiki', 'w1')]
        assert result.skipped == 2
        assert result.warnings == ['Skip sheet:s1: no docx source', 'Skip wiki:w1: no docx source']

    def test_unsupported_file_type_is_skipped(self, tmp_path):
        documents = [item('wiki', 'w1', 'Deck', obj_kind='file', obj_token='f1')]
        client = FakeExportClient(files={'f1': DriveFileDownload(content='PK', content_type='application/zip')})

        result, _ = run_export(tmp_path, documents, [DocumentTreeNode('wiki:w1')], client)

        assert result.warnings == ['Skip wiki:w1: unsupported file type application/zip']

    def test_fetch_failure_is_recorded_and_export_continues(self, tmp_path):
        documents = [item('docx', 'bad', 'Bad'), item('docx', 'good', 'Good')]
        tree = [DocumentTreeNode('docx:bad'), DocumentTreeNode('docx:good')]
        client = FakeExportClient(blocks={'good': [text_block('fine')]}, failing={'bad'})

        result, events = run_export(tmp_path, documents, tree, client)

        assert (result.written, result.skipped) == (1, 1)
        assert result.warnings[0].startswith('Failed to export docx:bad: ')
        assert 'error' in [event.status for event in events]
        assert (tmp_path / 'out' / 'Good.md').exists()

    def test_invalid_manifest_aborts(self, tmp_path):
        manifest_path = tmp_path / 'manifest.json'
        manifest_path.write_text('[]', encoding='utf-8')
        options = ExportOptions(app_id='a', app_secret='s', manifest_path=str(manifest_path),
                                output_dir_path=str(tmp_path))

        with pytest.raises(ManifestError):
            MarkdownExporter(options, FakeExportClient()).export()
