"""Tests for manifest persistence."""

import json

import pytest

from exporters import ManifestError, load_manifest, write_manifest
from models import DiscoverResult, DocumentItem, DocumentRelation, DocumentTreeNode, ResourceKind


def sample_result():
    root = DocumentItem(id='wiki:w1', kind=ResourceKind.WIKI, token='w1', url='https://a.feishu.cn/wiki/w1',
                        depth=0, title='首页', obj_kind='docx', obj_token='d1')
    child = DocumentItem(id='docx:d1', kind=ResourceKind.DOCX, token='d1', url='https://a.feishu.cn/docx/d1',
                         depth=0, title='首页', parent_id='wiki:w1', parent_ids=['wiki:w1'])
    return DiscoverResult(
        generated_at='2026-01-01T00:00:00.000Z',
        root_url='https://a.feishu.cn/wiki/w1',
        total=2,
        warnings=['something odd'],
        documents=[root, child],
        relations=[DocumentRelation('wiki:w1', 'docx:d1')],
        tree=[DocumentTreeNode('wiki:w1', [DocumentTreeNode('docx:d1')])],
    )


class TestManifest:
    def test_written_as_camel_case_json_with_trailing_newline(self, tmp_path):
        path = write_manifest(sample_result(), tmp_path / 'nested' / 'manifest.json')

        content = path.read_text(encoding='utf-8')
        assert content.endswith('}\n')
        assert '首页' in content
        data = json.loads(content)
        assert data['rootUrl'] == 'https://a.feishu.cn/wiki/w1'
        assert data['documents'][0]['objToken'] == 'd1'
        assert 'parentId' not in data['documents'][0]
        assert data['documents'][1]['parentIds'] == ['wiki:w1']
        assert data['relations'] == [{'parentId': 'wiki:w1', 'childId': 'docx:d1'}]
        assert data['tree'] == [{'id': 'wiki:w1', 'children': [{'id': 'docx:d1', 'children': []}]}]

    def test_load_restores_result(self, tmp_path):
        path = write_manifest(sample_result(), tmp_path / 'manifest.json')

        assert load_manifest(path) == sample_result()

    def test_missing_file(self, tmp_path):
        with pytest.raises(ManifestError, match='Cannot read manifest'):
            load_manifest(tmp_path / 'missing.json')

    def test_invalid_json(self, tmp_path):
        path = tmp_path / 'manifest.json'
        path.write_text('{not json', encoding='utf-8')

        with pytest.raises(ManifestError, match='Invalid JSON'):
            load_manifest(path)

    def test_wrong_shape(self, tmp_path):
        path = tmp_path / 'manifest.json'
        data = sample_result().to_dict()
        data['documents'][0]['depth'] = 'zero'
        path.write_text(json.dumps(data), encoding='utf-8')

        with pytest.raises(ManifestError, match='shape'):
            load_manifest(path)
