"""Tests for Feishu URL parsing and link extraction."""

import unittest

from models import ResourceKind
from resource_locator import extract_feishu_links, parse_feishu_resource


class TestParseFeishuResource(unittest.TestCase):
    def test_docx_url(self):
        resource = parse_feishu_resource('https://my.feishu.cn/docx/AbC123?from=home#section')

        self.assertEqual(resource.kind, ResourceKind.DOCX)
        self.assertEqual(resource.token, 'AbC123')
        self.assertEqual(resource.url, 'https://my.feishu.cn/docx/AbC123')
        self.assertEqual(resource.id, 'docx:AbC123')

    def test_kind_aliases(self):
        """Alias path segments map onto one canonical kind."""
        self.assertEqual(parse_feishu_resource('https://x.feishu.cn/sheets/s1').kind, ResourceKind.SHEET)
        self.assertEqual(parse_feishu_resource('https://x.feishu.cn/sheet/s1').kind, ResourceKind.SHEET)
        self.assertEqual(parse_feishu_resource('https://x.feishu.cn/bitable/b1').kind, ResourceKind.BASE)
        self.assertEqual(parse_feishu_resource('https://x.larksuite.com/wiki/w1').kind, ResourceKind.WIKI)

    def test_host_is_lowercased_in_canonical_url(self):
        resource = parse_feishu_resource('https://My.Feishu.CN/wiki/Tok')
        self.assertEqual(resource.url, 'https://my.feishu.cn/wiki/Tok')

    def test_rejects_non_feishu_urls(self):
        self.assertIsNone(parse_feishu_resource('https://example.com/docx/abc'))
        self.assertIsNone(parse_feishu_resource('ftp://my.feishu.cn/docx/abc'))
        self.assertIsNone(parse_feishu_resource('https://my.feishu.cn/docx'))
        self.assertIsNone(parse_feishu_resource('https://my.feishu.cn/drive/folder/abc'))
        self.assertIsNone(parse_feishu_resource('not a url'))
        self.assertIsNone(parse_feishu_resource(None))


class TestExtractFeishuLinks(unittest.TestCase):
    def test_nested_structures_are_scanned_in_order(self):
        payload = {
            'items': [
                {'text': {'elements': [{'text_run': {'content': 'see https://a.feishu.cn/docx/one now'}}]}},
                {'link': {'url': 'https://a.feishu.cn/wiki/two?x=1'}},
            ],
            'tail': ('https://a.feishu.cn/docx/one', 'https://example.com/docx/three'),
        }

        links = extract_feishu_links(payload)

        self.assertEqual(links, ['https://a.feishu.cn/docx/one', 'https://a.feishu.cn/wiki/two'])

    def test_duplicates_collapse_to_first_occurrence(self):
        text = ('https://a.feishu.cn/docx/abc https://a.feishu.cn/docx/abc?from=x '
                'https://a.feishu.cn/wiki/def')

        self.assertEqual(
            extract_feishu_links(text),
            ['https://a.feishu.cn/docx/abc', 'https://a.feishu.cn/wiki/def'],
        )

    def test_non_string_scalars_are_ignored(self):
        self.assertEqual(extract_feishu_links({'a': 1, 'b': None, 'c': [True, 2.5]}), [])
