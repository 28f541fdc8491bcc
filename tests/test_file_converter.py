"""Tests for converting drive file downloads to Markdown."""

import unittest

from converters.file_converter import DriveFileConverter, parse_content_disposition_filename
from models import DriveFileDownload


class TestContentDisposition(unittest.TestCase):
    def test_plain_filename(self):
        self.assertEqual(parse_content_disposition_filename('attachment; filename="notes.md"'), 'notes.md')

    def test_encoded_filename_preferred(self):
        header = "attachment; filename=\"fallback.txt\"; filename*=UTF-8''%E7%AC%94%E8%AE%B0.md"
        self.assertEqual(parse_content_disposition_filename(header), '笔记.md')

    def test_missing(self):
        self.assertIsNone(parse_content_disposition_filename(None))
        self.assertIsNone(parse_content_disposition_filename('inline'))


class TestDriveFileConverter(unittest.TestCase):
    def setUp(self):
        self.converter = DriveFileConverter()

    def test_markdown_is_kept(self):
        download = DriveFileDownload(content='\n# **Guide**\n\n- item\n', content_type='text/markdown; charset=utf-8')
        self.assertEqual(self.converter.convert_download(download), '# Guide\n\n- item')

    def test_detects_markdown_by_filename(self):
        download = DriveFileDownload(content='body', content_type='application/octet-stream',
                                     content_disposition='attachment; filename="readme.markdown"')
        self.assertEqual(self.converter.convert_download(download), 'body')

    def test_html_is_converted(self):
        html = ('<html><head><style>p {color: red}</style></head><body>'
                '<h2>Setup</h2><ul><li>one</li><li>two</li></ul>'
                '<script>alert(1)</script></body></html>')
        markdown = self.converter.convert_download(DriveFileDownload(content=html, content_type='text/html'))

        self.assertTrue(markdown.startswith('## Setup'))
        self.assertIn('- one', markdown)
        self.assertIn('- two', markdown)
        self.assertNotIn('alert', markdown)
        self.assertNotIn('color', markdown)
        self.assertNotIn('\n\n\n', markdown)

    def test_unsupported_type(self):
        download = DriveFileDownload(content='%PDF', content_type='application/pdf')
        self.assertIsNone(self.converter.convert_download(download))
