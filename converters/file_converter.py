"""Convert downloaded Feishu drive files to Markdown."""

import logging
import os
import re
from typing import Optional
from urllib.parse import unquote

from bs4 import BeautifulSoup
from markdownify import MarkdownConverter as MarkdownifyConverter

from models import DriveFileDownload
from .markdown_renderer import normalize_markdown

logger = logging.getLogger('feishu_md_exporter.converters.file_converter')

MARKDOWN_CONTENT_TYPES = ('text/markdown', 'text/x-markdown', 'text/plain')
HTML_CONTENT_TYPES = ('text/html', 'application/xhtml+xml')
MARKDOWN_SUFFIXES = ('.md', '.markdown', '.txt')
HTML_SUFFIXES = ('.html', '.htm')

FILENAME_STAR_PATTERN = re.compile(r"filename\*\s*=\s*(?:[\w-]+'[\w-]*')?\"?([^\";]+)\"?", re.IGNORECASE)
FILENAME_PATTERN = re.compile(r'filename\s*=\s*"?([^";]+)"?', re.IGNORECASE)


def parse_content_disposition_filename(content_disposition: Optional[str]) -> Optional[str]:
    """Extract the filename from a Content-Disposition header, preferring filename*."""
    if not content_disposition:
        return None

    match = FILENAME_STAR_PATTERN.search(content_disposition) or FILENAME_PATTERN.search(content_disposition)
    if not match:
        return None
    return unquote(match.group(1).strip()) or None


class DriveFileConverter(MarkdownifyConverter):
    """
    Turns a drive file download into Markdown.

    Markdown and plain-text files are used as they are; HTML files are
    converted with markdownify. Any other format is unsupported.
    """

    def __init__(self, **kwargs):
        markdownify_options = {
            'heading_style': 'ATX',
            'bullets': '-',
            'escape_asterisks': False,
            'escape_underscores': False,
        }
        markdownify_options.update(kwargs)
        super().__init__(**markdownify_options)

    def convert_download(self, download: DriveFileDownload) -> Optional[str]:
        """
        Convert a download to Markdown.

        Args:
            download: Downloaded file body with its headers

        Returns:
            Markdown text, or None when the file format is not supported
        """
        content_type = (download.content_type or '').split(';')[0].strip().lower()
        filename = parse_content_disposition_filename(download.content_disposition) or ''
        suffix = os.path.splitext(filename.lower())[1]

        logger.debug(f"Converting drive file (type={content_type or 'unknown'}, name={filename or 'unknown'})")

        if content_type in MARKDOWN_CONTENT_TYPES or suffix in MARKDOWN_SUFFIXES:
            return normalize_markdown(download.content.strip())

        if content_type in HTML_CONTENT_TYPES or suffix in HTML_SUFFIXES:
            return self.convert_standalone_html(download.content)

        return None

    def convert_standalone_html(self, html_content: str) -> str:
        """Convert an HTML document body to Markdown."""
        soup = BeautifulSoup(html_content, 'lxml')
        for element in soup(['script', 'style', 'head']):
            element.decompose()

        markdown = self.convert_soup(soup)

        # Replace 3+ consecutive newlines with 2 newlines
        while '\n\n\n' in markdown:
            markdown = markdown.replace('\n\n\n', '\n\n')

        return normalize_markdown(markdown.strip())


__all__ = ['DriveFileConverter', 'parse_content_disposition_filename']
