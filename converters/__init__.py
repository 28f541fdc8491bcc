"""Converters package for rendering Feishu documents to Markdown."""

import logging

from .block_tree import BlockNode, BlockTree
from .file_converter import DriveFileConverter
from .markdown_renderer import has_markdown_body_content, normalize_markdown, render_docx_markdown

logger = logging.getLogger('feishu_md_exporter.converters')


def convert_document(blocks, title=None, raw_content=None, logger=None):
    """
    Convenience function to render a docx document to Markdown.

    This runs the full rendering pipeline:
    1. Block tree reconstruction (ids, parent pointers, child lists)
    2. Per-block rendering (headings, lists, quotes, code, tables)
    3. Raw-content fallback when the blocks carry no body text
    4. Heading normalization outside fenced code

    Args:
        blocks: Block records from the docx block listing
        title: Optional document title
        raw_content: Optional plain-text document body
        logger: Optional logger instance (uses module logger if not provided)

    Returns:
        str: Markdown text, empty when there is nothing to render

    Example:
        >>> from converters import convert_document
        >>> convert_document([{'block_type': 3, 'heading1': {'elements': [{'text_run': {'content': 'Hi'}}]}}])
        '# Hi\\n'
    """
    if logger is None:
        logger = logging.getLogger('feishu_md_exporter.converters')

    markdown = render_docx_markdown(blocks=blocks, title=title, raw_content=raw_content)
    logger.debug(f"Rendered {len(blocks or [])} blocks into {len(markdown)} characters")
    return markdown


__all__ = [
    'convert_document',
    'render_docx_markdown',
    'normalize_markdown',
    'has_markdown_body_content',
    'BlockTree',
    'BlockNode',
    'DriveFileConverter',
]
