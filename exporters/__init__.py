"""Markdown export package for the Feishu document exporter.

This package turns a discovery manifest into a tree of Markdown files.

Package Structure:
- export_planner: Output paths and duplicate suppression from the document tree
- manifest: Reading and writing the discovery manifest
- markdown_exporter: Source resolution, rendering, caching and file output

Configuration Referenced:
- export.output_directory: Base output path for exported files
- export.manifest: Discovery manifest location
"""

from .export_planner import ExportPlanner, build_export_plan, is_wiki_mapped_docx_child, sanitize_path_segment
from .manifest import ManifestError, load_manifest, write_manifest
from .markdown_exporter import MarkdownExporter, UnsupportedSourceError, export_markdown

__all__ = [
    'ExportPlanner',
    'build_export_plan',
    'is_wiki_mapped_docx_child',
    'sanitize_path_segment',
    'ManifestError',
    'load_manifest',
    'write_manifest',
    'MarkdownExporter',
    'UnsupportedSourceError',
    'export_markdown',
]
