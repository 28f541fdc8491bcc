"""Export planned Feishu documents to Markdown files."""

import logging
import os
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from converters import DriveFileConverter, has_markdown_body_content, render_docx_markdown
from feishu_client import FeishuClient
from fetchers.document_graph import map_wiki_object_kind
from logger import ProgressTracker
from models import (
    DocumentItem,
    ExportMarkdownResult,
    ExportOptions,
    ExportPlanEntry,
    ExportProgressEvent,
    ResourceKind,
    utc_timestamp,
)
from .export_planner import build_export_plan
from .manifest import load_manifest

logger = logging.getLogger('feishu_md_exporter.exporters.markdown_exporter')

SOURCE_DOCX = 'docx'
SOURCE_FILE = 'file'


class UnsupportedSourceError(Exception):
    """A downloaded file has a format that cannot be turned into Markdown."""
    pass


class MarkdownExporter:
    """
    Writes one Markdown file per export plan entry.

    This exporter:
    1. Loads and shape-checks the discovery manifest
    2. Builds the export plan (paths from the document tree)
    3. Resolves each entry to a docx document or a drive file
    4. Fetches and renders each source once per run
    5. Writes files, or removes stale ones when a document has no body
    """

    def __init__(self, options: ExportOptions, client: Optional[FeishuClient] = None):
        """
        Initialize the markdown exporter.

        Args:
            options: Export options
            client: Optional preconfigured client (built from options otherwise)
        """
        self.options = options
        self.client = client or FeishuClient(
            options.app_id,
            options.app_secret,
            page_size=options.page_size,
            debug=options.debug,
        )
        self.output_directory = Path(options.output_dir_path)
        self.file_converter = DriveFileConverter()

        self.markdown_cache: Dict[Tuple[str, str], str] = {}
        self.warnings: List[str] = []
        self.written = 0
        self.skipped = 0
        self.sequence = 0

    def export(self) -> ExportMarkdownResult:
        """
        Export every document in the manifest.

        Returns:
            ExportMarkdownResult summary

        Raises:
            ManifestError: If the manifest cannot be loaded
        """
        manifest = load_manifest(self.options.manifest_path)
        plan = build_export_plan(manifest)

        logger.info(f"Starting markdown export of {len(plan)} documents to {self.output_directory}")

        with ProgressTracker(total_items=len(plan), item_type='documents') as tracker:
            for entry in plan:
                tracker.increment(self._export_entry(entry))

        return ExportMarkdownResult(
            generated_at=utc_timestamp(),
            source_manifest_path=str(self.options.manifest_path),
            output_dir_path=str(self.options.output_dir_path),
            total=len(plan),
            written=self.written,
            skipped=self.skipped,
            warnings=list(self.warnings),
        )

    def target_path(self, entry: ExportPlanEntry) -> Path:
        return self.output_directory.joinpath(*entry.path_segments[:-1], f"{entry.path_segments[-1]}.md")

    def _export_entry(self, entry: ExportPlanEntry) -> str:
        """Export one entry. Returns the terminal status for progress tracking."""
        item_id = entry.item.id
        self.sequence += 1
        self._emit('processing', item_id, f"Exporting {item_id}")

        try:
            target_path = self.target_path(entry)
            source = self.resolve_source(entry.item)
            if source is None:
                return self._skip(item_id, f"Skip {item_id}: no docx source")

            markdown = self.markdown_cache.get(source)
            if markdown is None:
                markdown = self.fetch_markdown(source, entry.item.title)
                self.markdown_cache[source] = markdown

            if not has_markdown_body_content(markdown):
                remove_file_if_exists(target_path)
                return self._skip(item_id, f"Skip {item_id}: markdown has no body content", target_path)

            target_path.parent.mkdir(parents=True, exist_ok=True)
            target_path.write_text(markdown, encoding='utf-8')
        except UnsupportedSourceError as e:
            return self._skip(item_id, f"Skip {item_id}: {e}")
        except Exception as e:
            self.skipped += 1
            message = f"Failed to export {item_id}: {e}"
            self.warnings.append(message)
            logger.error(message)
            self._emit('error', item_id, message)
            return 'error'

        self.written += 1
        logger.debug(f"Wrote {target_path}")
        self._emit('success', item_id, f"Exported {item_id}", target_path)
        return 'success'

    def resolve_source(self, item: DocumentItem) -> Optional[Tuple[str, str]]:
        """
        Resolve the content source of a document.

        Returns:
            (source kind, token) with source kind "docx" or "file", or None
        """
        if item.kind == ResourceKind.DOCX:
            return SOURCE_DOCX, item.token
        if item.kind != ResourceKind.WIKI:
            return None

        source = _object_source(item.obj_kind, item.obj_token)
        if source:
            return source

        node = self.client.get_wiki_node(item.token)
        return _object_source(node.obj_type, node.obj_token)

    def fetch_markdown(self, source: Tuple[str, str], title: Optional[str]) -> str:
        source_kind, token = source
        if source_kind == SOURCE_FILE:
            return self.fetch_file_markdown(token)
        return self.fetch_docx_markdown(token, title)

    def fetch_docx_markdown(self, document_token: str, title: Optional[str]) -> str:
        """Render from blocks, falling back to the raw text body when the blocks carry no body."""
        blocks = self.client.get_docx_blocks(document_token)
        markdown = render_docx_markdown(blocks=blocks, title=title)
        if has_markdown_body_content(markdown):
            return markdown

        raw_content = self.client.get_docx_raw_content(document_token)
        return render_docx_markdown(blocks=blocks, title=title, raw_content=raw_content)

    def fetch_file_markdown(self, file_token: str) -> str:
        download = self.client.download_drive_file(file_token)
        markdown = self.file_converter.convert_download(download)
        if markdown is None:
            raise UnsupportedSourceError(
                f"unsupported file type {download.content_type or 'unknown'}"
            )
        return f"{markdown.strip()}\n" if markdown.strip() else ''

    def _skip(self, item_id: str, message: str, target_path: Optional[Path] = None) -> str:
        self.skipped += 1
        self.warnings.append(message)
        logger.warning(message)
        self._emit('skip', item_id, message, target_path)
        return 'skip'

    def _emit(self, status: str, item_id: str, message: str, target_path: Optional[Path] = None) -> None:
        if not self.options.on_progress:
            return

        self.options.on_progress(ExportProgressEvent(
            status=status,
            sequence=self.sequence,
            id=item_id,
            message=message,
            written=self.written,
            skipped=self.skipped,
            warnings=len(self.warnings),
            target_path=str(target_path) if target_path else None,
        ))


def _object_source(obj_kind: Optional[str], obj_token: Optional[str]) -> Optional[Tuple[str, str]]:
    if not obj_token:
        return None
    if map_wiki_object_kind(obj_kind) == ResourceKind.DOCX:
        return SOURCE_DOCX, obj_token
    if (obj_kind or '').lower() == SOURCE_FILE:
        return SOURCE_FILE, obj_token
    return None


def remove_file_if_exists(path: Path) -> None:
    try:
        os.remove(path)
        logger.debug(f"Removed stale output {path}")
    except FileNotFoundError:
        pass


def export_markdown(options: ExportOptions, client: Optional[FeishuClient] = None) -> ExportMarkdownResult:
    """
    Export every document in options.manifest_path to Markdown.

    Args:
        options: Export options
        client: Optional preconfigured client

    Returns:
        ExportMarkdownResult
    """
    return MarkdownExporter(options, client).export()


__all__ = ['MarkdownExporter', 'export_markdown', 'remove_file_if_exists', 'UnsupportedSourceError']
