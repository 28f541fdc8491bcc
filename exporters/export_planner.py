"""Decide which discovered documents are exported and where they land on disk."""

import logging
import re
from typing import Dict, List, Optional

from fetchers.document_graph import map_wiki_object_kind
from models import DiscoverResult, DocumentItem, DocumentTreeNode, ExportPlanEntry, ResourceKind

logger = logging.getLogger('feishu_md_exporter.exporters.export_planner')

ILLEGAL_PATH_CHARACTERS = re.compile(r'[\\/:*?"<>|]')
WHITESPACE_RUN = re.compile(r'\s+')


def sanitize_path_segment(value: Optional[str], fallback: str = 'untitled') -> str:
    """
    Turn a document title into a single safe path segment.

    Example:
        >>> sanitize_path_segment('a/b:c*?', 'fallback')
        'a-b-c'
    """
    normalized = WHITESPACE_RUN.sub(' ', (value or '').strip())
    normalized = ILLEGAL_PATH_CHARACTERS.sub('-', normalized)
    normalized = normalized.rstrip('.').lstrip('-').rstrip('-')
    return normalized or fallback


def is_wiki_mapped_docx_child(item: DocumentItem, parent_item: Optional[DocumentItem]) -> bool:
    """True for the docx page a wiki parent wraps; the wiki entry already exports it."""
    if parent_item is None:
        return False
    if item.kind != ResourceKind.DOCX or parent_item.kind != ResourceKind.WIKI:
        return False
    if map_wiki_object_kind(parent_item.obj_kind) != ResourceKind.DOCX:
        return False
    return bool(parent_item.obj_token) and parent_item.obj_token == item.token


class ExportPlanner:
    """Depth-first walk of the discovery forest producing one entry per exported document."""

    def __init__(self, manifest: DiscoverResult):
        self.manifest = manifest
        self.documents_by_id: Dict[str, DocumentItem] = {item.id: item for item in manifest.documents}
        self.path_counters: Dict[str, int] = {}
        self.plan: List[ExportPlanEntry] = []

    def build(self) -> List[ExportPlanEntry]:
        roots = self.manifest.tree or [DocumentTreeNode(id=item.id) for item in self.manifest.documents]
        for root in roots:
            self._walk(root, None, [], frozenset())

        logger.debug(f"Export plan has {len(self.plan)} entries")
        return self.plan

    def _walk(
        self,
        node: DocumentTreeNode,
        parent_item: Optional[DocumentItem],
        parent_segments: List[str],
        trail: frozenset
    ) -> None:
        item = self.documents_by_id.get(node.id)
        if item is None or node.id in trail:
            return
        if is_wiki_mapped_docx_child(item, parent_item):
            # Pages linked from the mapped page land beside it under the wiki entry
            logger.debug(f"Skipping {item.id}: exported through wiki node {parent_item.id}")
            next_trail = trail | {node.id}
            for child in node.children:
                self._walk(child, item, parent_segments, next_trail)
            return

        segment = self._unique_segment(
            parent_segments,
            sanitize_path_segment(item.title, f"{item.kind.value}-{item.token}")
        )
        path_segments = parent_segments + [segment]
        self.plan.append(ExportPlanEntry(item=item, path_segments=path_segments))

        next_trail = trail | {node.id}
        for child in node.children:
            self._walk(child, item, path_segments, next_trail)

    def _unique_segment(self, parent_segments: List[str], segment: str) -> str:
        """Suffix -2, -3, ... onto repeated names within one directory."""
        key = f"{'/'.join(parent_segments)}::{segment}"
        count = self.path_counters.get(key, 0) + 1
        self.path_counters[key] = count
        return segment if count == 1 else f"{segment}-{count}"


def build_export_plan(manifest: DiscoverResult) -> List[ExportPlanEntry]:
    """Build the export plan for a discovery manifest."""
    return ExportPlanner(manifest).build()


__all__ = ['ExportPlanner', 'build_export_plan', 'sanitize_path_segment', 'is_wiki_mapped_docx_child']
