"""Fetchers package for discovering Feishu documents via the Open API."""

from .crawler import DocumentCrawler, InvalidResourceUrlError, discover_documents
from .document_graph import (
    build_document_tree,
    map_wiki_object_kind,
    merge_parent_relation,
    resource_id,
    serialize_relations,
)

__all__ = [
    'DocumentCrawler',
    'InvalidResourceUrlError',
    'discover_documents',
    'build_document_tree',
    'map_wiki_object_kind',
    'merge_parent_relation',
    'resource_id',
    'serialize_relations',
]
