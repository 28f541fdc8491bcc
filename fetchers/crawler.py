"""Breadth-first discovery of Feishu documents reachable from a root URL."""

import logging
from collections import deque
from typing import Deque, Dict, List, Optional
from urllib.parse import urlparse

from feishu_client import FeishuClient
from models import (
    DiscoverOptions,
    DiscoverProgressEvent,
    DiscoverResult,
    DocumentItem,
    QueueItem,
    ResourceKind,
    ResourceReference,
    utc_timestamp,
)
from resource_locator import parse_feishu_resource
from .document_graph import (
    build_document_tree,
    map_wiki_object_kind,
    merge_parent_relation,
    resource_id,
    serialize_relations,
)

logger = logging.getLogger('feishu_md_exporter.fetchers.crawler')


class InvalidResourceUrlError(ValueError):
    """The root URL is not a Feishu document URL."""
    pass


class DocumentCrawler:
    """
    Discovers the document graph reachable from one root URL.

    Work items are processed strictly in FIFO order. Each identity key is
    fetched at most once; later sightings only add parent relations. One
    failing document is recorded as a warning and never aborts the crawl.
    """

    def __init__(self, options: DiscoverOptions, client: Optional[FeishuClient] = None):
        """
        Initialize crawler.

        Args:
            options: Discovery options
            client: Optional preconfigured client (built from options otherwise)
        """
        self.options = options
        self.client = client or FeishuClient(
            options.app_id,
            options.app_secret,
            page_size=options.page_size,
            debug=options.debug,
        )

        self.queue: Deque[QueueItem] = deque()
        self.documents: Dict[str, DocumentItem] = {}
        self.relations: Dict[str, None] = {}
        self.warnings: List[str] = []
        self.sequence = 0

    def discover(self) -> DiscoverResult:
        """
        Run the crawl to completion.

        Returns:
            DiscoverResult with documents, relations and the document forest

        Raises:
            InvalidResourceUrlError: If the root URL cannot be parsed
        """
        root = parse_feishu_resource(self.options.url)
        if not root:
            raise InvalidResourceUrlError(
                'Invalid Feishu document url. Example: https://my.feishu.cn/docx/<token>'
            )

        logger.info(f"Starting discovery from {root.url} "
                    f"(max_depth={self.options.max_depth}, max_docs={self.options.max_docs})")

        self.queue.append(QueueItem(url=root.url, depth=0))

        while self.queue:
            if not self._process(self.queue.popleft()):
                break

        documents = list(self.documents.values())
        relations = serialize_relations(self.relations)

        logger.info(f"Discovery finished: {len(documents)} documents, "
                    f"{len(relations)} relations, {len(self.warnings)} warnings")

        return DiscoverResult(
            generated_at=utc_timestamp(),
            root_url=root.url,
            total=len(documents),
            warnings=list(self.warnings),
            documents=documents,
            relations=relations,
            tree=build_document_tree(documents, relations),
        )

    def _process(self, next_item: QueueItem) -> bool:
        """Handle one queue item. Returns False when the crawl must stop."""
        self._debug_log(f"dequeue #{self.sequence + 1}: url={next_item.url} depth={next_item.depth} "
                        f"queue_remaining={len(self.queue)}")
        self.sequence += 1
        self._emit('processing', next_item.url, next_item.depth, f"Reading {next_item.url}")

        parsed = parse_feishu_resource(next_item.url)
        if not parsed:
            self._warn(f"Skip invalid feishu url: {next_item.url}", next_item.url, next_item.depth)
            return True

        item_id = resource_id(parsed.kind, parsed.token)
        existing = self.documents.get(item_id)
        if existing:
            merge_parent_relation(existing, next_item.parent_id, self.relations)
            self._emit('skip', parsed.url, next_item.depth, f"Skip duplicated resource: {item_id}",
                       kind=parsed.kind, item_id=item_id, title=existing.title)
            return True

        if len(self.documents) >= self.options.max_docs:
            self._warn(f"Stop discovery: reached max docs limit {self.options.max_docs}",
                       parsed.url, next_item.depth, kind=parsed.kind, item_id=item_id)
            return False

        item = DocumentItem(
            id=item_id,
            kind=parsed.kind,
            token=parsed.token,
            url=parsed.url,
            depth=next_item.depth,
            title=next_item.title_hint,
            parent_id=next_item.parent_id,
        )
        merge_parent_relation(item, next_item.parent_id, self.relations)
        self.documents[item_id] = item

        try:
            if parsed.kind == ResourceKind.DOCX:
                discovered_links = self._expand_docx(item, parsed)
            elif parsed.kind == ResourceKind.WIKI:
                discovered_links = self._expand_wiki(item, parsed)
            else:
                self._warn(f"Skip recursion for unsupported resource kind: {parsed.kind.value} ({parsed.url})",
                           parsed.url, item.depth, kind=parsed.kind, item_id=item_id, title=item.title)
                return True
        except Exception as e:
            warning = f"Failed to read {parsed.url}: {e}"
            self.warnings.append(warning)
            logger.warning(warning)
            self._emit('error', parsed.url, item.depth, warning,
                       kind=parsed.kind, item_id=item_id, title=item.title)
            return True

        self._emit('success', parsed.url, item.depth,
                   format_success_message(parsed, item_id, item.title, discovered_links),
                   kind=parsed.kind, item_id=item_id, title=item.title)
        return True

    def _expand_docx(self, item: DocumentItem, parsed: ResourceReference) -> int:
        discovery = self.client.discover_from_docx(parsed.token)
        item.title = discovery.title or item.title

        if item.depth >= self.options.max_depth:
            self._debug_log(f"max depth reached for {item.id}, skip child expansion")
            return 0

        for link in discovery.links:
            self.queue.append(QueueItem(url=link, depth=item.depth + 1, parent_id=item.id))

        self._debug_log(f"docx {item.id} discovered {len(discovery.links)} links")
        return len(discovery.links)

    def _expand_wiki(self, item: DocumentItem, parsed: ResourceReference) -> int:
        wiki_node = self.client.get_wiki_node(parsed.token)
        item.title = wiki_node.title or item.title
        item.obj_kind = wiki_node.obj_type
        item.obj_token = wiki_node.obj_token
        origin = _origin(parsed.url)
        discovered_links = 0

        if wiki_node.obj_type and wiki_node.obj_token:
            mapped_kind = map_wiki_object_kind(wiki_node.obj_type)
            if mapped_kind != ResourceKind.UNKNOWN:
                # The mapped object sits at the wiki node's own depth
                self.queue.append(QueueItem(
                    url=f"{origin}/{mapped_kind.value}/{wiki_node.obj_token}",
                    depth=item.depth,
                    parent_id=item.id,
                    title_hint=wiki_node.title,
                ))
                discovered_links += 1
                self._debug_log(f"wiki {item.id} mapped to object {mapped_kind.value}:{wiki_node.obj_token}")

        if item.depth >= self.options.max_depth:
            self._debug_log(f"max depth reached for wiki {item.id}, skip wiki child listing")
            return discovered_links
        if not wiki_node.space_id:
            self._debug_log(f"wiki {item.id} has no space_id, skip wiki child listing")
            return discovered_links

        children = self.client.list_wiki_child_nodes(wiki_node.space_id, wiki_node.node_token)
        for child in children:
            self.queue.append(QueueItem(
                url=f"{origin}/wiki/{child.node_token}",
                depth=item.depth + 1,
                parent_id=item.id,
                title_hint=child.title,
            ))
            discovered_links += 1

        self._debug_log(f"wiki {item.id} discovered {len(children)} child nodes")
        return discovered_links

    def _warn(self, warning: str, url: str, depth: int, **kwargs) -> None:
        self.warnings.append(warning)
        logger.warning(warning)
        self._emit('warning', url, depth, warning, **kwargs)

    def _emit(
        self,
        status: str,
        url: str,
        depth: int,
        message: str,
        kind: Optional[ResourceKind] = None,
        item_id: Optional[str] = None,
        title: Optional[str] = None
    ) -> None:
        if not self.options.on_progress:
            return

        self.options.on_progress(DiscoverProgressEvent(
            status=status,
            sequence=self.sequence,
            url=url,
            depth=depth,
            message=message,
            discovered=len(self.documents),
            warnings=len(self.warnings),
            kind=kind,
            id=item_id,
            title=title,
        ))

    def _debug_log(self, message: str) -> None:
        if self.options.debug:
            logger.info(message)
        else:
            logger.debug(message)


def format_success_message(parsed: ResourceReference, item_id: str, title: Optional[str], discovered_links: int) -> str:
    label = (title or '').strip() or item_id
    return f"Read {parsed.kind.value}: {label} (+{discovered_links} links)"


def _origin(url: str) -> str:
    parsed = urlparse(url)
    return f"{parsed.scheme}://{parsed.netloc}"


def discover_documents(options: DiscoverOptions, client: Optional[FeishuClient] = None) -> DiscoverResult:
    """
    Discover every document reachable from options.url.

    Args:
        options: Discovery options
        client: Optional preconfigured client

    Returns:
        DiscoverResult
    """
    return DocumentCrawler(options, client).discover()


__all__ = ['DocumentCrawler', 'discover_documents', 'InvalidResourceUrlError', 'format_success_message']
