"""Data models for the Feishu document discovery and Markdown export pipeline."""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger('feishu_md_exporter')


class ResourceKind(str, Enum):
    """Resource kinds exposed by a Feishu workspace."""
    DOCX = "docx"
    WIKI = "wiki"
    SHEET = "sheet"
    BASE = "base"
    SLIDES = "slides"
    UNKNOWN = "unknown"


def resource_kind(value: str) -> ResourceKind:
    """Coerce a stored kind string back into a ResourceKind."""
    try:
        return ResourceKind(value)
    except ValueError:
        return ResourceKind.UNKNOWN


def utc_timestamp() -> str:
    """ISO-8601 UTC timestamp with millisecond precision."""
    return datetime.now(timezone.utc).isoformat(timespec='milliseconds').replace('+00:00', 'Z')


@dataclass(frozen=True)
class ResourceReference:
    """A parsed Feishu resource URL."""

    kind: ResourceKind
    token: str
    url: str

    @property
    def id(self) -> str:
        """Identity key shared by every URL pointing at this resource."""
        return f"{self.kind.value}:{self.token}"


@dataclass
class DocumentItem:
    """A discovered document node in the crawl graph."""

    id: str
    kind: ResourceKind
    token: str
    url: str
    depth: int
    title: Optional[str] = None
    obj_kind: Optional[str] = None
    obj_token: Optional[str] = None
    parent_id: Optional[str] = None
    parent_ids: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize item to the manifest representation."""
        data: Dict[str, Any] = {
            'id': self.id,
            'kind': self.kind.value,
            'token': self.token,
            'url': self.url,
            'depth': self.depth,
        }
        if self.title is not None:
            data['title'] = self.title
        if self.obj_kind is not None:
            data['objKind'] = self.obj_kind
        if self.obj_token is not None:
            data['objToken'] = self.obj_token
        if self.parent_id is not None:
            data['parentId'] = self.parent_id
        data['parentIds'] = list(self.parent_ids)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'DocumentItem':
        """Deserialize from the manifest representation."""
        return cls(
            id=data['id'],
            kind=resource_kind(data['kind']),
            token=data['token'],
            url=data['url'],
            depth=data['depth'],
            title=data.get('title'),
            obj_kind=data.get('objKind'),
            obj_token=data.get('objToken'),
            parent_id=data.get('parentId'),
            parent_ids=list(data.get('parentIds', [])),
        )


@dataclass(frozen=True)
class DocumentRelation:
    """A parent => child edge between two discovered documents."""

    parent_id: str
    child_id: str

    def to_dict(self) -> Dict[str, str]:
        return {'parentId': self.parent_id, 'childId': self.child_id}


@dataclass
class DocumentTreeNode:
    """A node of the discovered document forest."""

    id: str
    children: List['DocumentTreeNode'] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'children': [child.to_dict() for child in self.children],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'DocumentTreeNode':
        return cls(
            id=data['id'],
            children=[cls.from_dict(child) for child in data.get('children', [])],
        )


@dataclass
class DiscoverResult:
    """Discovery manifest handed from the crawler to the exporter."""

    generated_at: str
    root_url: str
    total: int
    warnings: List[str] = field(default_factory=list)
    documents: List[DocumentItem] = field(default_factory=list)
    relations: List[DocumentRelation] = field(default_factory=list)
    tree: List[DocumentTreeNode] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize result to the manifest representation."""
        return {
            'generatedAt': self.generated_at,
            'rootUrl': self.root_url,
            'total': self.total,
            'warnings': list(self.warnings),
            'documents': [item.to_dict() for item in self.documents],
            'relations': [relation.to_dict() for relation in self.relations],
            'tree': [node.to_dict() for node in self.tree],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'DiscoverResult':
        """Deserialize from an already shape-checked manifest dictionary."""
        return cls(
            generated_at=data['generatedAt'],
            root_url=data['rootUrl'],
            total=data['total'],
            warnings=list(data.get('warnings', [])),
            documents=[DocumentItem.from_dict(item) for item in data.get('documents', [])],
            relations=[
                DocumentRelation(parent_id=rel['parentId'], child_id=rel['childId'])
                for rel in data.get('relations', [])
            ],
            tree=[DocumentTreeNode.from_dict(node) for node in data.get('tree', [])],
        )


@dataclass
class WikiNode:
    """Normalized wiki node."""

    node_token: str
    parent_node_token: Optional[str] = None
    space_id: Optional[str] = None
    title: Optional[str] = None
    obj_type: Optional[str] = None
    obj_token: Optional[str] = None
    has_child: Optional[bool] = None


@dataclass
class TenantAccessToken:
    """Cached tenant credential; expired_at is a time.time() timestamp."""

    token: str
    expired_at: float


@dataclass
class DocumentDiscovery:
    """Title and outbound links of a single docx page."""

    title: Optional[str]
    links: List[str] = field(default_factory=list)


@dataclass
class DriveFileDownload:
    """Downloaded drive file body with its response headers."""

    content: str
    content_type: Optional[str] = None
    content_disposition: Optional[str] = None


@dataclass
class QueueItem:
    """Pending crawl work item."""

    url: str
    depth: int
    parent_id: Optional[str] = None
    title_hint: Optional[str] = None


@dataclass
class ExportPlanEntry:
    """One exportable document with its output path segments."""

    item: DocumentItem
    path_segments: List[str]


@dataclass
class DiscoverProgressEvent:
    """Progress notification emitted once per crawl state transition."""

    status: str  # "processing", "success", "skip", "warning", "error"
    sequence: int
    url: str
    depth: int
    message: str
    discovered: int
    warnings: int
    kind: Optional[ResourceKind] = None
    id: Optional[str] = None
    title: Optional[str] = None


@dataclass
class ExportProgressEvent:
    """Progress notification emitted once per export state transition."""

    status: str  # "processing", "success", "skip", "error"
    sequence: int
    id: str
    message: str
    written: int
    skipped: int
    warnings: int
    target_path: Optional[str] = None


@dataclass
class ExportMarkdownResult:
    """Summary of one export run."""

    generated_at: str
    source_manifest_path: str
    output_dir_path: str
    total: int
    written: int
    skipped: int
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'generatedAt': self.generated_at,
            'sourceManifestPath': self.source_manifest_path,
            'outputDirPath': self.output_dir_path,
            'total': self.total,
            'written': self.written,
            'skipped': self.skipped,
            'warnings': list(self.warnings),
        }


@dataclass
class DiscoverOptions:
    """Plain options consumed by the crawler."""

    url: str
    app_id: str
    app_secret: str
    debug: bool = False
    max_depth: int = 10
    max_docs: int = 1000
    page_size: int = 200
    on_progress: Optional[Callable[[DiscoverProgressEvent], None]] = None


@dataclass
class ExportOptions:
    """Plain options consumed by the exporter."""

    app_id: str
    app_secret: str
    manifest_path: str
    output_dir_path: str
    debug: bool = False
    page_size: int = 200
    on_progress: Optional[Callable[[ExportProgressEvent], None]] = None


__all__ = [
    'ResourceKind',
    'resource_kind',
    'utc_timestamp',
    'ResourceReference',
    'DocumentItem',
    'DocumentRelation',
    'DocumentTreeNode',
    'DiscoverResult',
    'WikiNode',
    'TenantAccessToken',
    'DocumentDiscovery',
    'DriveFileDownload',
    'QueueItem',
    'ExportPlanEntry',
    'DiscoverProgressEvent',
    'ExportProgressEvent',
    'ExportMarkdownResult',
    'DiscoverOptions',
    'ExportOptions',
]
