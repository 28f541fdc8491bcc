"""Pydantic shapes for Feishu API payloads and the discovery manifest.

Every wire shape tolerates unknown keys; only the fields the pipeline reads
are declared. Strict scalar types keep a ``"0"`` status code or a numeric
title from slipping through as valid data.
"""

from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, StrictBool, StrictInt, StrictStr


class _LenientModel(BaseModel):
    model_config = ConfigDict(extra='allow')


class FeishuEnvelope(_LenientModel):
    """Top-level response envelope shared by every JSON endpoint."""
    code: StrictInt
    msg: StrictStr
    data: Optional[Any] = None
    error: Optional[Any] = None


class TenantAccessTokenData(_LenientModel):
    tenant_access_token: StrictStr
    expire: StrictInt


class DocumentTitle(_LenientModel):
    title: Optional[StrictStr] = None


class DocumentMetaData(_LenientModel):
    document: Optional[DocumentTitle] = None
    title: Optional[StrictStr] = None


class DocumentBlocksPageData(_LenientModel):
    items: Optional[List[Any]] = None
    blocks: Optional[List[Any]] = None
    has_more: Optional[StrictBool] = None
    page_token: Optional[StrictStr] = None


class RawContentData(_LenientModel):
    content: Optional[StrictStr] = None


class WikiNodeRaw(_LenientModel):
    node_token: Optional[StrictStr] = None
    parent_node_token: Optional[StrictStr] = None
    space_id: Optional[StrictStr] = None
    title: Optional[StrictStr] = None
    obj_type: Optional[StrictStr] = None
    obj_token: Optional[StrictStr] = None
    has_child: Optional[StrictBool] = None


class WikiGetNodeData(_LenientModel):
    node: Optional[WikiNodeRaw] = None


class WikiListNodesData(_LenientModel):
    items: Optional[List[WikiNodeRaw]] = None
    nodes: Optional[List[WikiNodeRaw]] = None
    has_more: Optional[StrictBool] = None
    page_token: Optional[StrictStr] = None


class ManifestDocument(_LenientModel):
    id: StrictStr
    kind: StrictStr
    token: StrictStr
    url: StrictStr
    depth: StrictInt
    title: Optional[StrictStr] = None
    objKind: Optional[StrictStr] = None
    objToken: Optional[StrictStr] = None
    parentId: Optional[StrictStr] = None
    parentIds: List[StrictStr]


class ManifestRelation(_LenientModel):
    parentId: StrictStr
    childId: StrictStr


class ManifestTreeNode(_LenientModel):
    id: StrictStr
    children: List['ManifestTreeNode']


class DiscoverManifest(_LenientModel):
    """Shape check for a persisted DiscoverResult."""
    generatedAt: StrictStr
    rootUrl: StrictStr
    total: StrictInt
    warnings: List[StrictStr]
    documents: List[ManifestDocument]
    relations: List[ManifestRelation]
    tree: List[ManifestTreeNode]


ManifestTreeNode.model_rebuild()


__all__ = [
    'FeishuEnvelope',
    'TenantAccessTokenData',
    'DocumentMetaData',
    'DocumentBlocksPageData',
    'RawContentData',
    'WikiNodeRaw',
    'WikiGetNodeData',
    'WikiListNodesData',
    'DiscoverManifest',
]
