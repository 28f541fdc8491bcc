"""Feishu URL parsing and link extraction from arbitrary API payloads."""

import re
from typing import Any, List, Optional
from urllib.parse import urlparse

from models import ResourceKind, ResourceReference

FEISHU_HOST_PATTERN = re.compile(r'(?:feishu\.cn|larksuite\.com|larkoffice\.com)$', re.IGNORECASE)
FEISHU_URL_PATTERN = re.compile(r'https?://[^\s"\'`<>)\]]+')

PATH_KIND_ALIASES = {
    'docx': ResourceKind.DOCX,
    'wiki': ResourceKind.WIKI,
    'sheets': ResourceKind.SHEET,
    'sheet': ResourceKind.SHEET,
    'base': ResourceKind.BASE,
    'bitable': ResourceKind.BASE,
    'slides': ResourceKind.SLIDES,
}


def parse_feishu_resource(url: str) -> Optional[ResourceReference]:
    """
    Parse a Feishu document URL into a resource reference.

    Only URLs on a known Feishu/Lark host whose first two path segments are a
    recognized kind and a token are accepted. Query strings and fragments are
    dropped from the canonical URL.

    Args:
        url: Candidate URL

    Returns:
        ResourceReference, or None when the URL is not a Feishu resource
    """
    if not isinstance(url, str):
        return None

    try:
        parsed = urlparse(url.strip())
        hostname = parsed.hostname
    except ValueError:
        return None

    if parsed.scheme not in ('http', 'https') or not hostname:
        return None
    if not FEISHU_HOST_PATTERN.search(hostname):
        return None

    segments = [segment for segment in parsed.path.split('/') if segment]
    if len(segments) < 2:
        return None

    raw_kind = segments[0].lower()
    token = segments[1]
    kind = PATH_KIND_ALIASES.get(raw_kind)
    if kind is None or not token:
        return None

    origin = f"{parsed.scheme}://{parsed.netloc.lower()}"
    return ResourceReference(kind=kind, token=token, url=f"{origin}/{raw_kind}/{token}")


def extract_feishu_links(value: Any) -> List[str]:
    """
    Collect canonical Feishu URLs from any nested str/list/dict structure.

    Strings are visited depth-first in container order; the result keeps the
    first occurrence of every canonical URL.
    """
    strings: List[str] = []
    _collect_strings(value, strings)

    links = {}
    for segment in strings:
        for match in FEISHU_URL_PATTERN.findall(segment):
            resource = parse_feishu_resource(match)
            if resource:
                links.setdefault(resource.url, None)

    return list(links)


def _collect_strings(value: Any, output: List[str]) -> None:
    if isinstance(value, str):
        output.append(value)
    elif isinstance(value, dict):
        for item in value.values():
            _collect_strings(item, output)
    elif isinstance(value, (list, tuple)):
        for item in value:
            _collect_strings(item, output)


__all__ = ['parse_feishu_resource', 'extract_feishu_links']
