"""Feishu Open API client with token caching, rate limiting and retry logic."""

import logging
import os
import random
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Type, TypeVar
from urllib.parse import quote, urlencode

import requests
import urllib3
from pydantic import BaseModel, ValidationError
from tenacity import Retrying, retry_if_result, stop_after_attempt, wait_random_exponential

from resource_locator import extract_feishu_links
from models import DocumentDiscovery, DriveFileDownload, TenantAccessToken, WikiNode
from schemas import (
    DocumentBlocksPageData,
    DocumentMetaData,
    FeishuEnvelope,
    RawContentData,
    TenantAccessTokenData,
    WikiGetNodeData,
    WikiListNodesData,
    WikiNodeRaw,
)

logger = logging.getLogger('feishu_md_exporter.client')

# Optional: Use system CA certificates if requested
try:
    if os.getenv('USE_SYSTEM_CA') in ('1', 'true', 'True', 'TRUE'):
        import truststore
        truststore.inject_into_ssl()
        logger.info("Using system CA certificate store")
except ImportError:
    if os.getenv('USE_SYSTEM_CA'):
        logger.warning("truststore not installed. Install with: pip install truststore")

FEISHU_API_BASE = 'https://open.feishu.cn/open-apis'
DOCX_PAGE_SIZE_MAX = 500
WIKI_PAGE_SIZE_MAX = 50
API_RETRY_COUNT = 4
API_RETRY_MIN_DELAY = 0.3
API_RETRY_MAX_DELAY = 4.0
API_REQUEST_TIMEOUT = 12.0
API_RATE_LIMIT_MIN_INTERVAL = 0.3
API_RATE_LIMIT_BACKOFF_MIN = 1.5
API_RATE_LIMIT_BACKOFF_MAX = 5.0
FEISHU_RATE_LIMIT_CODES = frozenset({99991400})
RATE_LIMIT_HTTP_STATUS = 429
TOKEN_REFRESH_MARGIN = 120
TOKEN_MIN_LIFETIME = 60
WIKI_GET_NODE_QUERY_TEMPLATES = (
    'token={token}',
    'obj_type=wiki&token={token}',
    'obj_token={token}',
)
WIKI_FIELD_VALIDATION_SIGNATURE = 'field validation failed'

SchemaT = TypeVar('SchemaT', bound=BaseModel)


class FeishuApiError(Exception):
    """Failure of a Feishu API call; retriable marks transient conditions."""

    def __init__(
        self,
        message: str,
        retriable: bool = False,
        path: Optional[str] = None,
        code: Optional[int] = None,
        status: Optional[int] = None
    ):
        super().__init__(message)
        self.retriable = retriable
        self.path = path
        self.code = code
        self.status = status


class WikiNodeResolutionError(FeishuApiError):
    """Every node-lookup candidate failed for a wiki token."""

    def __init__(self, node_token: str, failures: List[str]):
        super().__init__(
            f'Failed to resolve wiki node token "{node_token}": {" | ".join(failures)}'
        )
        self.node_token = node_token
        self.failures = failures


class OutcomeStatus(Enum):
    SUCCESS = "success"
    RETRIABLE = "retriable"
    PERMANENT = "permanent"


@dataclass
class RequestOutcome:
    """Result of a single request attempt, inspected by the retry driver."""

    status: OutcomeStatus
    value: Any = None
    error: Optional[FeishuApiError] = None

    @classmethod
    def success(cls, value: Any) -> 'RequestOutcome':
        return cls(OutcomeStatus.SUCCESS, value=value)

    @classmethod
    def failure(cls, error: FeishuApiError) -> 'RequestOutcome':
        status = OutcomeStatus.RETRIABLE if error.retriable else OutcomeStatus.PERMANENT
        return cls(status, error=error)

    @property
    def retriable(self) -> bool:
        return self.status is OutcomeStatus.RETRIABLE


def is_rate_limit_code(code: Optional[int]) -> bool:
    return code is not None and code in FEISHU_RATE_LIMIT_CODES


def unwrap_feishu_data(envelope: FeishuEnvelope) -> Any:
    """
    Return the payload of a response envelope.

    Responses carry their payload under ``data``; some endpoints (the token
    endpoint among them) put it next to ``code``/``msg`` instead, in which case
    every non-envelope key is returned.
    """
    if envelope.data is not None:
        return envelope.data
    return dict(envelope.model_extra or {})


def build_wiki_get_node_candidates(node_token: str) -> List[str]:
    """Alternative node-lookup paths, in the order they should be tried."""
    encoded_token = quote(node_token, safe='')
    return [
        f"/wiki/v2/spaces/get_node?{template.replace('{token}', encoded_token)}"
        for template in WIKI_GET_NODE_QUERY_TEMPLATES
    ]


def format_error_detail(response: Optional[requests.Response]) -> str:
    """Short human-readable summary of an error response body."""
    if response is None:
        return ''
    try:
        payload = response.json()
    except ValueError:
        return (response.text or '')[:300].strip()

    if isinstance(payload, dict) and isinstance(payload.get('code'), int) and isinstance(payload.get('msg'), str):
        return f"{payload['code']} {payload['msg']}"
    return str(payload)[:300].strip()


def error_code_from_response(response: Optional[requests.Response]) -> Optional[int]:
    if response is None:
        return None
    try:
        payload = response.json()
    except ValueError:
        return None
    if isinstance(payload, dict) and isinstance(payload.get('code'), int):
        return payload['code']
    return None


class FeishuClient:
    """Feishu Open API client owning one token cache and one request scheduler."""

    def __init__(
        self,
        app_id: str,
        app_secret: str,
        page_size: int = 200,
        debug: bool = False,
        base_url: str = FEISHU_API_BASE,
        timeout: float = API_REQUEST_TIMEOUT,
        max_retries: int = API_RETRY_COUNT,
        rate_limit: float = API_RATE_LIMIT_MIN_INTERVAL,
        verify_ssl: bool = True,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep
    ):
        """
        Initialize the client.

        Args:
            app_id: Feishu app id
            app_secret: Feishu app secret
            page_size: Requested page size for paginated listings
            debug: Emit request lifecycle records at INFO instead of DEBUG
            base_url: Open API base URL
            timeout: HTTP request timeout in seconds
            max_retries: Retries after the first attempt for transient failures
            rate_limit: Minimum seconds between request starts
            verify_ssl: Whether to verify SSL certificates
            session: Optional preconfigured requests session
            sleep: Sleep function used for spacing, cooldowns and retry delays
        """
        self.app_id = app_id
        self.app_secret = app_secret
        self.page_size = page_size
        self.debug = debug
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.max_retries = max_retries
        self.rate_limit = rate_limit
        self.last_request_time = 0.0
        self.request_sequence = 0
        self._token_cache: Optional[TenantAccessToken] = None
        self._sleep = sleep

        self.session = session or requests.Session()
        self.session.verify = verify_ssl
        if not verify_ssl:
            logger.warning("SSL verification disabled - this is insecure!")
            urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)

        logger.debug(f"Client configured with timeout={timeout}s, max_retries={max_retries}, "
                     f"rate_limit={rate_limit}s, page_size={page_size}")

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    def discover_from_docx(self, document_token: str) -> DocumentDiscovery:
        """Fetch the title and outbound Feishu links of a docx page."""
        title = self.get_document_title(document_token)
        links = self.collect_document_links(document_token)
        return DocumentDiscovery(title=title, links=links)

    def get_document_title(self, document_token: str) -> Optional[str]:
        """Document title, or None when the metadata lookup fails."""
        try:
            data = self._request(f"/docx/v1/documents/{document_token}", DocumentMetaData)
        except FeishuApiError as e:
            self._debug_log(f"title lookup failed for {document_token}: {e}")
            return None

        if data.document and data.document.title:
            return data.document.title
        return data.title

    def get_docx_blocks(self, document_token: str) -> List[Any]:
        """Fetch every block of a docx document, following pagination."""
        blocks: List[Any] = []
        for page in self._iterate_pages(
            f"/docx/v1/documents/{document_token}/blocks",
            DocumentBlocksPageData,
            {'page_size': min(self.page_size, DOCX_PAGE_SIZE_MAX)}
        ):
            blocks.extend(page.items or page.blocks or [])
        return blocks

    def get_docx_raw_content(self, document_token: str) -> Optional[str]:
        data = self._request(f"/docx/v1/documents/{document_token}/raw_content", RawContentData)
        return data.content

    def collect_document_links(self, document_token: str) -> List[str]:
        """
        Collect outbound links of a docx page.

        Links are read from the block listing; when the listing fails or yields
        nothing, the page's raw text is scanned instead.
        """
        links: Dict[str, None] = {}
        fallback_to_raw_content = False

        try:
            for page in self._iterate_pages(
                f"/docx/v1/documents/{document_token}/blocks",
                DocumentBlocksPageData,
                {'page_size': min(self.page_size, DOCX_PAGE_SIZE_MAX)}
            ):
                for link in extract_feishu_links(page.items or page.blocks or []):
                    links.setdefault(link, None)
        except FeishuApiError as e:
            self._debug_log(f"block listing failed for {document_token}, using raw content: {e}")
            fallback_to_raw_content = True

        if fallback_to_raw_content or not links:
            try:
                for link in extract_feishu_links(self.get_docx_raw_content(document_token)):
                    links.setdefault(link, None)
            except FeishuApiError as e:
                self._debug_log(f"raw content fallback failed for {document_token}: {e}")

        return list(links)

    def download_drive_file(self, file_token: str) -> DriveFileDownload:
        """Download a drive file body as text, with its content headers."""
        path = f"/drive/v1/files/{quote(file_token, safe='')}/download"
        return self._schedule(path, self._handle_download)

    # ------------------------------------------------------------------
    # Wiki
    # ------------------------------------------------------------------

    def get_wiki_node(self, node_token: str) -> WikiNode:
        """
        Resolve a wiki node token.

        The node-lookup endpoint accepts different query shapes across
        deployments. Candidates are tried in order; the next one is only tried
        when the failure reports a field validation error.

        Raises:
            WikiNodeResolutionError: If no candidate yields a node
        """
        failures: List[str] = []

        for path in build_wiki_get_node_candidates(node_token):
            try:
                self._debug_log(f"wiki.get_node candidate => {path}")
                data = self._request(path, WikiGetNodeData)
                raw_node = data.node or WikiNodeRaw.model_validate(data.model_dump())
                node = self.normalize_wiki_node(raw_node)
                if node:
                    self._debug_log(f"wiki.get_node success => {path}")
                    return node
                failures.append(f"{path}: empty node")
            except (FeishuApiError, ValidationError) as e:
                failures.append(f"{path}: {e}")
                should_continue = WIKI_FIELD_VALIDATION_SIGNATURE in str(e).lower()
                self._debug_log(f"wiki.get_node failed => {path}, continue={should_continue}, reason={e}")
                if not should_continue:
                    break

        raise WikiNodeResolutionError(node_token, failures)

    def list_wiki_child_nodes(self, space_id: str, parent_node_token: str) -> List[WikiNode]:
        """List the direct children of a wiki node, following pagination."""
        nodes: List[WikiNode] = []
        for page in self._iterate_pages(
            f"/wiki/v2/spaces/{quote(space_id, safe='')}/nodes",
            WikiListNodesData,
            {
                'page_size': min(self.page_size, WIKI_PAGE_SIZE_MAX),
                'parent_node_token': parent_node_token,
            }
        ):
            for raw_node in page.items or page.nodes or []:
                node = self.normalize_wiki_node(raw_node)
                if node:
                    nodes.append(node)
        return nodes

    @staticmethod
    def normalize_wiki_node(raw_node: Optional[WikiNodeRaw]) -> Optional[WikiNode]:
        if raw_node is None or not raw_node.node_token:
            return None

        return WikiNode(
            node_token=raw_node.node_token,
            parent_node_token=raw_node.parent_node_token,
            space_id=raw_node.space_id,
            title=raw_node.title,
            obj_type=raw_node.obj_type,
            obj_token=raw_node.obj_token,
            has_child=raw_node.has_child,
        )

    # ------------------------------------------------------------------
    # Authentication
    # ------------------------------------------------------------------

    def get_tenant_access_token(self) -> str:
        """Return the cached tenant token, refreshing it once expired."""
        now = time.time()
        if self._token_cache and now < self._token_cache.expired_at:
            self._debug_log("auth cache hit")
            return self._token_cache.token

        self._debug_log("auth cache miss, requesting tenant_access_token")

        request_id = self._next_request_id()
        data = self._request_with_retry(
            request_id,
            '/auth/v3/tenant_access_token/internal',
            self._envelope_handler(TenantAccessTokenData),
            method='POST',
            json_body={'app_id': self.app_id, 'app_secret': self.app_secret},
            with_auth=False
        )

        ttl = max(TOKEN_MIN_LIFETIME, data.expire - TOKEN_REFRESH_MARGIN)
        self._token_cache = TenantAccessToken(token=data.tenant_access_token, expired_at=now + ttl)
        self._debug_log(f"auth token refreshed, ttl={ttl}s")
        return data.tenant_access_token

    # ------------------------------------------------------------------
    # Request pipeline
    # ------------------------------------------------------------------

    def _iterate_pages(self, path: str, schema: Type[SchemaT], params: Dict[str, Any]):
        """Yield validated pages until the server reports no more or omits the next token."""
        page_token: Optional[str] = None

        while True:
            query = dict(params)
            if page_token:
                query['page_token'] = page_token

            page = self._request(f"{path}?{urlencode(query)}", schema)
            yield page

            if not page.has_more:
                break

            page_token = page.page_token
            if not page_token:
                break

    def _request(self, path: str, schema: Type[SchemaT]) -> SchemaT:
        """Scheduled, retried GET returning data validated against schema."""
        return self._schedule(path, self._envelope_handler(schema))

    def _schedule(self, path: str, handler, method: str = 'GET', json_body: Optional[Dict[str, Any]] = None):
        request_id = self._next_request_id()
        self._debug_log(f"req#{request_id} queued path={path} method={method}")
        self._enforce_rate_limit()
        return self._request_with_retry(request_id, path, handler, method=method, json_body=json_body)

    def _next_request_id(self) -> int:
        self.request_sequence += 1
        return self.request_sequence

    def _enforce_rate_limit(self) -> None:
        """Keep at least rate_limit seconds between request starts."""
        if self.rate_limit <= 0:
            return

        time_since_last = time.time() - self.last_request_time
        if time_since_last < self.rate_limit:
            self._sleep(self.rate_limit - time_since_last)

        self.last_request_time = time.time()

    def _request_with_retry(
        self,
        request_id: int,
        path: str,
        handler,
        method: str = 'GET',
        json_body: Optional[Dict[str, Any]] = None,
        with_auth: bool = True
    ):
        """Run attempts until success, a permanent failure, or the retry budget is spent."""
        retrying = Retrying(
            retry=retry_if_result(lambda outcome: outcome.retriable),
            stop=stop_after_attempt(self.max_retries + 1),
            wait=wait_random_exponential(multiplier=API_RETRY_MIN_DELAY, min=API_RETRY_MIN_DELAY,
                                         max=API_RETRY_MAX_DELAY),
            sleep=self._sleep,
            before_sleep=lambda state: self._debug_log(
                f"req#{request_id} retry attempt={state.attempt_number} "
                f"left={self.max_retries + 1 - state.attempt_number} "
                f"reason={state.outcome.result().error}"
            ),
            retry_error_callback=lambda state: state.outcome.result(),
        )

        outcome: RequestOutcome = retrying(
            self._request_once, request_id, path, handler, method, json_body, with_auth
        )
        if outcome.status is OutcomeStatus.SUCCESS:
            return outcome.value
        raise outcome.error

    def _request_once(
        self,
        request_id: int,
        path: str,
        handler,
        method: str,
        json_body: Optional[Dict[str, Any]],
        with_auth: bool
    ) -> RequestOutcome:
        """Single attempt; failures are returned as tagged outcomes, not raised."""
        headers = {'Content-Type': 'application/json; charset=utf-8'}
        start_time = time.time()
        self._debug_log(f"req#{request_id} start path={path}")

        if with_auth:
            try:
                headers['Authorization'] = f"Bearer {self.get_tenant_access_token()}"
            except FeishuApiError as e:
                return RequestOutcome.failure(e)

        url = f"{self.base_url}{path}"
        try:
            response = self.session.request(
                method, url, headers=headers, json=json_body, timeout=self.timeout
            )
            response.raise_for_status()
        except requests.exceptions.HTTPError as e:
            return self._classify_http_error(request_id, path, e.response, start_time)
        except (requests.exceptions.ConnectionError, requests.exceptions.Timeout) as e:
            self._debug_log(f"req#{request_id} transport-error path={path} reason={e}")
            return RequestOutcome.failure(
                FeishuApiError(f"Feishu request failed ({path}): {e}", retriable=True, path=path)
            )
        except requests.exceptions.RequestException as e:
            return RequestOutcome.failure(
                FeishuApiError(f"Feishu request failed ({path}): {e}", retriable=False, path=path)
            )

        outcome = handler(request_id, path, response)
        if outcome.status is OutcomeStatus.SUCCESS:
            self._debug_log(
                f"req#{request_id} success path={path} elapsed={(time.time() - start_time) * 1000:.0f}ms"
            )
        return outcome

    def _classify_http_error(
        self,
        request_id: int,
        path: str,
        response: Optional[requests.Response],
        start_time: float
    ) -> RequestOutcome:
        status = response.status_code if response is not None else None
        reason = (response.reason or '') if response is not None else ''
        code = error_code_from_response(response)
        rate_limited = is_rate_limit_code(code) or status == RATE_LIMIT_HTTP_STATUS
        retriable = rate_limited or (status is not None and status >= 500)
        detail = format_error_detail(response)

        if rate_limited:
            self._wait_for_rate_limit_backoff(request_id, path, str(code or status))

        self._debug_log(
            f"req#{request_id} fetch-error path={path} status={status or 'unknown'} retriable={retriable} "
            f"elapsed={(time.time() - start_time) * 1000:.0f}ms detail={detail or 'none'}"
        )
        message = f"Feishu request failed ({path}): {status or 'unknown'} {reason}"
        if detail:
            message += f" - {detail}"
        return RequestOutcome.failure(
            FeishuApiError(message, retriable=retriable, path=path, code=code, status=status)
        )

    def _envelope_handler(self, schema: Type[SchemaT]):
        """Build a response handler validating the envelope and then the data shape."""

        def handle(request_id: int, path: str, response: requests.Response) -> RequestOutcome:
            try:
                payload = response.json()
            except ValueError:
                return RequestOutcome.failure(
                    FeishuApiError(f"Feishu response is not JSON ({path})", path=path)
                )

            try:
                envelope = FeishuEnvelope.model_validate(payload)
            except ValidationError:
                return RequestOutcome.failure(
                    FeishuApiError(f"Feishu response validation failed ({path})", path=path)
                )

            if envelope.code != 0:
                return self._api_error_outcome(request_id, path, envelope.code, envelope.msg)

            try:
                return RequestOutcome.success(schema.model_validate(unwrap_feishu_data(envelope)))
            except ValidationError:
                return RequestOutcome.failure(
                    FeishuApiError(f"Feishu data validation failed ({path})", path=path)
                )

        return handle

    def _handle_download(self, request_id: int, path: str, response: requests.Response) -> RequestOutcome:
        content_type = response.headers.get('Content-Type')

        # Errors on the download endpoint come back as a JSON envelope
        if content_type and 'application/json' in content_type.lower():
            try:
                payload = response.json()
            except ValueError:
                payload = None
            if isinstance(payload, dict) and isinstance(payload.get('code'), int) and payload['code'] != 0:
                return self._api_error_outcome(request_id, path, payload['code'], str(payload.get('msg', '')))

        encoding = response.encoding or 'utf-8'
        try:
            content = response.content.decode(encoding, errors='replace')
        except LookupError:
            content = response.content.decode('utf-8', errors='replace')

        return RequestOutcome.success(DriveFileDownload(
            content=content,
            content_type=content_type,
            content_disposition=response.headers.get('Content-Disposition'),
        ))

    def _api_error_outcome(self, request_id: int, path: str, code: int, msg: str) -> RequestOutcome:
        retriable = is_rate_limit_code(code)
        if retriable:
            self._wait_for_rate_limit_backoff(request_id, path, str(code))
        return RequestOutcome.failure(
            FeishuApiError(f"Feishu API error ({path}): {code} {msg}", retriable=retriable, path=path, code=code)
        )

    def _wait_for_rate_limit_backoff(self, request_id: int, path: str, reason: str) -> None:
        backoff = random.uniform(API_RATE_LIMIT_BACKOFF_MIN, API_RATE_LIMIT_BACKOFF_MAX)
        logger.warning(f"req#{request_id} rate limited ({reason}) on {path}, sleeping {backoff:.2f}s")
        self._sleep(backoff)

    def _debug_log(self, message: str) -> None:
        if self.debug:
            logger.info(message)
        else:
            logger.debug(message)


__all__ = [
    'FeishuClient',
    'FeishuApiError',
    'WikiNodeResolutionError',
    'RequestOutcome',
    'OutcomeStatus',
    'unwrap_feishu_data',
    'build_wiki_get_node_candidates',
    'is_rate_limit_code',
    'FEISHU_API_BASE',
]
