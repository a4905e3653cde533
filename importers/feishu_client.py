"""
Feishu Open API client for the Drive to Wiki migrator.

This module wraps the Drive and Wiki REST endpoints used by the migration,
handling authentication, retries and rate limiting. Every call returns an
``ApiResult`` envelope; callers branch on ``ok`` and the documented data
fields, never on HTTP status codes.
"""

import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional
from urllib.parse import quote

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from config_loader import DEFAULT_BASE_URL

logger = logging.getLogger('feishu_wiki_migrator.importers.feishu_client')


@dataclass
class ApiResult:
    """Normalized envelope for a remote call."""

    ok: bool
    request: Optional[Dict[str, Any]] = None
    response: Optional[Dict[str, Any]] = None
    error: Optional[str] = None

    @property
    def body(self) -> Any:
        if not self.response:
            return None
        return self.response.get('body')

    @property
    def data(self) -> Dict[str, Any]:
        """The ``data`` object of a JSON body, or an empty dict."""
        body = self.body
        if isinstance(body, dict) and isinstance(body.get('data'), dict):
            return body['data']
        return {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            'ok': self.ok,
            'request': self.request,
            'response': self.response,
            'error': self.error
        }


class FeishuClient:
    """Feishu Drive/Wiki REST client with retry logic and rate limiting."""

    DEFAULT_TIMEOUT = 30
    DEFAULT_MAX_RETRIES = 3
    DEFAULT_RETRY_BACKOFF = 0.5
    DEFAULT_RATE_LIMIT = 0.0

    def __init__(
        self,
        user_access_token: str,
        base_url: str = DEFAULT_BASE_URL,
        verify_ssl: bool = True,
        timeout: int = DEFAULT_TIMEOUT,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_backoff_factor: float = DEFAULT_RETRY_BACKOFF,
        rate_limit: float = DEFAULT_RATE_LIMIT
    ):
        """
        Initialize Feishu client.

        Args:
            user_access_token: OAuth user access token
            base_url: Open API base URL
            verify_ssl: Whether to verify SSL certificates
            timeout: Request timeout in seconds
            max_retries: Maximum number of retries for failed requests
            retry_backoff_factor: Backoff factor for retries
            rate_limit: Minimum seconds between requests (0 = no limit)
        """
        self.base_url = base_url.rstrip('/')
        self.verify_ssl = verify_ssl
        self.timeout = timeout
        self.rate_limit = rate_limit
        self._last_request_time = 0.0

        self.session = requests.Session()
        self.session.headers.update({
            'Authorization': f'Bearer {user_access_token}',
            'Accept': 'application/json'
        })

        # POST is retried too: the Open API answers 429 before doing any work
        retry_strategy = Retry(
            total=max_retries,
            backoff_factor=retry_backoff_factor,
            status_forcelist=[429, 500, 502, 503, 504],
            allowed_methods=None,
            raise_on_status=False
        )

        adapter = HTTPAdapter(max_retries=retry_strategy)
        self.session.mount('http://', adapter)
        self.session.mount('https://', adapter)

        logger.debug(f"Initialized Feishu client for {self.base_url}")

    def _handle_rate_limit(self) -> None:
        """Enforce rate limiting between requests."""
        if self.rate_limit <= 0:
            return

        current_time = time.time()
        time_since_last = current_time - self._last_request_time

        if time_since_last < self.rate_limit:
            sleep_time = self.rate_limit - time_since_last
            logger.debug(f"Rate limiting: sleeping {sleep_time:.2f}s")
            time.sleep(sleep_time)

        self._last_request_time = time.time()

    def _make_request(
        self,
        method: str,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None
    ) -> ApiResult:
        """
        Make HTTP request and wrap the outcome in an ApiResult.

        Args:
            method: HTTP method (GET, POST, DELETE)
            endpoint: API endpoint path
            params: Query parameters
            json: JSON payload for POST requests

        Returns:
            ApiResult; ``ok`` is False for HTTP errors, non-zero ``code``
            bodies and transport exceptions
        """
        self._handle_rate_limit()

        url = f"{self.base_url}{endpoint}"
        params = {key: value for key, value in (params or {}).items() if value is not None}
        request_info = {'url': url, 'method': method, 'params': params, 'body': json}

        logger.debug(f"{method} {url}")

        headers = {'Content-Type': 'application/json; charset=utf-8'} if json is not None else None

        try:
            response = self.session.request(
                method=method,
                url=url,
                headers=headers,
                params=params or None,
                json=json,
                verify=self.verify_ssl,
                timeout=self.timeout
            )
        except requests.RequestException as e:
            logger.error(f"Request failed: {method} {url} - {str(e)}")
            return ApiResult(ok=False, request=request_info, error=str(e))

        logger.debug(f"Response status: {response.status_code}")

        try:
            body = response.json()
            parsed = True
        except ValueError:
            body = response.text
            parsed = False

        code = body.get('code') if parsed and isinstance(body, dict) else None
        ok = response.ok and (code is None or code == 0)

        response_info = {
            'status': response.status_code,
            'status_text': response.reason,
            'body': body
        }

        error = None
        if not ok:
            if isinstance(body, dict) and body.get('msg'):
                error = f"[{code}] {body['msg']}"
            else:
                error = f"HTTP {response.status_code} {response.reason}"

        return ApiResult(ok=ok, request=request_info, response=response_info, error=error)

    # ========================================================================
    # Drive
    # ========================================================================

    def get_root_folder_meta(self) -> ApiResult:
        """Get the token and name of the user's drive root folder."""
        return self._make_request('GET', '/drive/explorer/v2/root_folder/meta')

    def get_folder_meta(self, folder_token: str) -> ApiResult:
        """Get folder metadata (name, owner) by token."""
        return self._make_request(
            'GET', f'/drive/explorer/v2/folder/{quote(folder_token, safe="")}/meta'
        )

    def list_folder(
        self,
        folder_token: str,
        page_size: int = 200,
        page_token: Optional[str] = None,
        order_by: Optional[str] = None,
        direction: Optional[str] = None
    ) -> ApiResult:
        """
        List one page of a folder's children.

        Returns:
            ApiResult whose data holds ``files``, ``has_more`` and ``page_token``
        """
        params = {
            'folder_token': folder_token,
            'page_size': page_size,
            'page_token': page_token or None,
            'order_by': order_by,
            'direction': direction
        }
        return self._make_request('GET', '/drive/v1/files', params=params)

    def create_folder(self, name: str, folder_token: str) -> ApiResult:
        """Create a folder under ``folder_token``."""
        data = {'name': name, 'folder_token': folder_token}
        return self._make_request('POST', '/drive/v1/files/create_folder', json=data)

    def copy_file(self, file_token: str, name: str, file_type: str, folder_token: str) -> ApiResult:
        """
        Copy a file into ``folder_token``.

        Returns:
            ApiResult whose data holds either the copied ``file`` or a ``task_id``
        """
        data = {'name': name, 'type': file_type, 'folder_token': folder_token}
        return self._make_request(
            'POST', f'/drive/v1/files/{quote(file_token, safe="")}/copy', json=data
        )

    def check_drive_task(self, task_id: str) -> ApiResult:
        """Check the status of an asynchronous drive task."""
        return self._make_request('GET', '/drive/v1/files/task_check', params={'task_id': task_id})

    # ========================================================================
    # Wiki
    # ========================================================================

    def create_wiki_space(self, name: str, description: Optional[str] = None) -> ApiResult:
        """Create a new wiki space."""
        data = {'name': name}
        if description:
            data['description'] = description
        return self._make_request('POST', '/wiki/v2/spaces', json=data)

    def create_wiki_node(
        self,
        space_id: str,
        obj_type: str,
        node_type: str = 'origin',
        parent_node_token: Optional[str] = None,
        title: Optional[str] = None
    ) -> ApiResult:
        """Create a wiki node, at the top of the space unless a parent is given."""
        data = {'obj_type': obj_type, 'node_type': node_type}
        if parent_node_token:
            data['parent_node_token'] = parent_node_token
        if title:
            data['title'] = title
        return self._make_request(
            'POST', f'/wiki/v2/spaces/{quote(str(space_id), safe="")}/nodes', json=data
        )

    def move_docs_to_wiki(
        self,
        space_id: str,
        obj_type: str,
        obj_token: str,
        parent_wiki_token: Optional[str] = None,
        apply: bool = True
    ) -> ApiResult:
        """
        Move a drive document into a wiki space.

        Returns:
            ApiResult whose data holds ``wiki_token`` or a ``task_id``
        """
        data = {'obj_type': obj_type, 'obj_token': obj_token, 'apply': bool(apply)}
        if parent_wiki_token:
            data['parent_wiki_token'] = parent_wiki_token
        return self._make_request(
            'POST',
            f'/wiki/v2/spaces/{quote(str(space_id), safe="")}/nodes/move_docs_to_wiki',
            json=data
        )

    def get_wiki_task(self, task_id: str, task_type: Optional[str] = None) -> ApiResult:
        """Get the status of an asynchronous wiki task."""
        return self._make_request(
            'GET', f'/wiki/v2/tasks/{quote(task_id, safe="")}', params={'task_type': task_type}
        )

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> 'FeishuClient':
        """
        Create client from configuration dictionary.

        Args:
            config: Configuration dict with 'feishu' section

        Returns:
            Configured FeishuClient instance
        """
        feishu_config = config.get('feishu', {}) or {}
        advanced_config = config.get('advanced', {}) or {}

        return cls(
            user_access_token=feishu_config.get('user_access_token'),
            base_url=feishu_config.get('base_url') or DEFAULT_BASE_URL,
            verify_ssl=advanced_config.get('verify_ssl', True),
            timeout=advanced_config.get('request_timeout', cls.DEFAULT_TIMEOUT),
            max_retries=advanced_config.get('max_retries', cls.DEFAULT_MAX_RETRIES),
            retry_backoff_factor=advanced_config.get('retry_backoff_factor', cls.DEFAULT_RETRY_BACKOFF),
            rate_limit=advanced_config.get('rate_limit', cls.DEFAULT_RATE_LIMIT)
        )


__all__ = ['ApiResult', 'FeishuClient']
