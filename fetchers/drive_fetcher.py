"""Paginated folder listing and lazy tree loading against the Drive API."""

import logging
from typing import Any, Dict, Iterable, Iterator, List, Optional

from errors import TransportError
from logger import log_api_result
from models import FOLDER_TYPE

logger = logging.getLogger('feishu_wiki_migrator.fetchers.drive_fetcher')

DEFAULT_ROOT_NAME = "My Drive"
DEFAULT_SHARED_NAME = "Shared folder"


class DriveFetcher:
    """Lists drive folders page by page and feeds the tree store."""

    def __init__(self, client, settings, context=None):
        """
        Initialize drive fetcher.

        Args:
            client: FeishuClient instance
            settings: MigrationSettings with page size and page bounds
            context: Optional RunContext checked before every listing call
        """
        self.client = client
        self.settings = settings
        self.context = context

    def iter_folder_pages(
        self,
        folder_token: str,
        label: str,
        page_limit: Optional[int] = None
    ) -> Iterator[List[Dict[str, Any]]]:
        """
        Yield the raw items of each listing page.

        Pagination continues while the response has ``has_more`` and a
        ``page_token``; it stops after ``page_limit`` pages with a warning.

        Raises:
            TransportError: If a page request fails
        """
        page_limit = page_limit or self.settings.traversal_page_limit
        page_token = None
        page_index = 0

        while True:
            self._check()
            page_index += 1
            result = self.client.list_folder(
                folder_token,
                page_size=self.settings.page_size,
                page_token=page_token
            )
            step = f"{label} page {page_index}"
            log_api_result(step, result, logger)
            if not result.ok:
                raise TransportError(step, result.error or "folder listing failed", result)

            data = result.data
            files = data.get('files')
            yield files if isinstance(files, list) else []

            if not data.get('has_more') or not data.get('page_token'):
                return
            if page_index >= page_limit:
                logger.warning(
                    f"Pagination stopped for {label}: reached {page_limit} pages, listing truncated"
                )
                return
            page_token = data['page_token']

    def fetch_folder_items(
        self,
        folder_token: str,
        label: Optional[str] = None,
        page_limit: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        """
        Fetch every raw item of a folder across pages.

        Args:
            folder_token: Folder to list
            label: Log label for the listing
            page_limit: Page bound (defaults to the traversal bound)

        Returns:
            Raw listing items in API order
        """
        items = []
        for page in self.iter_folder_pages(folder_token, label or f"Folder listing ({folder_token})", page_limit):
            items.extend(page)
        return items

    def load_children(self, store, node) -> List:
        """
        List a folder and attach its children to the tree store.

        Args:
            store: DriveTreeStore owning ``node``
            node: Folder node to expand

        Returns:
            Attached child nodes (empty for non-folders)
        """
        if not node.is_folder:
            return []
        items = self.fetch_folder_items(
            node.token,
            label=f"Folder listing ({node.name})",
            page_limit=self.settings.tree_page_limit
        )
        children = store.attach_children(node, items)
        logger.info(f"Loaded {len(children)} item(s) in {node.name}")
        return children

    def fetch_root_meta(self) -> Dict[str, Any]:
        """
        Fetch the user's drive root folder.

        Returns:
            Dict with ``token``, ``name`` and raw ``meta``

        Raises:
            TransportError: If the call fails or the response has no token
        """
        self._check()
        result = self.client.get_root_folder_meta()
        log_api_result("Root folder meta", result, logger)
        if not result.ok:
            raise TransportError("Root folder meta", result.error or "request failed", result)
        data = result.data
        if not data.get('token'):
            raise TransportError("Root folder meta", "response is missing the root token", result)
        return {'token': data['token'], 'name': data.get('name') or DEFAULT_ROOT_NAME, 'meta': data}

    def fetch_folder_name(self, folder_token: str, fallback_name: Optional[str] = None) -> Dict[str, Any]:
        """
        Fetch a folder's display name, falling back to ``fallback_name``.

        Returns:
            Dict with ``name`` and raw ``meta`` (None when the fallback was used)

        Raises:
            TransportError: If the lookup fails and there is no fallback
        """
        self._check()
        result = self.client.get_folder_meta(folder_token)
        log_api_result("Folder meta", result, logger)
        name = result.data.get('name') if result.ok else None
        if name:
            return {'name': name, 'meta': result.data}
        if fallback_name:
            logger.info(f"Using tree name for folder {folder_token}: {fallback_name}")
            return {'name': fallback_name, 'meta': None}
        raise TransportError("Folder meta", f"cannot resolve name of folder {folder_token}", result)

    def refresh_roots(self, store, shared_tokens: Iterable[str]) -> None:
        """
        Rebuild the store's roots: the drive root plus every shared folder.

        Shared folders whose metadata cannot be fetched are logged and skipped.
        """
        store.reset()
        logger.info("Refreshing root folder and shared folders")

        root = self.fetch_root_meta()
        store.add_root(root['token'], root['name'], FOLDER_TYPE)

        for token in shared_tokens:
            self._check()
            result = self.client.get_folder_meta(token)
            log_api_result("Folder meta", result, logger)
            if not result.ok:
                logger.warning(f"Failed to refresh shared folder {token}")
                continue
            store.add_root(token, result.data.get('name') or DEFAULT_SHARED_NAME, FOLDER_TYPE)

    def _check(self) -> None:
        if self.context is not None:
            self.context.check()


__all__ = ['DriveFetcher']
