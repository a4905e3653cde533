"""Shared fixtures: an in-memory Drive/Wiki API standing in for FeishuClient."""

import itertools
from typing import Any, Callable, Dict, List, Optional

import pytest

from config_loader import MigrationSettings
from fetchers import DriveFetcher
from importers.feishu_client import ApiResult
from orchestrator.run_context import RunContext
from selection import DriveTreeStore


def ok_result(method: str, data: Dict[str, Any], **request) -> ApiResult:
    return ApiResult(
        ok=True,
        request={'method': method, **request},
        response={'status': 200, 'status_text': 'OK', 'body': {'code': 0, 'msg': 'success', 'data': data}}
    )


def error_result(method: str, code: int = 99991663, msg: str = 'permission denied', **request) -> ApiResult:
    return ApiResult(
        ok=False,
        request={'method': method, **request},
        response={'status': 400, 'status_text': 'Bad Request', 'body': {'code': code, 'msg': msg}},
        error=f"[{code}] {msg}"
    )


class FakeFeishuApi:
    """
    In-memory drive and wiki with the FeishuClient method surface.

    Folders are dicts of token -> list of raw listing items. Every call is
    recorded in ``calls`` as ``(method, kwargs)``.
    """

    def __init__(self, root_token: str = 'root', root_name: str = 'My Drive'):
        self.root_token = root_token
        self.folders: Dict[str, List[Dict[str, Any]]] = {root_token: []}
        self.names: Dict[str, str] = {root_token: root_name}
        self.calls: List[tuple] = []
        self.failures: Dict[str, ApiResult] = {}
        self.failing_wiki_tasks = set()
        self.wiki_task_statuses: Dict[str, List[str]] = {}
        self.copy_as_task = False
        self.copy_skip_listing = set()
        self.move_returns_task = True
        self.on_call: Optional[Callable[[str, Dict[str, Any]], None]] = None
        self.space_id = 'space-1'
        self._ids = itertools.count(1)

    # ------------------------------------------------------------------
    # Test helpers
    # ------------------------------------------------------------------

    def add_folder(self, parent: str, token: str, name: str) -> str:
        self.folders.setdefault(token, [])
        self.names[token] = name
        self.folders[parent].append({'token': token, 'name': name, 'type': 'folder'})
        return token

    def add_file(self, parent: str, token: str, name: str, file_type: str = 'docx') -> str:
        self.names[token] = name
        self.folders[parent].append({'token': token, 'name': name, 'type': file_type})
        return token

    def add_shortcut(self, parent: str, token: str, name: str, target_token: str, target_type: str) -> str:
        self.folders[parent].append({
            'token': token,
            'name': name,
            'type': 'shortcut',
            'shortcut_info': {'target_token': target_token, 'target_type': target_type}
        })
        return token

    def methods(self) -> List[str]:
        return [method for method, _ in self.calls]

    def count(self, method: str) -> int:
        return self.methods().count(method)

    def _record(self, method: str, **kwargs) -> Optional[ApiResult]:
        self.calls.append((method, kwargs))
        if self.on_call is not None:
            self.on_call(method, kwargs)
        return self.failures.get(method)

    # ------------------------------------------------------------------
    # Drive
    # ------------------------------------------------------------------

    def get_root_folder_meta(self) -> ApiResult:
        failure = self._record('get_root_folder_meta')
        if failure:
            return failure
        return ok_result('get_root_folder_meta', {'token': self.root_token, 'name': self.names[self.root_token]})

    def get_folder_meta(self, folder_token: str) -> ApiResult:
        failure = self._record('get_folder_meta', folder_token=folder_token)
        if failure:
            return failure
        if folder_token not in self.folders:
            return error_result('get_folder_meta', code=1061004, msg='not found')
        return ok_result('get_folder_meta', {'token': folder_token, 'name': self.names.get(folder_token)})

    def list_folder(self, folder_token: str, page_size: int = 200, page_token: Optional[str] = None, **_) -> ApiResult:
        failure = self._record('list_folder', folder_token=folder_token, page_size=page_size, page_token=page_token)
        if failure:
            return failure
        items = self.folders.get(folder_token, [])
        start = int(page_token or 0)
        end = start + page_size
        has_more = end < len(items)
        data = {'files': [dict(item) for item in items[start:end]], 'has_more': has_more}
        if has_more:
            data['page_token'] = str(end)
        return ok_result('list_folder', data, folder_token=folder_token)

    def create_folder(self, name: str, folder_token: str) -> ApiResult:
        failure = self._record('create_folder', name=name, folder_token=folder_token)
        if failure:
            return failure
        token = f"staging-{next(self._ids)}"
        self.add_folder(folder_token, token, name)
        return ok_result('create_folder', {'token': token, 'url': f'https://example.invalid/{token}'})

    def copy_file(self, file_token: str, name: str, file_type: str, folder_token: str) -> ApiResult:
        failure = self._record('copy_file', file_token=file_token, name=name, type=file_type, folder_token=folder_token)
        if failure:
            return failure
        token = f"copy-{next(self._ids)}"
        if file_token not in self.copy_skip_listing:
            self.add_file(folder_token, token, name, file_type)
        if self.copy_as_task:
            return ok_result('copy_file', {'task_id': f"copytask-{token}"})
        return ok_result('copy_file', {'file': {'token': token, 'name': name, 'type': file_type}})

    def check_drive_task(self, task_id: str) -> ApiResult:
        failure = self._record('check_drive_task', task_id=task_id)
        if failure:
            return failure
        return ok_result('check_drive_task', {'status': 'success'})

    # ------------------------------------------------------------------
    # Wiki
    # ------------------------------------------------------------------

    def create_wiki_space(self, name: str, description: Optional[str] = None) -> ApiResult:
        failure = self._record('create_wiki_space', name=name)
        if failure:
            return failure
        return ok_result('create_wiki_space', {'space': {'space_id': self.space_id, 'name': name}})

    def create_wiki_node(self, space_id, obj_type, node_type='origin', parent_node_token=None, title=None) -> ApiResult:
        failure = self._record(
            'create_wiki_node',
            space_id=space_id,
            obj_type=obj_type,
            node_type=node_type,
            parent_node_token=parent_node_token,
            title=title
        )
        if failure:
            return failure
        return ok_result('create_wiki_node', {'node': {'node_token': f"node-{next(self._ids)}", 'title': title}})

    def move_docs_to_wiki(self, space_id, obj_type, obj_token, parent_wiki_token=None, apply=True) -> ApiResult:
        failure = self._record(
            'move_docs_to_wiki',
            space_id=space_id,
            obj_type=obj_type,
            obj_token=obj_token,
            parent_wiki_token=parent_wiki_token,
            apply=apply
        )
        if failure:
            return failure
        if self.move_returns_task:
            return ok_result('move_docs_to_wiki', {'task_id': f"movetask-{obj_token}"})
        return ok_result('move_docs_to_wiki', {'wiki_token': f"wiki-{obj_token}"})

    def get_wiki_task(self, task_id: str, task_type: Optional[str] = None) -> ApiResult:
        failure = self._record('get_wiki_task', task_id=task_id, task_type=task_type)
        if failure:
            return failure
        if task_id in self.failing_wiki_tasks:
            return error_result('get_wiki_task', code=131005, msg='task not found')
        statuses = self.wiki_task_statuses.get(task_id)
        status = statuses.pop(0) if statuses else 'success'
        return ok_result('get_wiki_task', {'result': {'status': status, 'success_num': 1, 'fail_num': 0}})


@pytest.fixture
def fake_api():
    return FakeFeishuApi()


@pytest.fixture
def settings():
    return MigrationSettings(
        move_pause_ms=0,
        cancel_check_interval=0.01,
        copy_task_poll_interval=0,
        wiki_task_poll_interval=0
    )


@pytest.fixture
def context(settings):
    return RunContext(settings)


@pytest.fixture
def fetcher(fake_api, settings, context):
    return DriveFetcher(fake_api, settings, context)


@pytest.fixture
def store():
    return DriveTreeStore()


def load_tree(store: DriveTreeStore, fetcher: DriveFetcher, api: FakeFeishuApi, shared=()):
    """Refresh roots and expand every folder so all nodes are in the store."""
    fetcher.refresh_roots(store, list(shared))
    pending = list(store.roots)
    expanded = set()
    while pending:
        node = pending.pop(0)
        if node.is_folder and not node.loaded and node.token not in expanded:
            expanded.add(node.token)
            fetcher.load_children(store, node)
            pending.extend(node.children)
    api.calls.clear()
    return store


@pytest.fixture
def loaded_tree(store, fetcher):
    """Callable loading the whole fake drive into the store."""
    def _load(api, shared=()):
        return load_tree(store, fetcher, api, shared)
    return _load


def plan_selection(store: DriveTreeStore, fetcher: DriveFetcher, api: FakeFeishuApi, context: RunContext, *tokens):
    """Load the tree, select ``tokens`` and return ``(selection_plan, copy_plan)``."""
    from fetchers import TreeDiscovery
    from orchestrator.migration_planner import MigrationPlanner
    from selection import resolve_selection

    load_tree(store, fetcher, api)
    for token in tokens:
        store.toggle(store.find(token), True)
    plan = TreeDiscovery(fetcher, context).build_selection_plan(resolve_selection(store))
    copy_plan = MigrationPlanner(context.settings.supported_types).partition(plan)
    api.calls.clear()
    return plan, copy_plan
