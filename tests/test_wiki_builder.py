"""Tests for wiki space, node and move construction."""

import pytest

from config_loader import MigrationSettings
from errors import PlanError, TransportError
from importers import FolderHierarchyMapper, IdMappingTracker, WikiBuilder
from models import CopiedItem, FolderPlanEntry
from orchestrator.run_context import RunContext

from conftest import error_result


def folder(token, parent, name=None):
    return FolderPlanEntry(token=token, name=name or f"Folder {token}", parent_token=parent)


def copied(number, parent='root', item_type='docx'):
    return CopiedItem(
        token=f"c{number}",
        name=f"Doc {number}",
        type=item_type,
        parent_token=parent,
        original_token=f"o{number}",
        index=number
    )


@pytest.fixture
def builder(fake_api, context):
    return WikiBuilder(fake_api, context)


class TestFolderHierarchyMapper:

    def test_levels_follow_parents_and_plan_order(self):
        folders = {
            'B': folder('B', 'A'),
            'A': folder('A', 'root'),
            'C': folder('C', 'root'),
            'D': folder('D', 'B'),
        }
        mapper = FolderHierarchyMapper(folders, 'root')

        levels = [[entry.token for entry in level] for level in mapper.iter_levels()]

        assert levels == [['A', 'C'], ['B'], ['D']]

    def test_cycle_is_reported_with_unresolved_tokens(self):
        folders = {'A': folder('A', 'B'), 'B': folder('B', 'A'), 'C': folder('C', 'root')}

        with pytest.raises(PlanError) as exc_info:
            FolderHierarchyMapper(folders, 'root').ordered()

        assert sorted(exc_info.value.unresolved) == ['A', 'B']


class TestCreateSpace:

    def test_returns_space_id(self, fake_api, builder):
        assert builder.create_space('Projects') == 'space-1'
        assert fake_api.calls == [('create_wiki_space', {'name': 'Projects'})]

    def test_failure_raises(self, fake_api, builder):
        fake_api.failures['create_wiki_space'] = error_result('create_wiki_space')

        with pytest.raises(TransportError):
            builder.create_space('Projects')


class TestCreateNodes:

    def test_parents_are_created_before_children(self, fake_api, builder, context):
        folders = {
            'B': folder('B', 'A'),
            'A': folder('A', 'root'),
            'C': folder('C', 'root'),
        }

        node_map = builder.create_nodes('space-1', folders, 'root')

        calls = [kwargs for method, kwargs in fake_api.calls if method == 'create_wiki_node']
        assert [(call['title'], call['parent_node_token']) for call in calls] == [
            ('Folder A', None),
            ('Folder C', None),
            ('Folder B', node_map.get_node_token('A')),
        ]
        assert all(call['obj_type'] == 'docx' and call['node_type'] == 'origin' for call in calls)
        assert len(node_map) == 3
        assert node_map.get_space_id('root') == 'space-1'
        assert node_map.get_folder_token(node_map.get_node_token('B')) == 'B'
        assert 'C' in node_map
        assert context.progress['nodes'] == {'done': 3, 'total': 3}

    def test_cycle_fails_before_any_node_is_created(self, fake_api, builder):
        folders = {'A': folder('A', 'B'), 'B': folder('B', 'A')}

        with pytest.raises(PlanError):
            builder.create_nodes('space-1', folders, 'root')

        assert fake_api.count('create_wiki_node') == 0

    def test_parent_outside_plan_is_a_plan_error(self, fake_api, builder):
        with pytest.raises(PlanError) as exc_info:
            builder.create_nodes('space-1', {'A': folder('A', 'ghost')}, 'root')

        assert exc_info.value.unresolved == ['A']
        assert fake_api.count('create_wiki_node') == 0

    def test_no_folders_creates_no_nodes(self, fake_api, builder):
        node_map = builder.create_nodes('space-1', {}, 'root')

        assert len(node_map) == 0
        assert fake_api.calls == []

    def test_failed_node_raises(self, fake_api, builder):
        fake_api.failures['create_wiki_node'] = error_result('create_wiki_node')

        with pytest.raises(TransportError, match="Folder A"):
            builder.create_nodes('space-1', {'A': folder('A', 'root')}, 'root')


class TestMoveDocuments:

    def test_moves_under_parent_nodes_in_index_order(self, fake_api, builder):
        node_map = IdMappingTracker()
        node_map.add_node_mapping('A', 'node-A')
        items = [copied(2, parent='A'), copied(1)]

        report = builder.move_documents('space-1', items, 'root', node_map)

        calls = [kwargs for method, kwargs in fake_api.calls if method == 'move_docs_to_wiki']
        assert [(call['obj_token'], call['parent_wiki_token']) for call in calls] == [
            ('c1', None), ('c2', 'node-A')
        ]
        assert [item.token for item in report.moved] == ['c1', 'c2']
        assert report.task_ids == ['movetask-c1', 'movetask-c2']

    def test_unsupported_types_are_skipped(self, fake_api, builder):
        items = [copied(1), copied(2, item_type='pdf')]

        report = builder.move_documents('space-1', items, 'root', IdMappingTracker())

        assert [item.token for item in report.moved] == ['c1']
        assert [item.token for item in report.skipped] == ['c2']
        assert fake_api.count('move_docs_to_wiki') == 1

    def test_synchronous_move_has_no_task(self, fake_api, builder):
        fake_api.move_returns_task = False

        report = builder.move_documents('space-1', [copied(1)], 'root', IdMappingTracker())

        assert report.task_ids == []
        assert len(report.moved) == 1

    def test_missing_parent_node_is_a_plan_error(self, fake_api, builder):
        with pytest.raises(PlanError):
            builder.move_documents('space-1', [copied(1, parent='A')], 'root', IdMappingTracker())

        assert fake_api.count('move_docs_to_wiki') == 0

    def test_failed_move_stops_the_stage(self, fake_api, builder):
        fake_api.failures['move_docs_to_wiki'] = error_result('move_docs_to_wiki')

        with pytest.raises(TransportError):
            builder.move_documents('space-1', [copied(1), copied(2)], 'root', IdMappingTracker())

        assert fake_api.count('move_docs_to_wiki') == 1


class TestMoveCooldown:

    @pytest.fixture
    def cooldown_context(self):
        return RunContext(MigrationSettings(move_batch_limit=90, move_pause_ms=60000))

    def run_moves(self, fake_api, context, count, monkeypatch):
        pauses = []
        monkeypatch.setattr(
            context, 'pause',
            lambda seconds: pauses.append((seconds, fake_api.count('move_docs_to_wiki')))
        )
        items = [copied(number) for number in range(count)]
        WikiBuilder(fake_api, context).move_documents('space-1', items, 'root', IdMappingTracker())
        return pauses

    def test_pause_before_the_91st_move(self, fake_api, cooldown_context, monkeypatch):
        pauses = self.run_moves(fake_api, cooldown_context, 91, monkeypatch)

        assert pauses == [(60.0, 90)]
        assert fake_api.count('move_docs_to_wiki') == 91
        assert cooldown_context.progress['moves'] == {'done': 91, 'total': 91}

    def test_no_pause_when_batch_is_exactly_full(self, fake_api, cooldown_context, monkeypatch):
        pauses = self.run_moves(fake_api, cooldown_context, 90, monkeypatch)

        assert pauses == []

    def test_pause_after_every_batch(self, fake_api, cooldown_context, monkeypatch):
        pauses = self.run_moves(fake_api, cooldown_context, 181, monkeypatch)

        assert [moves for _, moves in pauses] == [90, 180]


class TestWikiTasks:

    def test_failed_task_check_is_recorded_not_raised(self, fake_api, builder):
        fake_api.failing_wiki_tasks.add('t2')

        summaries = builder.check_wiki_tasks(['t1', 't2'])

        assert [summary.ok for summary in summaries] == [True, False]
        assert summaries[0].status == 'success'
        assert summaries[0].success == 1
        assert summaries[1].error == '[131005] task not found'
        assert ('get_wiki_task', {'task_id': 't1', 'task_type': 'move_docs_to_wiki'}) in fake_api.calls

    def test_summary_accepts_alternate_field_names(self):
        body = {'code': 0, 'data': {'state': 'failed', 'success_count': 0, 'fail_count': 2, 'fail_msg': 'denied'}}

        summary = WikiBuilder.extract_task_summary('t9', body)

        assert summary.to_dict() == {
            'task_id': 't9',
            'ok': True,
            'summary': {'status': 'failed', 'success': 0, 'failed': 2, 'fail_reason': 'denied'},
            'error': None
        }

    def test_running_task_is_polled_until_it_finishes(self, fake_api, builder, context, monkeypatch):
        fake_api.wiki_task_statuses['t1'] = ['processing', 'processing']
        pauses = []
        monkeypatch.setattr(context, 'pause', pauses.append)

        summaries = builder.check_wiki_tasks(['t1'])

        assert summaries[0].status == 'success'
        assert fake_api.count('get_wiki_task') == 3
        assert pauses == [0, 0]

    def test_polling_gives_up_after_the_attempt_limit(self, fake_api, monkeypatch):
        context = RunContext(MigrationSettings(wiki_task_poll_attempts=2, wiki_task_poll_interval=0))
        fake_api.wiki_task_statuses['t1'] = ['processing'] * 5
        monkeypatch.setattr(context, 'pause', lambda seconds: None)

        summaries = WikiBuilder(fake_api, context).check_wiki_tasks(['t1'])

        assert summaries[0].ok is True
        assert summaries[0].status == 'processing'
        assert fake_api.count('get_wiki_task') == 2
