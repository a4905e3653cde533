"""Tests for the command-line helpers."""

import logging

import pytest

import migrate
from errors import ValidationError

from conftest import FakeFeishuApi


def build_drive(api):
    api.add_folder('root', 'A', 'Folder A')
    api.add_folder('A', 'B', 'Folder B')
    api.add_file('B', 'b1', 'Deep doc')
    api.add_file('root', 'f1', 'Top doc')


class TestExitCodes:

    @pytest.mark.parametrize("report,expected", [
        ({'status': 'done'}, 0),
        ({'status': 'cancelled'}, 130),
        ({'status': 'failed', 'error': {'type': 'ValidationError'}}, 2),
        ({'status': 'failed', 'error': {'type': 'TransportError'}}, 1),
        ({'status': 'failed', 'error': None}, 1),
    ])
    def test_exit_code_for(self, report, expected):
        assert migrate.exit_code_for(report) == expected


class TestSelectionByToken:

    def test_locate_node_loads_folders_lazily(self, fake_api, store, fetcher):
        build_drive(fake_api)
        fetcher.refresh_roots(store, [])

        node = migrate.locate_node(store, fetcher, 'b1')

        assert node is not None
        assert node.parent.token == 'B'
        assert migrate.locate_node(store, fetcher, 'missing') is None

    def test_select_tokens(self, fake_api, store, fetcher, capsys):
        build_drive(fake_api)
        fetcher.refresh_roots(store, [])

        migrate.select_tokens(store, fetcher, ['A', 'f1'], logging.getLogger('test'))

        assert [node.token for node in store.selection_roots()] == ['root']
        assert 'My Drive | 2 folders, 1 files selected.' in capsys.readouterr().out

    def test_unknown_token_is_rejected(self, fake_api, store, fetcher):
        fetcher.refresh_roots(store, [])

        with pytest.raises(ValidationError):
            migrate.select_tokens(store, fetcher, ['nope'], logging.getLogger('test'))

    def test_list_folder_prints_children(self, fake_api, store, fetcher, capsys):
        build_drive(fake_api)
        fetcher.refresh_roots(store, [])

        assert migrate.list_folder(store, fetcher, '') == 0

        out = capsys.readouterr().out
        assert 'Folder A/' in out
        assert 'Top doc' in out

    def test_list_folder_rejects_files(self, fake_api, store, fetcher):
        build_drive(fake_api)
        fetcher.refresh_roots(store, [])

        assert migrate.list_folder(store, fetcher, 'f1') == 2


class TestMain:

    def test_missing_token_is_a_configuration_error(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        monkeypatch.delenv('FEISHU_USER_ACCESS_TOKEN', raising=False)

        assert migrate.main([]) == 2

    def test_nothing_selected(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        api = FakeFeishuApi()
        monkeypatch.setattr(migrate.FeishuClient, 'from_config', classmethod(lambda cls, config: api))

        assert migrate.main(['--token', 'u-x']) == 2
        assert api.methods() == ['get_root_folder_meta']

    def test_dry_run_makes_no_writes(self, tmp_path, monkeypatch, capsys):
        monkeypatch.chdir(tmp_path)
        api = FakeFeishuApi()
        build_drive(api)
        monkeypatch.setattr(migrate.FeishuClient, 'from_config', classmethod(lambda cls, config: api))

        assert migrate.main(['--token', 'u-x', '--select', 'A', '--dry-run']) == 0

        assert set(api.methods()) <= {'get_root_folder_meta', 'list_folder'}
        assert 'MIGRATION PREVIEW' in capsys.readouterr().out
