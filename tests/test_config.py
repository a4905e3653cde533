"""Tests for configuration loading, validation and CLI merging."""

import os
import tempfile
import unittest
from argparse import Namespace
from unittest import mock

from config_loader import ConfigLoader, MigrationSettings, get_nested


def valid_config():
    return {
        'feishu': {
            'base_url': 'https://open.feishu.cn/open-apis',
            'user_access_token': 'u-token',
            'shared_folders': []
        },
        'migration': {'page_size': 200, 'move_batch_limit': 90, 'move_pause_ms': 60000},
        'advanced': {'request_timeout': 30, 'max_retries': 3, 'rate_limit': 0}
    }


class TestConfigLoad(unittest.TestCase):

    def write_config(self, text):
        handle = tempfile.NamedTemporaryFile('w', suffix='.yaml', delete=False, encoding='utf-8')
        handle.write(text)
        handle.close()
        self.addCleanup(os.unlink, handle.name)
        return handle.name

    def test_environment_variables_are_substituted(self):
        path = self.write_config(
            "feishu:\n"
            "  user_access_token: ${FEISHU_TEST_TOKEN}\n"
            "  shared_folders: ['${FEISHU_TEST_FOLDER}', fixed]\n"
        )
        with mock.patch.dict(os.environ, {'FEISHU_TEST_TOKEN': 'u-abc', 'FEISHU_TEST_FOLDER': 'fld1'}):
            config = ConfigLoader.load(path)

        self.assertEqual(config['feishu']['user_access_token'], 'u-abc')
        self.assertEqual(config['feishu']['shared_folders'], ['fld1', 'fixed'])

    def test_unset_variable_is_left_in_place(self):
        path = self.write_config("feishu:\n  user_access_token: ${FEISHU_UNSET_VARIABLE_XYZ}\n")
        with mock.patch.dict(os.environ, {}, clear=False):
            os.environ.pop('FEISHU_UNSET_VARIABLE_XYZ', None)
            config = ConfigLoader.load(path)

        self.assertEqual(config['feishu']['user_access_token'], '${FEISHU_UNSET_VARIABLE_XYZ}')
        with self.assertRaises(ValueError) as ctx:
            ConfigLoader.validate(config)
        self.assertIn('FEISHU_UNSET_VARIABLE_XYZ', str(ctx.exception))

    def test_empty_file_is_empty_config(self):
        self.assertEqual(ConfigLoader.load(self.write_config("")), {})

    def test_missing_file(self):
        with self.assertRaises(FileNotFoundError):
            ConfigLoader.load('/nonexistent/config.yaml')

    def test_non_mapping_is_rejected(self):
        with self.assertRaises(ValueError):
            ConfigLoader.load(self.write_config("- just\n- a list\n"))


class TestConfigValidate(unittest.TestCase):

    def test_valid_config_passes(self):
        ConfigLoader.validate(valid_config())

    def test_missing_token(self):
        config = valid_config()
        config['feishu']['user_access_token'] = ''
        with self.assertRaises(ValueError) as ctx:
            ConfigLoader.validate(config)
        self.assertIn('feishu.user_access_token', str(ctx.exception))

    def test_bad_base_url(self):
        config = valid_config()
        config['feishu']['base_url'] = 'ftp://open.feishu.cn'
        with self.assertRaises(ValueError):
            ConfigLoader.validate(config)

    def test_page_size_upper_bound(self):
        config = valid_config()
        config['migration']['page_size'] = 500
        with self.assertRaises(ValueError):
            ConfigLoader.validate(config)

    def test_batch_limit_must_be_positive(self):
        config = valid_config()
        config['migration']['move_batch_limit'] = 0
        with self.assertRaises(ValueError):
            ConfigLoader.validate(config)

    def test_negative_pause_is_rejected(self):
        config = valid_config()
        config['migration']['move_pause_ms'] = -1
        with self.assertRaises(ValueError):
            ConfigLoader.validate(config)

    def test_shared_folders_must_be_a_list(self):
        config = valid_config()
        config['feishu']['shared_folders'] = 'fld1'
        with self.assertRaises(ValueError):
            ConfigLoader.validate(config)


class TestMergeWithArgs(unittest.TestCase):

    def test_cli_values_take_precedence(self):
        args = Namespace(
            token='u-cli',
            base_url='https://open.larksuite.com/open-apis',
            shared_folder=['fld2', 'fld1'],
            report='out.json',
            dry_run=True,
            log_file='run.log',
            verbose=2
        )
        config = valid_config()
        config['feishu']['shared_folders'] = ['fld1']

        merged = ConfigLoader.merge_with_args(config, args)

        self.assertEqual(merged['feishu']['user_access_token'], 'u-cli')
        self.assertEqual(merged['feishu']['base_url'], 'https://open.larksuite.com/open-apis')
        self.assertEqual(merged['feishu']['shared_folders'], ['fld1', 'fld2'])
        self.assertEqual(merged['migration']['report_path'], 'out.json')
        self.assertTrue(merged['migration']['dry_run'])
        self.assertEqual(merged['logging'], {'file': 'run.log', 'level': 'DEBUG'})
        # Input is not modified
        self.assertEqual(config['feishu']['shared_folders'], ['fld1'])

    def test_absent_args_keep_config(self):
        merged = ConfigLoader.merge_with_args(valid_config(), Namespace())

        self.assertEqual(merged['feishu']['user_access_token'], 'u-token')
        self.assertNotIn('dry_run', merged['migration'])


class TestMigrationSettings(unittest.TestCase):

    def test_defaults(self):
        settings = MigrationSettings.from_config({})

        self.assertEqual(settings.page_size, 200)
        self.assertEqual(settings.tree_page_limit, 20)
        self.assertEqual(settings.traversal_page_limit, 200)
        self.assertEqual(settings.move_batch_limit, 90)
        self.assertEqual(settings.move_pause_seconds, 60.0)
        self.assertEqual(settings.staging_suffix, '_to_migrate')
        self.assertEqual(settings.supported_types, frozenset({'doc', 'docx', 'sheet', 'bitable', 'mindnote'}))

    def test_values_from_config(self):
        settings = MigrationSettings.from_config({
            'migration': {
                'page_size': 50,
                'move_pause_ms': 1500,
                'supported_types': ['DOCX', 'sheet'],
                'staging_suffix': '_copy'
            }
        })

        self.assertEqual(settings.page_size, 50)
        self.assertEqual(settings.move_pause_seconds, 1.5)
        self.assertEqual(settings.supported_types, frozenset({'docx', 'sheet'}))
        self.assertEqual(settings.staging_suffix, '_copy')

    def test_page_size_is_capped(self):
        self.assertEqual(MigrationSettings.from_config({'migration': {'page_size': 1000}}).page_size, 200)


class TestGetNested(unittest.TestCase):

    def test_lookup(self):
        config = valid_config()
        self.assertEqual(get_nested(config, 'advanced.max_retries'), 3)
        self.assertIsNone(get_nested(config, 'advanced.missing'))
        self.assertEqual(get_nested(config, 'feishu.user_access_token.deeper', 'x'), 'x')


if __name__ == '__main__':
    unittest.main()
