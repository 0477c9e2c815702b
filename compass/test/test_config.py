import os
import tempfile
import unittest
from unittest.mock import patch

from compass.config import get_config
from compass.exceptions import ConfigurationError


@patch('compass.config.load_dotenv')
class TestGetConfig(unittest.TestCase):

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmp.cleanup)

    def _write(self, text):
        path = os.path.join(self.tmp.name, 'compass.yaml')
        with open(path, 'w', encoding='utf-8') as f:
            f.write(text)
        return path

    @patch.dict(os.environ, {}, clear=True)
    def test_defaults(self, _):
        config = get_config()
        self.assertEqual(config.ranking.task_weight, 0.5)
        self.assertEqual(config.aggregation.max_tasks, 15)
        self.assertEqual(config.cache.ttl_hours, 24.0)
        self.assertIsNone(config.supabase_url)

    @patch.dict(os.environ, {}, clear=True)
    def test_yaml_overrides_nested_sections(self, _):
        path = self._write("ranking:\n  result_limit: 10\naggregation:\n  max_tasks: 5\nmodel_name: custom-model\n")
        config = get_config(path)

        self.assertEqual(config.ranking.result_limit, 10)
        self.assertEqual(config.aggregation.max_tasks, 5)
        self.assertEqual(config.model_name, 'custom-model')
        self.assertEqual(config.ranking.task_weight, 0.5)

    @patch.dict(os.environ, {}, clear=True)
    def test_unknown_key_is_rejected(self, _):
        path = self._write("ranking:\n  bogus: 1\n")
        with self.assertRaises(ConfigurationError):
            get_config(path)

    @patch.dict(os.environ, {}, clear=True)
    def test_missing_file_is_rejected(self, _):
        with self.assertRaises(ConfigurationError):
            get_config(os.path.join(self.tmp.name, 'absent.yaml'))

    @patch.dict(os.environ, {
        'SUPABASE_URL': 'https://example.supabase.co',
        'SUPABASE_SERVICE_KEY': 'service-key',
        'COMPASS_CACHE_TTL_HOURS': '6',
    }, clear=True)
    def test_environment(self, _):
        config = get_config()
        self.assertEqual(config.supabase_url, 'https://example.supabase.co')
        self.assertEqual(config.supabase_key, 'service-key')
        self.assertEqual(config.cache.ttl_hours, 6.0)

    @patch.dict(os.environ, {'COMPASS_CACHE_TTL_HOURS': '0'}, clear=True)
    def test_non_positive_ttl_is_rejected(self, _):
        with self.assertRaises(ConfigurationError):
            get_config()


if __name__ == '__main__':
    unittest.main()
