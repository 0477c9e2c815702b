import io
import json
import os
import tempfile
import unittest
from unittest.mock import Mock, patch

import torch
from sentence_transformers import SentenceTransformer

from compass.cli import main
from compass.matching.index import InMemoryEmbeddingIndex


def fake_encode(texts, **kwargs):
    return torch.tensor([[float(len(t) % 7) + 1.0, 1.0, 0.5] for t in texts])


class TestCli(unittest.TestCase):

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmp.cleanup)
        self.raw_path = self._write('careers.generated.json', [
            {'onet_code': '29-1141.00', 'title': 'Registered Nurses', 'category': 'healthcare',
             'wages': {'annual': {'median': 86000}, 'employment_count': 3000}, 'tasks': ['Monitor patients']},
            {'onet_code': '29-1171.00', 'title': 'Nurse Practitioners', 'category': 'healthcare',
             'wages': {'annual': {'median': 126000}, 'employment_count': 250}},
            {'onet_code': '51-4121.00', 'title': 'Welders', 'category': 'manufacturing'},
        ])
        self.definitions_path = self._write('career-definitions.json', {'careers': {
            'nursing': {'title': 'Nursing', 'category': 'healthcare',
                        'onetCodes': ['29-1141.00', '29-1171.00'], 'primaryOnetCode': '29-1141.00'},
        }})
        self.out_dir = os.path.join(self.tmp.name, 'output')

    def _write(self, name, payload):
        path = os.path.join(self.tmp.name, name)
        with open(path, 'w', encoding='utf-8') as f:
            json.dump(payload, f)
        return path

    def _consolidate(self, *extra):
        main([
            'consolidate',
            '--raw', self.raw_path,
            '--definitions', self.definitions_path,
            '--manual-dir', os.path.join(self.tmp.name, 'manual'),
            '--content', os.path.join(self.tmp.name, 'content.json'),
            '--out', self.out_dir,
            *extra,
        ])

    def test_consolidate_writes_outputs(self):
        self._consolidate()

        with open(os.path.join(self.out_dir, 'careers.json'), encoding='utf-8') as f:
            careers = json.load(f)
        self.assertEqual([c['slug'] for c in careers], ['nursing', 'welders'])
        self.assertTrue(os.path.exists(os.path.join(self.out_dir, 'careers-index.json')))

    def test_missing_input_exits_with_error(self):
        with self.assertRaises(SystemExit) as ctx:
            main(['consolidate', '--raw', os.path.join(self.tmp.name, 'missing.json'),
                  '--definitions', self.definitions_path, '--out', self.out_dir])
        self.assertEqual(ctx.exception.code, 1)

    def test_embed_writes_embeddings_file(self):
        self._consolidate()
        model = Mock(spec=SentenceTransformer)
        model.encode.side_effect = fake_encode
        embeddings_path = os.path.join(self.tmp.name, 'career-embeddings.json')

        with patch('compass.cli.ResourceManager') as resource_manager:
            resource_manager.return_value.__enter__.return_value = {'embedding_model': model, 'supabase': None}
            main(['embed', '--careers-dir', self.out_dir, '--out', embeddings_path])

        index = InMemoryEmbeddingIndex.load_file(embeddings_path)
        self.assertEqual(len(index), 4)
        self.assertEqual(index.get('registered-nurses').parent_career_slug, 'nursing')
        self.assertTrue(index.get('welders').is_fully_embedded)

    def _embed(self, *extra):
        model = Mock(spec=SentenceTransformer)
        model.encode.side_effect = fake_encode
        embeddings_path = os.path.join(self.tmp.name, 'career-embeddings.json')
        with patch('compass.cli.ResourceManager') as resource_manager:
            resource_manager.return_value.__enter__.return_value = {'embedding_model': model, 'supabase': None}
            main(['embed', '--careers-dir', self.out_dir, '--out', embeddings_path, *extra])
        encoded = [t for call in model.encode.call_args_list for t in call[0][0]]
        return InMemoryEmbeddingIndex.load_file(embeddings_path), encoded

    def test_embed_single_member_group_uses_career_text(self):
        self.raw_path = self._write('careers.generated.json', [
            {'onet_code': '51-4121.00', 'title': 'Welders', 'category': 'manufacturing',
             'description': 'Member welding copy', 'tasks': ['Weld components']},
        ])
        self.definitions_path = self._write('career-definitions.json', {'careers': {
            'welders': {'title': 'Welders', 'category': 'manufacturing', 'description': 'Career-level welding copy',
                        'onetCodes': ['51-4121.00'], 'primaryOnetCode': '51-4121.00'},
        }})
        self._consolidate()

        index, encoded = self._embed()

        self.assertTrue(index.get('welders').is_consolidated)
        self.assertIsNone(index.get('welders').parent_career_slug)
        self.assertTrue(any('Career-level welding copy' in t for t in encoded))
        self.assertFalse(any('Member welding copy' in t for t in encoded))

    def test_embed_with_work_activities(self):
        self._consolidate()
        career_dwas = self._write('career-dwas.json', {'careers': {'51-4121.00': {'dwa_ids': ['4.A.3']}}})
        dwa_list = self._write('dwa-list.json', {'dwas': [{'id': '4.A.3', 'title': 'Weld metal components'}]})

        _, encoded = self._embed('--career-dwas', career_dwas, '--dwa-list', dwa_list)

        self.assertTrue(any('Work Activities:\n- Weld metal components' in t for t in encoded))

    def test_embed_requires_both_activity_files(self):
        self._consolidate()
        with self.assertRaises(SystemExit) as ctx:
            main(['embed', '--careers-dir', self.out_dir, '--career-dwas', 'career-dwas.json'])
        self.assertEqual(ctx.exception.code, 1)

    def test_activities_do_not_need_career_embeddings(self):
        dwa_path = self._write('dwa-embeddings.json', [
            {'dwa_id': '4.A.1', 'dwa_title': 'Operate welding equipment', 'embedding': [1.0, 0.0, 0.0]},
            {'dwa_id': '4.A.2', 'dwa_title': 'Record patient data', 'embedding': [0.0, 0.0, 1.0]},
        ])
        model = Mock(spec=SentenceTransformer)
        model.encode.side_effect = fake_encode

        with patch('compass.cli.ResourceManager') as resource_manager, \
                patch('sys.stdout', new_callable=io.StringIO) as stdout:
            resource_manager.return_value.__enter__.return_value = {'embedding_model': model, 'supabase': None}
            main(['activities', '--text', 'welding', '--dwa-embeddings', dwa_path, '--limit', '1'])

        matches = json.loads(stdout.getvalue())
        self.assertEqual([m['dwa_id'] for m in matches], ['4.A.1'])

    def test_sweep_cache_requires_credentials(self):
        with patch('compass.cli.create_supabase_client', return_value=None):
            with self.assertRaises(SystemExit) as ctx:
                main(['sweep-cache'])
        self.assertEqual(ctx.exception.code, 1)


if __name__ == '__main__':
    unittest.main()
