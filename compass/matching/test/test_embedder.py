import unittest
from datetime import date
from unittest.mock import Mock

import torch
from sentence_transformers import SentenceTransformer

from compass.config import AggregationConfig
from compass.consolidation.aggregator import CareerAggregator
from compass.exceptions import EmbeddingError
from compass.matching.embedder import FacetEmbedder
from compass.matching.embedding_processor import BatchEmbeddingProcessor
from compass.matching.texts import (
    build_career_texts,
    build_narrative_text,
    build_query_texts,
    build_skills_text,
    build_task_text,
    career_activities,
)
from compass.schemas import ConsolidationDefinition, QueryProfile, RawOccupationRecord


def fake_encode(texts, **kwargs):
    return torch.tensor([[float(len(t)), 1.0, 0.0] for t in texts])


class TestBatchEmbeddingProcessor(unittest.TestCase):

    def setUp(self):
        self.model = Mock(spec=SentenceTransformer)
        self.model.encode.side_effect = fake_encode
        self.processor = BatchEmbeddingProcessor(self.model, batch_size=8, cache_size=10)

    def test_rejects_non_model(self):
        with self.assertRaises(TypeError):
            BatchEmbeddingProcessor(object())

    def test_cached_texts_are_not_re_encoded(self):
        first = self.processor.encode_texts(['alpha', 'beta'])
        second = self.processor.encode_texts(['beta', 'gamma!'])

        self.assertEqual(first.shape, (2, 3))
        self.assertEqual(second[0].tolist(), [4.0, 1.0, 0.0])
        self.assertEqual(self.model.encode.call_count, 2)
        self.assertEqual(self.model.encode.call_args[0][0], ['gamma!'])

    def test_empty_input(self):
        self.assertEqual(self.processor.encode_to_lists([]), [])
        self.model.encode.assert_not_called()

    def test_model_failure_raises(self):
        self.model.encode.side_effect = RuntimeError("out of memory")
        with self.assertRaises(EmbeddingError):
            self.processor.encode_texts(['alpha'])


class TestTexts(unittest.TestCase):

    def setUp(self):
        self.career = RawOccupationRecord.model_validate({
            'onet_code': '15-1252.00',
            'title': 'Software Developers',
            'description': 'Design applications.',
            'tasks': [f"Task {i}" for i in range(12)],
            'technology_skills': [f"Tool {i}" for i in range(25)],
            'abilities': ['Deductive Reasoning'],
        })

    def test_task_text_uses_top_ten_tasks(self):
        text = build_task_text(self.career)
        self.assertTrue(text.startswith('Career: Software Developers\nDescription: Design applications.'))
        self.assertIn('- Task 9', text)
        self.assertNotIn('- Task 10', text)

    def test_narrative_prefers_inside_look(self):
        with_look = self.career.model_copy(update={'inside_look': {'content': 'Mostly remote, lots of meetings.'}})
        self.assertIn('Mostly remote', build_narrative_text(with_look))
        self.assertIn('Daily activities include:', build_narrative_text(self.career))

    def test_skills_text_caps_lists(self):
        text = build_skills_text(self.career)
        self.assertIn('Tool 19', text)
        self.assertNotIn('Tool 20', text)
        self.assertIn('Deductive Reasoning', text)

    def test_task_text_is_truncated(self):
        long_career = self.career.model_copy(update={'description': 'x' * 20000})
        self.assertEqual(len(build_task_text(long_career)), 8000)

    def test_task_text_lists_work_activities(self):
        text = build_task_text(self.career, [f"Activity {i}" for i in range(12)])
        self.assertIn('Work Activities:\n- Activity 0', text)
        self.assertIn('- Activity 9', text)
        self.assertNotIn('- Activity 10', text)
        self.assertNotIn('Work Activities:', build_task_text(self.career))

    def test_career_activities_follow_member_codes(self):
        activities = {'15-1252.00': ['Write code', 'Test code'], '15-1253.00': ['Test code', 'Review code']}
        self.assertEqual(career_activities(self.career, activities), ['Write code', 'Test code'])

        group = CareerAggregator(AggregationConfig(), as_of=date(2025, 1, 1)).aggregate(
            [self.career, RawOccupationRecord.model_validate({'onet_code': '15-1253.00', 'title': 'Testers'})],
            [ConsolidationDefinition.model_validate({
                'id': 'software', 'title': 'Software', 'category': 'tech',
                'onetCodes': ['15-1252.00', '15-1253.00'], 'primaryOnetCode': '15-1252.00',
            })],
        ).consolidated[0]
        self.assertEqual(career_activities(group, activities), ['Write code', 'Test code', 'Review code'])

    def test_query_texts(self):
        profile = QueryProfile(skills=['Python', 'SQL'], job_titles=[], career_goals='Build products')
        task, narrative, skills = build_query_texts(profile)

        self.assertIn('Previous Experience: Entry level', task)
        self.assertIn('Career Goals: Build products', narrative)
        self.assertEqual(skills, 'Python, SQL')

    def test_query_skills_fallback(self):
        _, _, skills = build_query_texts(QueryProfile(skills_to_develop='leadership'))
        self.assertEqual(skills, 'leadership, general professional skills')


class TestFacetEmbedder(unittest.TestCase):

    def setUp(self):
        self.model = Mock(spec=SentenceTransformer)
        self.model.encode.side_effect = fake_encode
        self.embedder = FacetEmbedder(BatchEmbeddingProcessor(self.model))

    def test_embed_careers_keys_by_slug(self):
        careers = [
            RawOccupationRecord.model_validate({'onet_code': '1', 'title': 'Welders'}),
            RawOccupationRecord.model_validate({'onet_code': '2', 'title': 'Nurses', 'tasks': ['Care']}),
        ]
        vectors = self.embedder.embed_careers(careers)

        self.assertEqual(set(vectors), {'welders', 'nurses'})
        task, narrative, skills = vectors['nurses']
        self.assertEqual(len(task), 3)
        self.assertEqual(len(narrative), 3)
        self.assertEqual(len(skills), 3)

    def test_embed_careers_includes_work_activities(self):
        career = RawOccupationRecord.model_validate({'onet_code': '1', 'title': 'Welders'})
        self.embedder.embed_careers([career], {'1': ['Join metal parts']})

        encoded = [t for call in self.model.encode.call_args_list for t in call[0][0]]
        self.assertIn('Career: Welders\nDescription: \nWork Activities:\n- Join metal parts', encoded)

    def test_single_member_group_keeps_its_own_vectors(self):
        member = RawOccupationRecord.model_validate({
            'onet_code': '29-1141.00', 'title': 'Registered Nurses',
            'description': 'member description', 'tasks': ['member task'],
        })
        definition = ConsolidationDefinition.model_validate({
            'id': 'registered-nurses', 'title': 'Registered Nurses', 'category': 'healthcare',
            'description': 'CONSOLIDATED description',
            'onetCodes': ['29-1141.00'], 'primaryOnetCode': '29-1141.00',
        })
        result = CareerAggregator(AggregationConfig(), as_of=date(2025, 1, 1)).aggregate([member], [definition])
        self.assertEqual(result.specializations[0].slug, 'registered-nurses')

        career_vectors, specialization_vectors = self.embedder.embed_aggregation_result(result)

        self.assertEqual(specialization_vectors, {})
        career_task = build_career_texts(result.consolidated[0])[0]
        self.assertIn('CONSOLIDATED description', career_task)
        self.assertEqual(career_vectors['registered-nurses'][0], [float(len(career_task)), 1.0, 0.0])
        encoded = [t for call in self.model.encode.call_args_list for t in call[0][0]]
        self.assertFalse(any('member description' in t for t in encoded))

    def test_embed_profile(self):
        query = self.embedder.embed_profile(QueryProfile(skills=['Python']))
        self.assertEqual(query.skills, [6.0, 1.0, 0.0])

    def test_embed_text(self):
        self.assertEqual(self.embedder.embed_text('abc'), [3.0, 1.0, 0.0])


if __name__ == '__main__':
    unittest.main()
