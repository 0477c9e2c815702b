import json
import os
import tempfile
import unittest

from compass.consolidation.loader import (
    load_career_activities,
    load_career_content,
    load_definitions,
    load_manual_careers,
    load_raw_records,
    parse_definitions,
)
from compass.exceptions import DataLoadError, MalformedDefinitionError
from compass.schemas import AggregationStats


class TestLoader(unittest.TestCase):

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmp.cleanup)

    def _write(self, name, content):
        path = os.path.join(self.tmp.name, name)
        with open(path, 'w', encoding='utf-8') as f:
            f.write(content if isinstance(content, str) else json.dumps(content))
        return path

    def test_missing_raw_records_file_is_fatal(self):
        with self.assertRaises(DataLoadError) as ctx:
            load_raw_records(os.path.join(self.tmp.name, 'nope.json'))
        self.assertTrue(str(ctx.exception.path).endswith('nope.json'))

    def test_invalid_json_is_fatal(self):
        path = self._write('broken.json', '[{"onet_code": ')
        with self.assertRaises(DataLoadError):
            load_raw_records(path)

    def test_invalid_and_duplicate_records_are_skipped(self):
        path = self._write('careers.json', [
            {'onet_code': '11-1011.00', 'title': 'Chief Executives', 'unknown_field': 1},
            {'title': 'No Code'},
            {'onet_code': '11-1011.00', 'title': 'Duplicate'},
            {'onet_code': '15-1252.00', 'title': 'Software Developers', 'tasks': None},
        ])
        stats = AggregationStats()
        records = load_raw_records(path, stats)

        self.assertEqual([r.code for r in records], ['11-1011.00', '15-1252.00'])
        self.assertEqual(records[0].slug, 'chief-executives')
        self.assertEqual(records[1].tasks, [])
        self.assertEqual(stats.invalid_records, 1)
        self.assertEqual(stats.duplicate_records, 1)
        self.assertTrue(stats.degraded)

    def test_primary_code_outside_members_is_rejected(self):
        data = {'careers': {'executives': {
            'title': 'Executives', 'category': 'management',
            'onetCodes': ['11-1011.00'], 'primaryOnetCode': '11-1011.03',
        }}}
        with self.assertRaises(MalformedDefinitionError) as ctx:
            parse_definitions(data)
        self.assertEqual(ctx.exception.definition_id, 'executives')

    def test_empty_member_list_is_rejected(self):
        data = {'careers': {'empty': {
            'title': 'Empty', 'category': 'x', 'onetCodes': [], 'primaryOnetCode': '',
        }}}
        with self.assertRaises(MalformedDefinitionError):
            parse_definitions(data)

    def test_load_definitions_keeps_file_order(self):
        path = self._write('defs.json', {'version': '1.0', 'careers': {
            'b-career': {'title': 'B', 'category': 'x', 'onetCodes': ['2', '2', '3'], 'primaryOnetCode': '2'},
            'a-career': {'title': 'A', 'category': 'x', 'onetCodes': ['1'], 'primaryOnetCode': '1',
                         'displayStrategy': 'show-specializations'},
        }})
        definitions = load_definitions(path)

        self.assertEqual([d.id for d in definitions], ['b-career', 'a-career'])
        self.assertEqual(definitions[0].member_codes, ['2', '3'])
        self.assertEqual(definitions[1].display_strategy, 'show-specializations')

    def test_manual_careers(self):
        manual_dir = os.path.join(self.tmp.name, 'manual')
        os.makedirs(manual_dir)
        with open(os.path.join(manual_dir, '_template.yaml'), 'w') as f:
            f.write("slug: template\nname: Template\n")
        with open(os.path.join(manual_dir, 'drone-pilot.yaml'), 'w') as f:
            f.write("slug: drone-pilot\nname: Drone Pilot\ncategory: transportation\n")
        with open(os.path.join(manual_dir, 'broken.yaml'), 'w') as f:
            f.write("name: [unclosed\n")

        stats = AggregationStats()
        careers = load_manual_careers(manual_dir, stats)

        self.assertEqual(len(careers), 1)
        self.assertEqual(stats.invalid_records, 1)
        self.assertEqual(careers[0].title, 'Drone Pilot')
        self.assertEqual(careers[0].code, 'drone-pilot')
        self.assertEqual(careers[0].data_source, 'manual')

    def test_missing_manual_directory_yields_nothing(self):
        self.assertEqual(load_manual_careers(os.path.join(self.tmp.name, 'absent')), [])

    def test_missing_career_content_is_optional(self):
        self.assertIsNone(load_career_content(os.path.join(self.tmp.name, 'content.json')))

    def test_career_content_is_keyed_by_id(self):
        path = self._write('content.json', {'careers': {
            'executives': {'description': 'Generated', 'inside_look': {'content': 'A day in the life'}},
            'bad': {'inside_look': 'missing description'},
        }})
        content = load_career_content(path)

        self.assertEqual(set(content), {'executives'})
        self.assertEqual(content['executives'].description, 'Generated')


    def test_career_activities_resolve_titles(self):
        mappings = self._write('career-dwas.json', {'careers': {
            '15-1252.00': {'onet_code': '15-1252.00', 'dwa_ids': ['4.A.1', '4.A.9'], 'dwa_count': 2},
        }})
        dwa_list = self._write('dwa-list.json', {'dwas': [
            {'id': '4.A.1', 'title': 'Write computer code', 'iwa_title': 'Develop software'},
        ]})

        activities = load_career_activities(mappings, dwa_list)

        self.assertEqual(activities, {'15-1252.00': ['Write computer code']})

    def test_missing_activity_file_is_fatal(self):
        dwa_list = self._write('dwa-list.json', {'dwas': []})
        with self.assertRaises(DataLoadError):
            load_career_activities(os.path.join(self.tmp.name, 'career-dwas.json'), dwa_list)

if __name__ == '__main__':
    unittest.main()
