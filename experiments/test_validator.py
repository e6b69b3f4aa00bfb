#!/usr/bin/env python3
"""
Tests for roast log validation
"""

import unittest

from roast_telemetry.validator import is_number, milestone_index, validate_roast_document


def make_document(n=20):
    """A clean Fahrenheit roast log with n samples every 30 s"""
    return {
        'title': 'Test Roast',
        'roastertype': 'Aillio Bullet R1',
        'mode': 'F',
        'timex': [i * 30.0 for i in range(n)],
        'temp2': [200.0 + 10 * i for i in range(n)],
        'temp1': [350.0 + 5 * i for i in range(n)],
        'timeindex': [1, 6, 12, 0, 0, 0, 18, 0],
        'weight': [1000, 850, 'g'],
    }


class TestRequiredArrays(unittest.TestCase):
    """Fatal problems with the time-series arrays"""

    def setUp(self):
        self.data = make_document()

    def test_clean_document(self):
        """A complete document has no errors or warnings"""
        report = validate_roast_document(self.data)

        self.assertTrue(report.valid)
        self.assertEqual(report.errors, [])
        self.assertEqual(report.warnings, [])
        self.assertEqual(report.usable_length, 20)

    def test_missing_array(self):
        """Each missing array is reported separately"""
        del self.data['temp2']
        del self.data['temp1']
        report = validate_roast_document(self.data)

        self.assertFalse(report.valid)
        self.assertEqual(len(report.errors), 2)
        self.assertIn('Missing or invalid bean temperature data (temp2 array)', report.errors)
        self.assertIn('Missing or invalid environmental temperature data (temp1 array)', report.errors)

    def test_wrong_type_array(self):
        """A non-list value counts as missing"""
        self.data['timex'] = '0,30,60'
        report = validate_roast_document(self.data)
        self.assertEqual(report.errors, ['Missing or invalid time data (timex array)'])

    def test_empty_array(self):
        """An empty required array is fatal"""
        self.data['timex'] = []
        report = validate_roast_document(self.data)

        self.assertFalse(report.valid)
        self.assertEqual(report.errors, ['Empty time data array (timex)'])

    def test_non_numeric_values(self):
        """Strings, bools and NaN are reported with their indices"""
        self.data['temp2'][3] = 'hot'
        self.data['temp2'][7] = float('nan')
        self.data['temp2'][9] = True
        report = validate_roast_document(self.data)

        self.assertFalse(report.valid)
        self.assertEqual(report.errors, ['Non-numeric values in temp2 at indices 3, 7, 9'])

    def test_not_a_dict(self):
        report = validate_roast_document(['timex'])
        self.assertFalse(report.valid)
        self.assertEqual(report.usable_length, 0)


class TestWarnings(unittest.TestCase):
    """Problems the transformer can repair"""

    def setUp(self):
        self.data = make_document()

    def test_length_mismatch_is_warning(self):
        """Mismatched lengths truncate to the shortest"""
        self.data['temp1'] = self.data['temp1'][:15]
        report = validate_roast_document(self.data)

        self.assertTrue(report.valid)
        self.assertEqual(report.usable_length, 15)
        self.assertTrue(any('truncated to 15 samples' in w for w in report.warnings))

    def test_missing_timeindex(self):
        """No milestone array is not fatal"""
        del self.data['timeindex']
        report = validate_roast_document(self.data)

        self.assertTrue(report.valid)
        self.assertTrue(any('no milestones recorded' in w for w in report.warnings))

    def test_milestone_out_of_range(self):
        """An index past the last sample is named in the warning"""
        self.data['timeindex'][6] = 25
        report = validate_roast_document(self.data)

        self.assertTrue(report.valid)
        self.assertIn('Milestone drop index 25 exceeds last sample index 19; ignored', report.warnings)

    def test_milestones_out_of_order(self):
        """Recorded milestones must increase"""
        self.data['timeindex'] = [1, 12, 6, 0, 0, 0, 18, 0]
        report = validate_roast_document(self.data)
        self.assertIn('Milestone events may not be in chronological order', report.warnings)

    def test_short_milestone_array(self):
        self.data['timeindex'] = [1, 6, 12]
        report = validate_roast_document(self.data)
        self.assertTrue(any('Unexpected milestone array length' in w for w in report.warnings))

    def test_non_integer_milestone(self):
        self.data['timeindex'][2] = 'fc'
        report = validate_roast_document(self.data)
        self.assertTrue(any('fc_start has a non-integer index' in w for w in report.warnings))

    def test_missing_unit(self):
        """Without mode the document is treated as Fahrenheit"""
        del self.data['mode']
        report = validate_roast_document(self.data)
        self.assertIn('Missing or invalid temperature unit (mode); defaulting to Fahrenheit',
                      report.warnings)

    def test_weight_checks(self):
        """Output heavier than input is suspicious"""
        self.data['weight'] = [800, 900, 'g']
        report = validate_roast_document(self.data)
        self.assertIn('Output weight exceeds input weight (possible data error)', report.warnings)

        self.data['weight'] = [1000, 850]
        report = validate_roast_document(self.data)
        self.assertTrue(any('Invalid weight data format' in w for w in report.warnings))

    def test_temperature_range_ignores_missing_readings(self):
        """-1 readings do not trigger a range warning"""
        self.data['temp1'][4] = -1
        report = validate_roast_document(self.data)
        self.assertFalse(any('Environmental temperatures' in w for w in report.warnings))

        self.data['temp2'][5] = 900.0
        report = validate_roast_document(self.data)
        self.assertTrue(any('Bean temperatures outside typical range' in w for w in report.warnings))

    def test_celsius_ranges(self):
        """Celsius documents are checked against Celsius ranges"""
        self.data['mode'] = 'C'
        report = validate_roast_document(self.data)
        self.assertTrue(any('Bean temperatures outside typical range' in w for w in report.warnings))

    def test_time_checks(self):
        """Short, backwards and negative time series are flagged"""
        self.data['timex'] = [i * 2.0 for i in range(20)]
        self.data['timex'][5] = 1.0
        self.data['timex'][0] = -1.0
        report = validate_roast_document(self.data)

        self.assertTrue(report.valid)
        self.assertIn('Negative time values detected', report.warnings)
        self.assertTrue(any('Very short roast duration' in w for w in report.warnings))
        self.assertIn('Time sequence is not monotonically increasing', report.warnings)

    def test_small_dataset(self):
        report = validate_roast_document(make_document(n=5))
        self.assertTrue(any('Small dataset detected (5 points)' in w for w in report.warnings))


class TestHelpers(unittest.TestCase):
    """Value checks"""

    def test_is_number(self):
        self.assertTrue(is_number(3))
        self.assertTrue(is_number(2.5))
        self.assertFalse(is_number(True))
        self.assertFalse(is_number(float('inf')))
        self.assertFalse(is_number('3'))
        self.assertFalse(is_number(None))

    def test_milestone_index(self):
        self.assertEqual(milestone_index(4), 4)
        self.assertEqual(milestone_index(4.0), 4)
        self.assertIsNone(milestone_index(4.5))
        self.assertIsNone(milestone_index(False))


if __name__ == '__main__':
    unittest.main(verbosity=2)
