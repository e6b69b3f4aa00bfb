#!/usr/bin/env python3
"""
Tests for turning parsed roast logs into canonical records
"""

import unittest
import warnings

from roast_telemetry.config import AnalysisSettings
from roast_telemetry.errors import ConsistencyWarning, StructuralValidationError
from roast_telemetry.transformer import (
    downsample_indices,
    format_control_value,
    source_unit,
    transform_roast_document,
)


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
        'roastUUID': 'abc-123',
    }


def transform_quietly(data, **kwargs):
    """Transform without surfacing ConsistencyWarning in test output"""
    with warnings.catch_warnings():
        warnings.simplefilter('ignore', ConsistencyWarning)
        return transform_roast_document(data, roast_id=7, **kwargs)


class TestSamples(unittest.TestCase):
    """Temperature sample normalization"""

    def setUp(self):
        self.data = make_document()

    def test_samples_in_time_order(self):
        """Every sample is kept and tagged with provenance"""
        roast = transform_quietly(self.data)

        self.assertEqual(len(roast.samples), 20)
        self.assertEqual(roast.source_sample_count, 20)
        times = [s.time_seconds for s in roast.samples]
        self.assertEqual(times, sorted(times))
        self.assertTrue(all(s.roast_id == 7 for s in roast.samples))
        self.assertTrue(all(s.data_source == 'imported' for s in roast.samples))
        self.assertEqual(roast.samples[0].bean_temp, 200.0)
        self.assertEqual(roast.samples[0].environmental_temp, 350.0)
        self.assertEqual(roast.warnings, [])

    def test_length_mismatch_truncates(self):
        """Arrays of 10/10/7 give 7 samples and a warning"""
        data = make_document(n=10)
        data['temp1'] = data['temp1'][:7]
        data['timeindex'] = [1, 3, 5, 0, 0, 0, 6, 0]

        with self.assertWarns(ConsistencyWarning):
            roast = transform_roast_document(data, roast_id=1)

        self.assertEqual(len(roast.samples), 7)
        self.assertTrue(any('truncated to 7 samples' in w for w in roast.warnings))

    def test_missing_reading_becomes_none(self):
        """-1 means no reading"""
        self.data['temp1'][3] = -1
        roast = transform_quietly(self.data)

        self.assertIsNone(roast.samples[3].environmental_temp)
        self.assertEqual(roast.samples[3].data_quality, 'partial')
        self.assertEqual(roast.samples[4].data_quality, 'good')

    def test_celsius_converted(self):
        """Celsius documents are stored in Fahrenheit by default"""
        self.data['mode'] = 'C'
        self.data['temp2'][0] = 100.0
        roast = transform_quietly(self.data)

        self.assertEqual(roast.samples[0].bean_temp, 212.0)
        self.assertEqual(roast.metadata['source_unit'], 'C')
        self.assertEqual(roast.metadata['temperature_unit'], 'F')

    def test_canonical_celsius(self):
        """Fahrenheit documents can be stored in Celsius"""
        settings = AnalysisSettings(canonical_unit='C')
        roast = transform_quietly(self.data, settings=settings)
        self.assertEqual(roast.samples[0].bean_temp, 93.33)

    def test_backwards_time_dropped(self):
        """A sample whose time goes backwards is dropped"""
        self.data['timex'][5] = 100.0
        roast = transform_quietly(self.data)

        self.assertEqual(len(roast.samples), 19)
        self.assertNotIn(100.0, [s.time_seconds for s in roast.samples])
        self.assertIn('Dropped 1 sample(s) whose time goes backwards', roast.warnings)

    def test_no_samples_and_no_charge(self):
        """Nothing to import is a structural error"""
        data = {'timex': [], 'temp1': [], 'temp2': []}
        with self.assertRaises(StructuralValidationError):
            transform_quietly(data)


class TestMilestones(unittest.TestCase):
    """Milestone slots become milestone events"""

    def setUp(self):
        self.data = make_document()

    def test_recorded_milestones(self):
        """Four recorded slots give four milestone events"""
        roast = transform_quietly(self.data)

        self.assertEqual(len(roast.milestones), 4)
        self.assertEqual(roast.milestones.time('charge'), 30000.0)
        self.assertEqual(roast.milestones.time('fc_start'), 360000.0)
        self.assertEqual(roast.milestones.charge.temperature, 210.0)

        names = [e.event_string for e in roast.milestone_events]
        self.assertEqual(names, ['charge', 'dry_end', 'fc_start', 'drop'])
        first = roast.milestone_events[0]
        self.assertEqual(first.event_type, 10)
        self.assertIsNone(first.event_value)
        self.assertEqual(first.subcategory, 'roast_phase')

    def test_out_of_range_index_skipped(self):
        """An index beyond the samples is skipped with a warning"""
        self.data['timeindex'][6] = 25
        with self.assertWarns(ConsistencyWarning):
            roast = transform_roast_document(self.data, roast_id=1)

        self.assertIsNone(roast.milestones.drop)
        self.assertEqual(len(roast.milestones), 3)

    def test_zero_index_is_unset(self):
        """Index 0 means the slot was never recorded"""
        self.data['timeindex'][0] = 0
        roast = transform_quietly(self.data)

        self.assertIsNone(roast.milestones.charge)
        self.assertEqual(roast.phases.start_time_ms, 0.0)

    def test_phases(self):
        """Phase percentages over charge..drop"""
        roast = transform_quietly(self.data)

        self.assertAlmostEqual(roast.phases.drying_percent, 150 / 510 * 100)
        self.assertAlmostEqual(roast.phases.maillard_percent, 180 / 510 * 100)
        self.assertAlmostEqual(roast.phases.development_percent, 180 / 510 * 100)
        self.assertEqual(roast.phases.total_time_ms, 510000.0)


class TestControlEvents(unittest.TestCase):
    """Extra devices and special events become control events"""

    def setUp(self):
        self.data = make_document()

    def test_extra_devices_on_change_only(self):
        """Repeated values do not produce new events"""
        self.data.update({
            'extradevices': [25],
            'extratimex': [[0.0, 30.0, 60.0, 90.0]],
            'extraname1': ['Burner'],
            'extratemp1': [[50, 50, 70, -1]],
            'extraname2': ['Air'],
            'extratemp2': [[5, 5, 5, 8]],
        })
        roast = transform_quietly(self.data)
        controls = [(e.time_seconds, e.event_string, e.event_value) for e in roast.control_events]

        self.assertEqual(controls, [
            (0.0, 'heat_setting', '50'),
            (0.0, 'fan_setting', '5'),
            (60.0, 'heat_setting', '70'),
            (90.0, 'fan_setting', '8'),
        ])
        self.assertTrue(all(e.category == 'control' for e in roast.control_events))

    def test_special_events(self):
        """Special event values are scaled to 0-100"""
        self.data.update({
            'specialevents': [2, 5],
            'specialeventstype': [3, 0],
            'specialeventsvalue': [8, 6],
        })
        roast = transform_quietly(self.data)
        controls = [(e.time_seconds, e.event_string, e.event_value) for e in roast.control_events]

        self.assertEqual(controls, [
            (60.0, 'heat_setting', '70'),
            (150.0, 'fan_setting', '50'),
        ])

    def test_untyped_special_event_ignored(self):
        self.data.update({
            'specialevents': [2],
            'specialeventstype': [4],
            'specialeventsvalue': [3],
        })
        roast = transform_quietly(self.data)
        self.assertEqual(roast.control_events, [])

    def test_events_sorted_by_time(self):
        """Milestone and control events are interleaved in time order"""
        self.data.update({
            'specialevents': [3, 15],
            'specialeventstype': [3, 3],
            'specialeventsvalue': [8, 6],
        })
        roast = transform_quietly(self.data)
        times = [e.time_seconds for e in roast.events]
        self.assertEqual(times, sorted(times))


class TestMetadata(unittest.TestCase):
    """Roast-level metadata"""

    def test_metadata(self):
        roast = transform_quietly(make_document())

        self.assertEqual(roast.metadata['title'], 'Test Roast')
        self.assertEqual(roast.metadata['roaster_type'], 'Aillio Bullet R1')
        self.assertEqual(roast.metadata['weight_loss_percent'], 15.0)
        self.assertEqual(roast.metadata['weight_unit'], 'g')
        self.assertEqual(roast.metadata['roast_uuid'], 'abc-123')

    def test_source_unit(self):
        self.assertEqual(source_unit({'mode': 'c'}), 'C')
        self.assertEqual(source_unit({'mode': 'K'}), 'F')
        self.assertEqual(source_unit({}), 'F')

    def test_format_control_value(self):
        self.assertEqual(format_control_value(70.0), '70')
        self.assertEqual(format_control_value(2.5), '2.5')


class TestDownsampling(unittest.TestCase):
    """Thinning long curves"""

    def test_stride_change_and_milestones_kept(self):
        """Stride points, significant jumps and milestone indices survive"""
        values = [0, 0, 10, 10, 10, 10, 10, 10]
        self.assertEqual(downsample_indices(values, {7}, target=2, threshold=5.0), [0, 2, 4, 7])

    def test_slow_drift_is_caught(self):
        """Change is measured against the last retained point"""
        values = [0, 3, 6, 9, 12]
        self.assertEqual(downsample_indices(values, set(), target=1, threshold=5.0), [0, 2, 4])

    def test_gaps_and_pinned_indices(self):
        """Missing readings never count as jumps; pinned indices outside the series are ignored"""
        values = [100.0, None, None, 101.0, 120.0, None, 121.0, 121.0]
        retained = downsample_indices(values, {5, 42, -1}, target=2, threshold=5.0)

        self.assertEqual(retained, [0, 4, 5])
        self.assertTrue(all(type(i) is int for i in retained))

    def test_short_series_untouched(self):
        values = [1.0, 2.0, 3.0]
        self.assertEqual(downsample_indices(values, set(), target=400, threshold=5.0), [0, 1, 2])

    def test_long_import_reduced(self):
        """A 2000-sample roast is reduced but keeps its milestones"""
        data = make_document(n=2000)
        data['temp2'] = [200.0 + 0.01 * i for i in range(2000)]
        data['timeindex'] = [1, 601, 1203, 0, 0, 0, 1799, 0]
        roast = transform_quietly(data)

        self.assertLess(len(roast.samples), 2000)
        self.assertEqual(roast.source_sample_count, 2000)
        kept = {s.time_seconds for s in roast.samples}
        for t in (30.0, 601 * 30.0, 1203 * 30.0, 1799 * 30.0):
            self.assertIn(t, kept)


if __name__ == '__main__':
    unittest.main(verbosity=2)
