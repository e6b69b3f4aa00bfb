#!/usr/bin/env python3
"""
Tests for milestone, rate-of-rise and phase analytics
"""

import unittest

import numpy as np

from roast_telemetry.analytics import (
    build_roast_summary,
    calculate_phase_metrics,
    calculate_ror,
    canonical_milestone_name,
    control_channel_name,
    convert_temperature,
    extract_milestones,
    find_charge_time,
    format_display_name,
    format_time_display,
    map_control_name,
    nearest_temperature,
    normalize_event_name,
    peak_ror,
    ror_at_point,
    smooth_centered,
    weight_loss_percent,
)
from roast_telemetry.config import AnalysisSettings
from roast_telemetry.models import Event, MilestoneSet, TemperatureSample


def milestone_event(name, t, roast_id=1):
    return Event(roast_id=roast_id, time_seconds=t, event_type=10, event_value=None,
                 event_string=name, category='milestone')


def sample(t, bean):
    return TemperatureSample(roast_id=1, time_seconds=t, bean_temp=bean, environmental_temp=400.0)


class TestSmoothing(unittest.TestCase):
    """Centered moving average"""

    def test_edges_shrink(self):
        """Edge points average only the neighbours that exist"""
        result = smooth_centered([1, 2, 3, 4, 5], 3)
        np.testing.assert_allclose(result, [1.5, 2.0, 3.0, 4.0, 4.5])

    def test_window_one_is_identity(self):
        np.testing.assert_allclose(smooth_centered([3, 1, 2], 1), [3, 1, 2])

    def test_empty(self):
        self.assertEqual(len(smooth_centered([], 5)), 0)


class TestRateOfRise(unittest.TestCase):
    """Rate of rise over the primary temperature"""

    def setUp(self):
        self.unsmoothed = AnalysisSettings(temp_window=1, ror_window=1)
        self.times = [i * 60000.0 for i in range(6)]
        self.temps = [300, 310, 320, 400, 410, 420]

    def test_spike_excluded(self):
        """A rise above max_ror is dropped from the curve"""
        ror = calculate_ror(self.times, self.temps, settings=self.unsmoothed)

        self.assertEqual(list(ror.index), [60000.0, 120000.0, 240000.0, 300000.0])
        np.testing.assert_allclose(ror.values, [10.0, 10.0, 10.0, 10.0])
        self.assertEqual(ror.index.name, 'time_ms')

    def test_charge_drop_window(self):
        """Only rates between charge and drop are admitted"""
        ror = calculate_ror(self.times, self.temps, charge_time_ms=120000.0,
                            drop_time_ms=240000.0, settings=self.unsmoothed)
        self.assertEqual(list(ror.index), [120000.0, 240000.0])

    def test_falling_temperature(self):
        """Only positive rates are kept"""
        temps = [400 - 5 * i for i in range(20)]
        times = [i * 10000.0 for i in range(20)]
        self.assertTrue(calculate_ror(times, temps).empty)

    def test_too_few_points(self):
        """Fewer points than the smoothing window gives an empty series"""
        temps = [200 + i for i in range(10)]
        times = [i * 1000.0 for i in range(10)]
        self.assertTrue(calculate_ror(times, temps).empty)

    def test_missing_readings_skipped(self):
        """None and non-positive readings are removed before smoothing"""
        temps = [300, None, 310, 0, 320]
        times = [0.0, 30000.0, 60000.0, 90000.0, 120000.0]
        ror = calculate_ror(times, temps, settings=self.unsmoothed)
        self.assertEqual(list(ror.index), [60000.0, 120000.0])

    def test_smoothed_curve(self):
        """A steady 10-degree-per-minute climb stays near 10 once smoothed"""
        times = [i * 6000.0 for i in range(60)]
        temps = [200 + i for i in range(60)]
        ror = calculate_ror(times, temps)

        self.assertFalse(ror.empty)
        self.assertAlmostEqual(float(ror.iloc[len(ror) // 2]), 10.0, places=6)
        self.assertLessEqual(peak_ror(ror), 50.0)

    def test_peak_ror_empty(self):
        self.assertIsNone(peak_ror(calculate_ror([], [])))

    def test_ror_at_point(self):
        """Point estimate over the lookback"""
        times = [i * 12000.0 for i in range(10)]
        temps = [200 + 2 * i for i in range(10)]

        self.assertEqual(ror_at_point(times, temps, 5), 10.0)
        self.assertIsNone(ror_at_point(times, temps, 4))
        self.assertIsNone(ror_at_point(times, [300 - i for i in range(10)], 6))


class TestMilestones(unittest.TestCase):
    """Milestone extraction from events"""

    def test_aliases_and_last_wins(self):
        """Aliases fill their canonical slot; the later event replaces the earlier one"""
        events = [
            milestone_event('charge', 10),
            milestone_event('Maillard', 200),
            milestone_event('dry_end', 220),
            milestone_event('end', 800),
            milestone_event('start', 5),
        ]
        milestones = extract_milestones(events)

        self.assertEqual(milestones.time('charge'), 10000.0)
        self.assertEqual(milestones.time('dry_end'), 220000.0)
        self.assertEqual(milestones.time('cool'), 800000.0)
        self.assertEqual(len(milestones), 3)

    def test_control_events_ignored(self):
        control = Event(roast_id=1, time_seconds=10, event_type=1, event_value='50',
                        event_string='charge', category='control')
        self.assertEqual(len(extract_milestones([control])), 0)

    def test_temperatures_from_samples(self):
        """Each milestone takes the nearest primary temperature"""
        samples = [sample(0, 200.0), sample(30, 210.0), sample(60, 220.0)]
        milestones = extract_milestones([milestone_event('fc_start', 40)], samples)
        self.assertEqual(milestones.fc_start.temperature, 210.0)

    def test_nearest_temperature_skips_missing(self):
        samples = [sample(0, 200.0), sample(30, None), sample(60, 220.0)]
        self.assertEqual(nearest_temperature(samples, 35), 220.0)
        self.assertIsNone(nearest_temperature([], 10))

    def test_unknown_name_rejected(self):
        with self.assertRaises(KeyError):
            MilestoneSet().set('yellowing', 1000.0)

    def test_find_charge_time(self):
        samples = [sample(5, 200.0)]
        self.assertEqual(find_charge_time([milestone_event('charge', 12)], samples), 12000.0)
        self.assertEqual(find_charge_time([], samples), 5000.0)
        self.assertEqual(find_charge_time([], []), 0.0)


class TestPhases(unittest.TestCase):
    """Phase percentages"""

    def setUp(self):
        self.milestones = MilestoneSet()
        self.milestones.set('charge', 0.0)
        self.milestones.set('dry_end', 100000.0)
        self.milestones.set('fc_start', 200000.0)
        self.milestones.set('drop', 300000.0)

    def test_equal_thirds(self):
        phases = calculate_phase_metrics(self.milestones)

        self.assertAlmostEqual(phases.drying_percent, 33.33, places=2)
        self.assertAlmostEqual(phases.maillard_percent, 33.33, places=2)
        self.assertAlmostEqual(phases.development_percent, 33.33, places=2)
        self.assertEqual(phases.total_time_ms, 300000.0)
        self.assertEqual(phases.fc_time_ms, 200000.0)

    def test_cool_as_end(self):
        """Without drop the cool milestone ends the roast"""
        self.milestones.drop = None
        self.milestones.set('cool', 400000.0)
        phases = calculate_phase_metrics(self.milestones)
        self.assertAlmostEqual(phases.development_percent, 50.0)

    def test_in_progress_uses_as_of(self):
        """A live roast measures to the current time"""
        self.milestones.drop = None
        phases = calculate_phase_metrics(self.milestones, as_of_ms=250000.0)

        self.assertAlmostEqual(phases.drying_percent, 40.0)
        self.assertAlmostEqual(phases.development_percent, 20.0)

    def test_no_end_gives_zero(self):
        self.milestones.drop = None
        phases = calculate_phase_metrics(self.milestones)

        self.assertEqual(phases.drying_percent, 0.0)
        self.assertEqual(phases.development_percent, 0.0)
        self.assertIsNone(phases.end_time_ms)

    def test_missing_dry_end(self):
        """Phases without both boundaries are 0"""
        self.milestones.dry_end = None
        phases = calculate_phase_metrics(self.milestones)

        self.assertEqual(phases.drying_percent, 0.0)
        self.assertEqual(phases.maillard_percent, 0.0)
        self.assertAlmostEqual(phases.development_percent, 100 / 3)

    def test_inverted_milestones(self):
        """First crack before dry end leaves maillard at 0"""
        self.milestones.set('fc_start', 50000.0)
        phases = calculate_phase_metrics(self.milestones)
        self.assertEqual(phases.maillard_percent, 0.0)

    def test_first_sample_anchor(self):
        """Without charge the first sample starts the roast"""
        self.milestones.charge = None
        phases = calculate_phase_metrics(self.milestones, first_sample_time_ms=50000.0)

        self.assertEqual(phases.start_time_ms, 50000.0)
        self.assertAlmostEqual(phases.drying_percent, 20.0)

    def test_summary_row(self):
        self.milestones.set('fc_start', 200000.0, 385.5)
        summary = build_roast_summary(self.milestones, calculate_phase_metrics(self.milestones))

        self.assertEqual(summary['fc_start_time'], 200.0)
        self.assertEqual(summary['fc_start_temp'], 385.5)
        self.assertEqual(summary['development_percent'], 33.33)
        self.assertEqual(summary['total_roast_time'], 300.0)
        self.assertNotIn('fc_end_time', summary)


class TestNamesAndUnits(unittest.TestCase):
    """Formatting and conversion helpers"""

    def test_event_names(self):
        self.assertEqual(normalize_event_name('  First Crack '), 'first_crack')
        self.assertEqual(canonical_milestone_name('Maillard'), 'dry_end')
        self.assertEqual(canonical_milestone_name('FC Start'), 'fc_start')
        self.assertIsNone(canonical_milestone_name('start'))

    def test_control_names(self):
        self.assertEqual(map_control_name('burner'), 'heat')
        self.assertEqual(map_control_name('drum'), 'drum')
        self.assertEqual(control_channel_name('Burner'), 'heat_setting')
        self.assertEqual(control_channel_name('Air'), 'fan_setting')
        self.assertEqual(control_channel_name('Drum Speed'), 'drum_speed')
        self.assertEqual(format_display_name('fan_setting'), 'Fan Setting')

    def test_time_display(self):
        self.assertEqual(format_time_display(754000), '12:34')
        self.assertEqual(format_time_display(5999), '0:05')
        self.assertEqual(format_time_display(0), '--:--')
        self.assertEqual(format_time_display(None), '--:--')

    def test_conversions(self):
        self.assertEqual(convert_temperature(212.0, 'F', 'C'), 100.0)
        self.assertEqual(convert_temperature(100.0, 'C', 'F'), 212.0)
        self.assertEqual(convert_temperature(401.2361, 'F', 'F'), 401.24)

    def test_weight_loss(self):
        self.assertEqual(weight_loss_percent(1000, 850), 15.0)
        self.assertIsNone(weight_loss_percent(0, 850))
        self.assertIsNone(weight_loss_percent(1000, None))


if __name__ == '__main__':
    unittest.main(verbosity=2)
