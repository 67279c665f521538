"""
Unit tests for the missingness analysis engine.

Tests validate co-missingness, pattern, group, temporal and rainfall
cross-check calculations against hand-counted examples.
"""

import unittest

import numpy as np
import pandas as pd

from data_validation import DatasetSchema, DatasetValidator
from missingness_engine import (
    AnalysisSettings,
    MissingnessAnalysisEngine,
    MissingnessReport
)


class TestAnalysisSettings(unittest.TestCase):
    """Test analysis settings configuration and validation"""

    def test_default_settings(self):
        settings = AnalysisSettings()
        self.assertEqual(settings.top_n, 10)
        self.assertEqual(settings.rainy_threshold_mm, 1.0)
        self.assertEqual(settings.density_range_mm, (0.0, 50.0))

    def test_engine_reads_config(self):
        engine = MissingnessAnalysisEngine({
            'analysis': {
                'top_n': 3,
                'rainy_threshold_mm': 2.5,
                'rainy_label': 'Wet',
                'dry_label': 'Dry',
                'density_range_mm': [1, 20]
            }
        })
        self.assertEqual(engine.settings.top_n, 3)
        self.assertEqual(engine.settings.rainy_threshold_mm, 2.5)
        self.assertEqual(engine.settings.density_range_mm, (1, 20))

    def test_invalid_top_n(self):
        with self.assertRaises(ValueError):
            MissingnessAnalysisEngine({'analysis': {'top_n': 0}})

    def test_invalid_density_range(self):
        with self.assertRaises(ValueError):
            MissingnessAnalysisEngine({'analysis': {'density_range_mm': [50, 0]}})

    def test_identical_labels_rejected(self):
        with self.assertRaises(ValueError):
            MissingnessAnalysisEngine({'analysis': {'rainy_label': 'X', 'dry_label': 'X'}})

    def test_unknown_setting_rejected(self):
        with self.assertRaises(ValueError) as ctx:
            MissingnessAnalysisEngine({'analysis': {'rainy_threshold': 2.0}})
        self.assertIn('rainy_threshold', str(ctx.exception))

    def test_density_range_needs_two_bounds(self):
        with self.assertRaises(ValueError):
            MissingnessAnalysisEngine({'analysis': {'density_range_mm': [0, 10, 50]}})

    def test_non_integer_top_n_rejected(self):
        with self.assertRaises(ValueError):
            MissingnessAnalysisEngine({'analysis': {'top_n': 2.5}})


class TestCoMissingness(unittest.TestCase):
    """Test co-missingness counts and conditional percentages"""

    def setUp(self):
        self.engine = MissingnessAnalysisEngine()

        # sunshine absent in rows 1-3, evaporation absent in rows 2-4 (1-based)
        self.six_rows = pd.DataFrame({
            'sunshine': [np.nan, np.nan, np.nan, 7.0, 8.0, 9.0],
            'evaporation': [4.0, np.nan, np.nan, np.nan, 5.0, 6.0],
        })

    def _pct(self, stats, var1, var2):
        row = stats[(stats['var1'] == var1) & (stats['var2'] == var2)]
        self.assertEqual(len(row), 1)
        return row['pct_co_miss'].iloc[0]

    def test_six_row_scenario(self):
        counts = self.engine.calculate_co_missingness_counts(
            self.six_rows, ['sunshine', 'evaporation']
        )
        self.assertEqual(counts.loc['sunshine', 'evaporation'], 2)
        self.assertEqual(counts.loc['evaporation', 'sunshine'], 2)

        stats = self.engine.calculate_co_missingness(self.six_rows, ['sunshine', 'evaporation'])
        self.assertAlmostEqual(self._pct(stats, 'sunshine', 'evaporation'), 200 / 3, places=6)
        self.assertAlmostEqual(self._pct(stats, 'evaporation', 'sunshine'), 200 / 3, places=6)

    def test_counts_diagonal_is_total_missing(self):
        counts = self.engine.calculate_co_missingness_counts(
            self.six_rows, ['sunshine', 'evaporation']
        )
        self.assertEqual(counts.loc['sunshine', 'sunshine'], 3)
        self.assertEqual(counts.loc['evaporation', 'evaporation'], 3)

    def test_asymmetric_percentages(self):
        n = 40
        a = np.ones(n)
        b = np.ones(n)
        a[0:10] = np.nan          # A missing in 10 rows
        b[5:10] = np.nan          # B shares 5 of them
        b[10:25] = np.nan         # and is missing in 15 more (20 total)
        df = pd.DataFrame({'a': a, 'b': b, 'c': np.ones(n)})
        df.loc[30, 'c'] = np.nan

        stats = self.engine.calculate_co_missingness(df, ['a', 'b', 'c'])

        self.assertAlmostEqual(self._pct(stats, 'a', 'b'), 50.0)
        self.assertAlmostEqual(self._pct(stats, 'b', 'a'), 25.0)
        self.assertAlmostEqual(self._pct(stats, 'c', 'a'), 0.0)

    def test_self_pairs_excluded(self):
        stats = self.engine.calculate_co_missingness(self.six_rows, ['sunshine', 'evaporation'])
        self.assertFalse((stats['var1'] == stats['var2']).any())
        self.assertEqual(len(stats), 2)

        three = self.six_rows.assign(cloud9am=[1, np.nan, 2, 3, np.nan, 4])
        stats3 = self.engine.calculate_co_missingness(three, ['sunshine', 'evaporation', 'cloud9am'])
        self.assertEqual(len(stats3), 6)

    def test_percentages_in_range(self):
        rng = np.random.RandomState(0)
        values = rng.normal(size=(500, 4))
        values[rng.uniform(size=values.shape) < 0.3] = np.nan
        df = pd.DataFrame(values, columns=['w', 'x', 'y', 'z'])

        stats = self.engine.calculate_co_missingness(df, ['w', 'x', 'y', 'z'])
        self.assertTrue(stats['pct_co_miss'].between(0, 100).all())

    def test_zero_missing_column_is_undefined(self):
        df = self.six_rows.assign(cloud3pm=1.0)
        stats = self.engine.calculate_co_missingness(df, ['sunshine', 'evaporation', 'cloud3pm'])

        undefined = stats[stats['var1'] == 'cloud3pm']
        self.assertEqual(len(undefined), 2)
        self.assertTrue(undefined['pct_co_miss'].isna().all())

        # Conditioning on a column that does go missing stays defined
        self.assertEqual(self._pct(stats, 'sunshine', 'cloud3pm'), 0.0)

        # Undefined values sort after every defined value
        self.assertTrue(stats['pct_co_miss'].tail(2).isna().all())

    def test_sorted_descending(self):
        df = self.six_rows.assign(cloud9am=[np.nan, 1, 2, 3, 4, 5])
        stats = self.engine.calculate_co_missingness(df, ['sunshine', 'evaporation', 'cloud9am'])
        pct = stats['pct_co_miss'].dropna().to_numpy()
        self.assertTrue((np.diff(pct) <= 0).all())

    def test_input_not_mutated(self):
        original = self.six_rows.copy()
        self.engine.calculate_co_missingness(self.six_rows, ['sunshine', 'evaporation'])
        pd.testing.assert_frame_equal(self.six_rows, original)

    def test_indicator_matrix(self):
        indicator = self.engine.build_missing_indicator_matrix(
            self.six_rows, ['sunshine', 'evaporation']
        )
        self.assertEqual(indicator.shape, (6, 2))
        self.assertEqual(indicator['sunshine'].tolist(), [1, 1, 1, 0, 0, 0])
        self.assertEqual(indicator['evaporation'].tolist(), [0, 1, 1, 1, 0, 0])

    def test_messages(self):
        stats = self.engine.calculate_co_missingness(self.six_rows, ['sunshine', 'evaporation'])
        messages = self.engine.format_co_missingness_messages(stats)
        self.assertIn(
            "  sunshine -> evaporation: 66.7% (When sunshine is missing, evaporation is missing)",
            messages
        )

    def test_messages_for_undefined(self):
        df = self.six_rows.assign(cloud3pm=1.0)
        stats = self.engine.calculate_co_missingness(df, ['sunshine', 'cloud3pm'])
        messages = self.engine.format_co_missingness_messages(stats)
        self.assertTrue(any('undefined' in m and m.strip().startswith('cloud3pm') for m in messages))


class TestMissingPatterns(unittest.TestCase):
    """Test missing pattern tabulation"""

    def setUp(self):
        self.engine = MissingnessAnalysisEngine()
        rows = (
            [(np.nan, np.nan)] * 3 +
            [(np.nan, 1.0)] * 1 +
            [(1.0, np.nan)] * 2 +
            [(1.0, 1.0)] * 4
        )
        self.df = pd.DataFrame(rows, columns=['a', 'b'])

    def test_pattern_counts(self):
        patterns = self.engine.tabulate_missing_patterns(self.df, ['a', 'b'])

        self.assertEqual(patterns['n_cases'].tolist(), [4, 3, 2, 1])
        self.assertEqual(patterns['n_cases'].sum(), len(self.df))

        first = patterns.iloc[0]
        self.assertFalse(first['a'])
        self.assertFalse(first['b'])
        self.assertEqual(first['n_missing'], 0)
        self.assertAlmostEqual(first['pct_cases'], 40.0)

        second = patterns.iloc[1]
        self.assertTrue(second['a'])
        self.assertTrue(second['b'])
        self.assertEqual(second['n_missing'], 2)

    def test_top_n_limit_and_order(self):
        patterns = self.engine.tabulate_missing_patterns(self.df, ['a', 'b'], top_n=2)
        self.assertLessEqual(len(patterns), 2)
        self.assertEqual(patterns['n_cases'].tolist(), [4, 3])

    def test_explicit_top_n_zero_rejected(self):
        with self.assertRaises(ValueError):
            self.engine.tabulate_missing_patterns(self.df, ['a', 'b'], top_n=0)

    def test_explicit_top_n_overrides_setting(self):
        engine = MissingnessAnalysisEngine({'analysis': {'top_n': 1}})
        patterns = engine.tabulate_missing_patterns(self.df, ['a', 'b'], top_n=3)
        self.assertEqual(len(patterns), 3)

    def test_counts_non_increasing_on_random_data(self):
        rng = np.random.RandomState(1)
        values = rng.normal(size=(300, 4))
        values[rng.uniform(size=values.shape) < 0.4] = np.nan
        df = pd.DataFrame(values, columns=['w', 'x', 'y', 'z'])

        patterns = self.engine.tabulate_missing_patterns(df, ['w', 'x', 'y', 'z'])
        self.assertLessEqual(len(patterns), 10)
        self.assertTrue((np.diff(patterns['n_cases'].to_numpy()) <= 0).all())

    def test_empty_table(self):
        patterns = self.engine.tabulate_missing_patterns(self.df.iloc[0:0], ['a', 'b'])
        self.assertEqual(len(patterns), 0)
        self.assertIn('n_cases', patterns.columns)

    def test_missing_per_case(self):
        table = self.engine.summarize_missing_per_case(self.df, ['a', 'b'])
        self.assertEqual(table['n_miss_in_case'].tolist(), [0, 1, 2])
        self.assertEqual(table['n_cases'].tolist(), [4, 3, 3])
        self.assertAlmostEqual(table['pct_cases'].sum(), 100.0)


class TestGroupSummary(unittest.TestCase):
    """Test missingness summaries by location"""

    def setUp(self):
        self.engine = MissingnessAnalysisEngine()
        self.df = pd.DataFrame({
            'location': ['A', 'A', 'A', 'A', 'B', 'B'],
            'sunshine': [1.0, np.nan, np.nan, 2.0, np.nan, np.nan],
            'evaporation': [1.0, 2.0, 3.0, 4.0, np.nan, 5.0],
        })

    def _frac(self, summary, location, variable):
        row = summary[(summary['location'] == location) & (summary['variable'] == variable)]
        self.assertEqual(len(row), 1)
        return row.iloc[0]

    def test_known_fractions(self):
        summary = self.engine.summarize_missingness_by_group(
            self.df, 'location', ['sunshine', 'evaporation']
        )
        self.assertEqual(len(summary), 4)

        a_sun = self._frac(summary, 'A', 'sunshine')
        self.assertAlmostEqual(a_sun['frac_miss'], 0.5)
        self.assertEqual(a_sun['n_miss'], 2)
        self.assertEqual(a_sun['n_obs'], 4)
        self.assertAlmostEqual(a_sun['pct_miss'], 50.0)

        self.assertAlmostEqual(self._frac(summary, 'B', 'sunshine')['frac_miss'], 1.0)
        self.assertAlmostEqual(self._frac(summary, 'A', 'evaporation')['frac_miss'], 0.0)
        self.assertAlmostEqual(self._frac(summary, 'B', 'evaporation')['frac_miss'], 0.5)

    def test_fractions_bounded(self):
        summary = self.engine.summarize_missingness_by_group(self.df, 'location')
        self.assertTrue(summary['frac_miss'].between(0, 1).all())

    def test_default_variables_exclude_group_column(self):
        summary = self.engine.summarize_missingness_by_group(self.df, 'location')
        self.assertEqual(set(summary['variable']), {'sunshine', 'evaporation'})

    def test_missing_group_value_kept(self):
        df = pd.concat([
            self.df,
            pd.DataFrame({'location': [np.nan], 'sunshine': [np.nan], 'evaporation': [1.0]})
        ], ignore_index=True)
        summary = self.engine.summarize_missingness_by_group(df, 'location', ['sunshine'])
        self.assertEqual(len(summary), 3)
        self.assertTrue(summary['location'].isna().any())

    def test_top_group_missingness(self):
        df = self.df.assign(rainfall=[0.0, 1.0, np.nan, 2.0, 3.0, 4.0])
        summary = self.engine.summarize_missingness_by_group(df, 'location')
        top = self.engine.top_group_missingness(summary, ['sunshine', 'evaporation'], top_n=3)

        self.assertEqual(len(top), 3)
        self.assertNotIn('rainfall', set(top['variable']))
        self.assertTrue((np.diff(top['pct_miss'].to_numpy()) <= 0).all())
        self.assertEqual(top.iloc[0]['location'], 'B')
        self.assertEqual(top.iloc[0]['variable'], 'sunshine')

    def test_top_group_missingness_rejects_zero(self):
        summary = self.engine.summarize_missingness_by_group(self.df, 'location')
        with self.assertRaises(ValueError):
            self.engine.top_group_missingness(summary, top_n=0)


class TestTemporalTrend(unittest.TestCase):
    """Test monthly missingness aggregation"""

    def setUp(self):
        self.engine = MissingnessAnalysisEngine()
        self.df = pd.DataFrame({
            'date': pd.to_datetime([
                '2020-01-05', '2020-01-20', '2020-01-25', '2020-02-01', '2020-02-15'
            ]),
            'sunshine': [np.nan, np.nan, 1.0, 2.0, np.nan],
            'evaporation': [1.0, 2.0, 3.0, np.nan, np.nan],
        })

    def _frac(self, trend, month, variable):
        row = trend[(trend['month'] == pd.Timestamp(month)) & (trend['variable'] == variable)]
        self.assertEqual(len(row), 1)
        return row['frac_miss'].iloc[0]

    def test_two_months(self):
        trend = self.engine.calculate_temporal_trend(self.df, 'date', ['sunshine', 'evaporation'])

        self.assertEqual(len(trend), 2 * 2)
        self.assertAlmostEqual(self._frac(trend, '2020-01-01', 'sunshine'), 2 / 3)
        self.assertAlmostEqual(self._frac(trend, '2020-01-01', 'evaporation'), 0.0)
        self.assertAlmostEqual(self._frac(trend, '2020-02-01', 'sunshine'), 0.5)
        self.assertAlmostEqual(self._frac(trend, '2020-02-01', 'evaporation'), 1.0)
        np.testing.assert_allclose(trend['pct_missing'], trend['frac_miss'] * 100)

    def test_month_gaps_not_filled(self):
        df = self.df.copy()
        df.loc[3:, 'date'] = pd.Timestamp('2020-03-10')
        trend = self.engine.calculate_temporal_trend(df, 'date', ['sunshine'])

        months = trend['month'].drop_duplicates().tolist()
        self.assertEqual(months, [pd.Timestamp('2020-01-01'), pd.Timestamp('2020-03-01')])

    def test_rows_without_dates_excluded(self):
        df = self.df.copy()
        df.loc[0, 'date'] = pd.NaT
        trend = self.engine.calculate_temporal_trend(df, 'date', ['sunshine'])

        self.assertEqual(len(trend), 2)
        self.assertAlmostEqual(self._frac(trend, '2020-01-01', 'sunshine'), 0.5)
        jan = trend[trend['month'] == pd.Timestamp('2020-01-01')]
        self.assertEqual(jan['n_obs'].iloc[0], 2)

    def test_string_dates_parsed(self):
        df = self.df.assign(date=self.df['date'].dt.strftime('%Y-%m-%d'))
        trend = self.engine.calculate_temporal_trend(df, 'date', ['sunshine', 'evaporation'])
        self.assertEqual(len(trend), 4)


class TestRainfallCrossCheck(unittest.TestCase):
    """Test sunshine missingness on rainy vs. dry days"""

    def setUp(self):
        self.engine = MissingnessAnalysisEngine()
        self.df = pd.DataFrame({
            'rainfall': [0.0, 0.5, 1.0, 1.01, 5.0, np.nan],
            'sunshine': [1.0, np.nan, np.nan, np.nan, 2.0, np.nan],
        })

    def test_threshold_value_is_dry(self):
        labels = self.engine.classify_rainfall(pd.Series([1.0, 1.0001, 0.999]))
        self.assertEqual(labels.tolist(), ['Dry (≤1mm)', 'Rainy (>1mm)', 'Dry (≤1mm)'])

    def test_summary(self):
        summary = self.engine.calculate_rainfall_missingness(self.df, 'rainfall', 'sunshine')

        self.assertEqual(summary['rain_category'].tolist(), ['Dry (≤1mm)', 'Rainy (>1mm)'])
        self.assertEqual(summary['n_obs'].tolist(), [3, 2])
        self.assertAlmostEqual(summary['frac_missing'].iloc[0], 2 / 3)
        self.assertAlmostEqual(summary['frac_missing'].iloc[1], 0.5)
        self.assertAlmostEqual(summary['pct_missing'].iloc[1], 50.0)

    def test_unknown_rainfall_dropped(self):
        summary = self.engine.calculate_rainfall_missingness(self.df, 'rainfall', 'sunshine')
        self.assertEqual(summary['n_obs'].sum(), 5)

    def test_custom_threshold(self):
        engine = MissingnessAnalysisEngine({
            'analysis': {'rainy_threshold_mm': 5.0, 'rainy_label': 'Wet', 'dry_label': 'Dry'}
        })
        summary = engine.calculate_rainfall_missingness(self.df, 'rainfall', 'sunshine')
        self.assertEqual(summary['rain_category'].tolist(), ['Dry'])
        self.assertEqual(summary['n_obs'].tolist(), [5])

    def test_density_data_bounds_exclusive(self):
        df = pd.DataFrame({
            'rainfall': [0.0, 0.2, 49.9, 50.0, 60.0, np.nan],
            'sunshine': [np.nan, np.nan, 1.0, 1.0, 1.0, 1.0],
        })
        density = self.engine.prepare_rainfall_density_data(df, 'rainfall', 'sunshine')

        self.assertEqual(density['rainfall'].tolist(), [0.2, 49.9])
        self.assertEqual(density['status'].tolist(), ['Missing', 'Present'])


class TestRunFullAnalysis(unittest.TestCase):
    """Test the complete analysis over a validated dataset"""

    def setUp(self):
        self.engine = MissingnessAnalysisEngine()
        self.df = pd.DataFrame({
            'date': ['2020-01-01', '2020-01-02', '2020-02-01', '2020-02-02'],
            'location': ['A', 'A', 'B', 'B'],
            'rainfall': [0.0, 3.0, 2.0, np.nan],
            'sunshine': [np.nan, np.nan, 5.0, 6.0],
            'evaporation': [1.0, np.nan, np.nan, 2.0],
        })

    def test_full_report(self):
        validator = DatasetValidator(DatasetSchema(
            target_columns=['sunshine', 'evaporation', 'cloud3pm']
        ))
        dataset = validator.validate(self.df)
        report = self.engine.run_full_analysis(dataset)

        self.assertIsInstance(report, MissingnessReport)
        self.assertEqual(report.target_columns, ['sunshine', 'evaporation'])
        self.assertEqual(len(report.co_missing_stats), 2)
        self.assertIsNotNone(report.top_location_missingness)
        self.assertEqual(len(report.temporal_trend), 2 * 2)
        self.assertEqual(report.rainfall_missingness['n_obs'].sum(), 3)
        self.assertEqual(report.skipped_sections, {})

    def test_optional_sections_skipped(self):
        df = self.df[['sunshine', 'evaporation']]
        dataset = DatasetValidator().validate(df)
        report = self.engine.run_full_analysis(dataset)

        self.assertIsNone(report.location_summary)
        self.assertIsNone(report.temporal_trend)
        self.assertIsNone(report.rainfall_missingness)
        self.assertEqual(set(report.skipped_sections), {'location', 'temporal', 'rainfall'})
        self.assertEqual(len(report.co_missing_stats), 2)


if __name__ == '__main__':
    unittest.main()
