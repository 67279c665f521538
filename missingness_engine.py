"""
Missingness Analysis Engine for Station-Day Weather Data

This module implements the descriptive missing-data statistics used to study the
high-missingness weather variables (sunshine, evaporation and cloud cover).

Key Components:
- Co-missingness counts and conditional co-missingness percentages
- Missing pattern combinations and per-case missing counts
- Missingness summaries by location
- Monthly missingness trends
- Sunshine missingness on rainy vs. dry days and rainfall density inputs

Conditional co-missingness: pct(i, j) = 100 × count(i and j absent) / count(i absent)
"""

import logging
from dataclasses import dataclass, field, fields
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from data_validation import ValidatedDataset


@dataclass
class AnalysisSettings:
    """Configuration for the missingness analysis"""
    top_n: int = 10

    # Rainfall cross-check, rainfall > threshold is rainy
    rainy_threshold_mm: float = 1.0
    rainy_label: str = 'Rainy (>1mm)'
    dry_label: str = 'Dry (≤1mm)'

    # Exclusive bounds for the rainfall density plot
    density_range_mm: Tuple[float, float] = (0.0, 50.0)


@dataclass
class MissingnessReport:
    """All result tables produced by one analysis run"""
    target_columns: List[str]
    co_missing_counts: pd.DataFrame
    co_missing_stats: pd.DataFrame
    co_missing_messages: List[str]
    missing_patterns: pd.DataFrame
    missing_per_case: pd.DataFrame
    location_summary: Optional[pd.DataFrame] = None
    top_location_missingness: Optional[pd.DataFrame] = None
    temporal_trend: Optional[pd.DataFrame] = None
    rainfall_missingness: Optional[pd.DataFrame] = None
    rainfall_density_data: Optional[pd.DataFrame] = None
    skipped_sections: Dict[str, str] = field(default_factory=dict)


class MissingnessAnalysisEngine:
    """
    Computes co-missingness, pattern, group, temporal and rainfall cross-check
    statistics over an immutable weather table.
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        """
        Initialize missingness analysis engine.

        Args:
            config: Configuration dictionary with an 'analysis' section
        """
        self.config = config or self._get_default_config()
        analysis_config = dict(self.config.get('analysis', {}))
        unknown = sorted(set(analysis_config) - {f.name for f in fields(AnalysisSettings)})
        if unknown:
            raise ValueError(f"Unknown analysis setting(s): {', '.join(unknown)}")
        if 'density_range_mm' in analysis_config:
            analysis_config['density_range_mm'] = tuple(analysis_config['density_range_mm'])
        self.settings = AnalysisSettings(**analysis_config)

        self._validate_settings()

        logging.info("Missingness analysis engine initialized")
        logging.info(f"Top-N rows reported: {self.settings.top_n}")
        logging.info(f"Rainy threshold: rainfall > {self.settings.rainy_threshold_mm} mm")

    def _get_default_config(self) -> Dict[str, Any]:
        """Get default configuration if none provided"""
        return {
            'analysis': {
                'top_n': 10,
                'rainy_threshold_mm': 1.0,
                'rainy_label': 'Rainy (>1mm)',
                'dry_label': 'Dry (≤1mm)',
                'density_range_mm': (0.0, 50.0)
            }
        }

    def _validate_settings(self):
        self._check_top_n(self.settings.top_n)

        if len(self.settings.density_range_mm) != 2:
            raise ValueError(
                f"density_range_mm must be [lower, upper], got {list(self.settings.density_range_mm)}"
            )
        lower, upper = self.settings.density_range_mm
        if lower >= upper:
            raise ValueError(f"Invalid density range: {lower} >= {upper}")

        if self.settings.rainy_label == self.settings.dry_label:
            raise ValueError("Rainy and dry category labels must differ")

    @staticmethod
    def _check_top_n(top_n: int):
        if isinstance(top_n, bool) or not isinstance(top_n, (int, np.integer)) or top_n < 1:
            raise ValueError(f"top_n must be an integer of at least 1, got {top_n!r}")

    # ------------------------------------------------------------------
    # Co-missingness
    # ------------------------------------------------------------------

    def build_missing_indicator_matrix(self, df: pd.DataFrame,
                                       columns: Sequence[str]) -> pd.DataFrame:
        """
        Build the 0/1 indicator matrix, 1 where the value is absent.

        Args:
            df: Weather table
            columns: Target columns

        Returns:
            Integer DataFrame with the same row count as df
        """
        columns = list(dict.fromkeys(columns))
        return df[columns].isna().astype(np.int64)

    def calculate_co_missingness_counts(self, df: pd.DataFrame,
                                        columns: Sequence[str]) -> pd.DataFrame:
        """
        Count rows where each pair of columns is absent together.

        The diagonal holds each column's total missing count.
        """
        indicator = self.build_missing_indicator_matrix(df, columns)
        matrix = indicator.to_numpy()
        counts = matrix.T @ matrix
        return pd.DataFrame(counts, index=indicator.columns, columns=indicator.columns)

    def calculate_conditional_percentages(self, counts: pd.DataFrame) -> pd.DataFrame:
        """
        Divide each row of the counts matrix by its diagonal entry.

        Cell (i, j) is P(j absent | i absent) × 100. Rows whose column has no
        missing values are NaN.
        """
        values = counts.to_numpy(dtype=float)
        totals = np.diag(values)
        with np.errstate(divide='ignore', invalid='ignore'):
            pct = values / totals[:, np.newaxis] * 100
        return pd.DataFrame(pct, index=counts.index, columns=counts.columns)

    def calculate_co_missingness(self, df: pd.DataFrame,
                                 columns: Sequence[str]) -> pd.DataFrame:
        """
        Compute conditional co-missingness for every ordered pair of distinct columns.

        Args:
            df: Weather table
            columns: Target columns

        Returns:
            DataFrame with var1, var2, pct_co_miss and n_co_miss, sorted by
            descending percentage with undefined (NaN) rows last
        """
        counts = self.calculate_co_missingness_counts(df, columns)
        pct = self.calculate_conditional_percentages(counts)

        names = list(counts.index)
        count_values = counts.to_numpy()
        pct_values = pct.to_numpy()

        records = [
            {
                'var1': var1,
                'var2': var2,
                'pct_co_miss': pct_values[i, j],
                'n_co_miss': int(count_values[i, j])
            }
            for i, var1 in enumerate(names)
            for j, var2 in enumerate(names)
            if i != j
        ]
        stats = pd.DataFrame(records, columns=['var1', 'var2', 'pct_co_miss', 'n_co_miss'])
        stats['pct_co_miss'] = stats['pct_co_miss'].astype(float)

        undefined = [name for name, total in zip(names, np.diag(count_values)) if total == 0]
        if undefined:
            logging.warning(
                f"Conditional co-missingness undefined for columns with no missing values: "
                f"{', '.join(undefined)}"
            )

        return stats.sort_values(
            'pct_co_miss', ascending=False, na_position='last', kind='mergesort'
        ).reset_index(drop=True)

    def format_co_missingness_messages(self, stats: pd.DataFrame) -> List[str]:
        """Render one readable line per ordered pair"""
        messages = []
        for row in stats.itertuples(index=False):
            if pd.isna(row.pct_co_miss):
                messages.append(
                    f"  {row.var1} -> {row.var2}: undefined ({row.var1} is never missing)"
                )
            else:
                messages.append(
                    f"  {row.var1} -> {row.var2}: {row.pct_co_miss:.1f}% "
                    f"(When {row.var1} is missing, {row.var2} is missing)"
                )
        return messages

    # ------------------------------------------------------------------
    # Missing patterns
    # ------------------------------------------------------------------

    def tabulate_missing_patterns(self, df: pd.DataFrame, columns: Sequence[str],
                                  top_n: Optional[int] = None) -> pd.DataFrame:
        """
        Count each distinct present/absent pattern across the target columns.

        Args:
            df: Weather table
            columns: Target columns
            top_n: Number of patterns to keep (defaults to settings.top_n)

        Returns:
            DataFrame with one boolean column per target (True = missing),
            n_missing, n_cases and pct_cases; most frequent patterns first
        """
        columns = list(dict.fromkeys(columns))
        if top_n is None:
            top_n = self.settings.top_n
        self._check_top_n(top_n)
        output_columns = columns + ['n_missing', 'n_cases', 'pct_cases']

        if len(df) == 0:
            return pd.DataFrame(columns=output_columns)

        indicator = df[columns].isna()
        patterns = indicator.groupby(columns, sort=False).size().reset_index(name='n_cases')
        patterns['n_missing'] = patterns[columns].sum(axis=1).astype(int)
        patterns['pct_cases'] = patterns['n_cases'] / len(df) * 100

        patterns = patterns.sort_values('n_cases', ascending=False, kind='mergesort')
        return patterns[output_columns].head(top_n).reset_index(drop=True)

    def summarize_missing_per_case(self, df: pd.DataFrame,
                                   columns: Sequence[str]) -> pd.DataFrame:
        """Number of rows with 0, 1, 2, ... missing target values"""
        columns = list(dict.fromkeys(columns))
        n_miss_in_case = df[columns].isna().sum(axis=1)

        table = (
            n_miss_in_case.value_counts()
            .rename_axis('n_miss_in_case')
            .reset_index(name='n_cases')
            .sort_values('n_miss_in_case')
            .reset_index(drop=True)
        )
        table['pct_cases'] = table['n_cases'] / max(len(df), 1) * 100
        return table

    # ------------------------------------------------------------------
    # Group-wise summary
    # ------------------------------------------------------------------

    def summarize_missingness_by_group(self, df: pd.DataFrame, group_column: str,
                                       variables: Optional[Sequence[str]] = None) -> pd.DataFrame:
        """
        Fraction of absent values for every (group, variable) pair.

        Args:
            df: Weather table
            group_column: Categorical grouping key (e.g. location)
            variables: Variables to summarize (defaults to every other column)

        Returns:
            Long DataFrame with group, variable, n_obs, n_miss, frac_miss, pct_miss
        """
        if variables is None:
            variables = [col for col in df.columns if col != group_column]
        variables = [col for col in dict.fromkeys(variables) if col != group_column]

        output_columns = [group_column, 'variable', 'n_obs', 'n_miss', 'frac_miss', 'pct_miss']
        if len(df) == 0 or not variables:
            return pd.DataFrame(columns=output_columns)

        indicator = df[variables].isna()
        indicator.insert(0, group_column, df[group_column].to_numpy())
        grouped = indicator.groupby(group_column, dropna=False, observed=True, sort=True)

        sizes = grouped.size()
        n_miss = grouped.sum().reset_index().melt(
            id_vars=[group_column], var_name='variable', value_name='n_miss'
        )
        frac = grouped.mean().reset_index().melt(
            id_vars=[group_column], var_name='variable', value_name='frac_miss'
        )

        summary = n_miss
        summary['n_obs'] = np.tile(sizes.to_numpy(), len(variables))
        summary['n_miss'] = summary['n_miss'].astype(int)
        summary['frac_miss'] = frac['frac_miss'].to_numpy(dtype=float)
        summary['pct_miss'] = summary['frac_miss'] * 100

        summary = summary.sort_values(
            [group_column, 'pct_miss'], ascending=[True, False], kind='mergesort'
        )
        return summary[output_columns].reset_index(drop=True)

    def top_group_missingness(self, summary: pd.DataFrame,
                              variables: Optional[Sequence[str]] = None,
                              top_n: Optional[int] = None) -> pd.DataFrame:
        """Filter a group summary to the given variables and keep the highest missing fractions"""
        if top_n is None:
            top_n = self.settings.top_n
        self._check_top_n(top_n)
        filtered = summary
        if variables is not None:
            filtered = summary[summary['variable'].isin(list(variables))]
        return (
            filtered.sort_values('pct_miss', ascending=False, kind='mergesort')
            .head(top_n)
            .reset_index(drop=True)
        )

    # ------------------------------------------------------------------
    # Temporal trend
    # ------------------------------------------------------------------

    def calculate_temporal_trend(self, df: pd.DataFrame, date_column: str,
                                 variables: Sequence[str]) -> pd.DataFrame:
        """
        Monthly fraction of absent values per variable.

        Args:
            df: Weather table
            date_column: Column holding observation dates
            variables: Variables to track

        Returns:
            Long DataFrame with month, variable, n_obs, frac_miss, pct_missing.
            Months without observations do not appear.
        """
        variables = list(dict.fromkeys(variables))
        output_columns = ['month', 'variable', 'n_obs', 'frac_miss', 'pct_missing']

        dates = pd.to_datetime(df[date_column], errors='coerce')
        valid = dates.notna()
        n_dropped = int((~valid).sum())
        if n_dropped:
            logging.warning(f"Excluding {n_dropped} rows without a usable date from temporal trend")

        if not valid.any() or not variables:
            return pd.DataFrame(columns=output_columns)

        indicator = df.loc[valid, variables].isna()
        indicator.insert(0, 'month', dates[valid].dt.to_period('M').dt.to_timestamp())
        grouped = indicator.groupby('month', sort=True)

        sizes = grouped.size()
        trend = grouped.mean().reset_index().melt(
            id_vars=['month'], var_name='variable', value_name='frac_miss'
        )
        trend['n_obs'] = np.tile(sizes.to_numpy(), len(variables))
        trend['frac_miss'] = trend['frac_miss'].astype(float)
        trend['pct_missing'] = trend['frac_miss'] * 100

        return trend.sort_values(['month', 'variable'], kind='mergesort')[output_columns].reset_index(drop=True)

    # ------------------------------------------------------------------
    # Rainfall cross-check
    # ------------------------------------------------------------------

    def classify_rainfall(self, rainfall: pd.Series) -> pd.Series:
        """Label each observed rainfall value as rainy (> threshold) or dry"""
        labels = np.where(
            rainfall > self.settings.rainy_threshold_mm,
            self.settings.rainy_label,
            self.settings.dry_label
        )
        return pd.Series(labels, index=rainfall.index, name='rain_category')

    def calculate_rainfall_missingness(self, df: pd.DataFrame, rainfall_column: str,
                                       variable_column: str) -> pd.DataFrame:
        """
        Row count and missing fraction of a variable on dry vs. rainy days.

        Rows with unknown rainfall are dropped first.

        Returns:
            DataFrame with rain_category, n_obs, frac_missing, pct_missing
            (dry category first)
        """
        observed = df[df[rainfall_column].notna()]
        output_columns = ['rain_category', 'n_obs', 'frac_missing', 'pct_missing']
        if len(observed) == 0:
            logging.warning(f"No rows with observed {rainfall_column}; cross-check is empty")
            return pd.DataFrame(columns=output_columns)

        categories = pd.Categorical(
            self.classify_rainfall(observed[rainfall_column]),
            categories=[self.settings.dry_label, self.settings.rainy_label]
        )
        frame = pd.DataFrame({
            'rain_category': categories,
            'is_missing': observed[variable_column].isna().to_numpy()
        })

        summary = frame.groupby('rain_category', observed=True).agg(
            n_obs=('is_missing', 'size'),
            frac_missing=('is_missing', 'mean')
        ).reset_index()
        summary['rain_category'] = summary['rain_category'].astype(str)
        summary['frac_missing'] = summary['frac_missing'].astype(float)
        summary['pct_missing'] = summary['frac_missing'] * 100
        return summary[output_columns]

    def prepare_rainfall_density_data(self, df: pd.DataFrame, rainfall_column: str,
                                      variable_column: str) -> pd.DataFrame:
        """Rainfall values inside the density range, tagged by whether the variable is present"""
        lower, upper = self.settings.density_range_mm
        rainfall = df[rainfall_column]
        mask = (rainfall > lower) & (rainfall < upper)

        return pd.DataFrame({
            'rainfall': rainfall[mask].to_numpy(dtype=float),
            'status': np.where(df.loc[mask, variable_column].isna(), 'Missing', 'Present')
        })

    # ------------------------------------------------------------------
    # Full run
    # ------------------------------------------------------------------

    def run_full_analysis(self, dataset: ValidatedDataset) -> MissingnessReport:
        """
        Run every analysis section the validated dataset supports.

        Args:
            dataset: Output of DatasetValidator.validate

        Returns:
            MissingnessReport with all tables; unsupported sections are listed
            in skipped_sections
        """
        df = dataset.data
        schema = dataset.schema
        targets = list(dataset.target_columns)

        logging.info(f"Running missingness analysis on {len(df):,} rows, "
                     f"targets: {', '.join(targets)}")

        counts = self.calculate_co_missingness_counts(df, targets)
        co_missing_stats = self.calculate_co_missingness(df, targets)

        report = MissingnessReport(
            target_columns=targets,
            co_missing_counts=counts,
            co_missing_stats=co_missing_stats,
            co_missing_messages=self.format_co_missingness_messages(co_missing_stats),
            missing_patterns=self.tabulate_missing_patterns(df, targets),
            missing_per_case=self.summarize_missing_per_case(df, targets),
        )

        if dataset.has_locations:
            report.location_summary = self.summarize_missingness_by_group(
                df, schema.location_column
            )
            report.top_location_missingness = self.top_group_missingness(
                report.location_summary, targets
            )
        else:
            report.skipped_sections['location'] = (
                f"column '{schema.location_column}' not present"
            )

        if dataset.has_dates:
            report.temporal_trend = self.calculate_temporal_trend(
                df, schema.date_column, targets
            )
        else:
            report.skipped_sections['temporal'] = (
                f"column '{schema.date_column}' not present or unparseable"
            )

        if dataset.has_rainfall_check:
            report.rainfall_missingness = self.calculate_rainfall_missingness(
                df, schema.rainfall_column, schema.sunshine_column
            )
            report.rainfall_density_data = self.prepare_rainfall_density_data(
                df, schema.rainfall_column, schema.sunshine_column
            )
        else:
            report.skipped_sections['rainfall'] = (
                f"columns '{schema.rainfall_column}' and '{schema.sunshine_column}' not both present"
            )

        for section, reason in report.skipped_sections.items():
            logging.warning(f"Skipped {section} analysis: {reason}")

        return report
