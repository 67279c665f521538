"""
Demo Data Generator for the Weather Missingness Analysis

This module generates a synthetic station-day weather table with the same raw
column layout as the Australian daily weather observations (weatherAUS.csv),
so the analysis can run without the real dataset.

The generated missingness is deliberately structured:
- Some stations never record sunshine or evaporation
- Cloud observations only start partway through the record at some stations
- Sunshine goes missing more often on rainy days
- A small amount of scattered missingness everywhere
"""

import logging
from pathlib import Path
from typing import Dict, List, Optional

import numpy as np
import pandas as pd


DEFAULT_LOCATIONS = [
    'Albury', 'BadgerysCreek', 'Cobar', 'Moree', 'Sydney',
    'Canberra', 'Melbourne', 'Brisbane', 'Perth', 'Darwin'
]


class DemoDataGenerator:
    """
    Generator for a reproducible weatherAUS-like dataset.
    """

    def __init__(self, random_seed: int = 42):
        """
        Initialize demo data generator.

        Args:
            random_seed: Random seed for reproducible data generation
        """
        self.random_seed = random_seed
        self.rng = np.random.RandomState(random_seed)

        # Stations without sunshine/evaporation instruments
        self.no_sunshine_stations = {'Albury', 'BadgerysCreek'}
        self.no_evaporation_stations = {'Albury', 'BadgerysCreek', 'Moree'}
        # Stations whose cloud observations begin late in the record
        self.late_cloud_stations = {'Cobar', 'Canberra'}

        logging.info(f"Demo data generator initialized with seed {random_seed}")

    def generate_weather_dataset(self,
                                 start_date: str = '2010-01-01',
                                 end_date: str = '2012-12-31',
                                 locations: Optional[List[str]] = None,
                                 base_missing_rate: float = 0.03) -> pd.DataFrame:
        """
        Generate daily observations for each location.

        Args:
            start_date: First observation date
            end_date: Last observation date
            locations: Station names (defaults to DEFAULT_LOCATIONS)
            base_missing_rate: Probability of a scattered missing value in any measurement

        Returns:
            DataFrame with raw (CamelCase) weatherAUS column names
        """
        locations = locations or DEFAULT_LOCATIONS
        dates = pd.date_range(start_date, end_date, freq='D')
        if len(dates) == 0:
            raise ValueError(f"Empty date range: {start_date} to {end_date}")

        cloud_start = dates[len(dates) // 2]
        frames = []

        for location in locations:
            n = len(dates)
            day_of_year = dates.dayofyear.to_numpy()
            season = np.cos(2 * np.pi * (day_of_year - 15) / 365.25)

            min_temp = 12 + 6 * season + self.rng.normal(0, 3, n)
            max_temp = min_temp + 8 + self.rng.normal(0, 2.5, n)

            # Most days are dry; wet days follow an exponential amount
            is_wet = self.rng.uniform(size=n) < 0.3
            rainfall = np.where(is_wet, self.rng.exponential(6.0, n), 0.0)
            rainfall = np.round(rainfall, 1)

            cloud9am = np.clip(np.round(self.rng.normal(4 + 3 * is_wet, 2, n)), 0, 8)
            cloud3pm = np.clip(np.round(self.rng.normal(4 + 3 * is_wet, 2, n)), 0, 8)
            sunshine = np.clip(self.rng.normal(9 - 0.8 * cloud3pm, 1.5, n), 0, 14)
            evaporation = np.clip(self.rng.normal(5 + 2 * season, 1.5, n), 0, None)
            humidity3pm = np.clip(self.rng.normal(50 + 20 * is_wet, 12, n), 5, 100)

            frame = pd.DataFrame({
                'Date': dates.strftime('%Y-%m-%d'),
                'Location': location,
                'MinTemp': np.round(min_temp, 1),
                'MaxTemp': np.round(max_temp, 1),
                'Rainfall': rainfall,
                'Evaporation': np.round(evaporation, 1),
                'Sunshine': np.round(sunshine, 1),
                'Cloud9am': cloud9am,
                'Cloud3pm': cloud3pm,
                'Humidity3pm': np.round(humidity3pm),
            })

            self._apply_structural_missingness(frame, location, dates, cloud_start, rainfall)
            self._apply_scattered_missingness(frame, base_missing_rate)
            frame['RainToday'] = np.where(
                frame['Rainfall'].isna(), None,
                np.where(frame['Rainfall'] > 1, 'Yes', 'No')
            )
            frames.append(frame)

        dataset = pd.concat(frames, ignore_index=True)
        logging.info(f"Generated demo weather dataset with {len(dataset):,} rows "
                     f"for {len(locations)} locations")
        return dataset

    def _apply_structural_missingness(self, frame: pd.DataFrame, location: str,
                                      dates: pd.DatetimeIndex, cloud_start: pd.Timestamp,
                                      rainfall: np.ndarray) -> None:
        n = len(frame)

        if location in self.no_sunshine_stations:
            frame['Sunshine'] = np.nan
        else:
            # Sunshine recorders fail more often on wet days
            fail_prob = np.where(rainfall > 1, 0.35, 0.08)
            frame.loc[self.rng.uniform(size=n) < fail_prob, 'Sunshine'] = np.nan

        if location in self.no_evaporation_stations:
            frame['Evaporation'] = np.nan

        if location in self.late_cloud_stations:
            early = np.asarray(dates < cloud_start)
            frame.loc[early, ['Cloud9am', 'Cloud3pm']] = np.nan

        # Evening cloud observation often skipped when the morning one is
        skip_3pm = frame['Cloud9am'].isna() & (self.rng.uniform(size=n) < 0.7)
        frame.loc[skip_3pm, 'Cloud3pm'] = np.nan

    def _apply_scattered_missingness(self, frame: pd.DataFrame, rate: float) -> None:
        for column in ['MinTemp', 'MaxTemp', 'Rainfall', 'Evaporation',
                       'Sunshine', 'Cloud9am', 'Cloud3pm', 'Humidity3pm']:
            mask = self.rng.uniform(size=len(frame)) < rate
            frame.loc[mask, column] = np.nan

    def get_generation_summary(self, dataset: pd.DataFrame) -> Dict[str, float]:
        """Percentage of missing values per column of a generated dataset"""
        return {col: round(float(dataset[col].isna().mean()) * 100, 2) for col in dataset.columns}

    def save_dataset(self, dataset: pd.DataFrame, file_path: str) -> str:
        """Write a generated dataset to CSV"""
        path = Path(file_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        dataset.to_csv(path, index=False)
        logging.info(f"Saved demo dataset to {path}")
        return str(path)
