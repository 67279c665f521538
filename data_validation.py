"""
Dataset Loading and Schema Validation for the Weather Missingness Analysis

This module loads the station-day weather table, normalizes its column names and
validates it against the analysis schema before any statistics are computed.

Key Components:
- Column name normalization (lowercase, underscore separated)
- CSV loading with clear errors for unreadable inputs
- Target column presence checks with graceful reduction to the available set
- Optional section checks (dates, locations, rainfall/sunshine cross-check)
- Data quality issue logging and export summaries
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

import pandas as pd


class DatasetLoadError(Exception):
    """Raised when the input dataset cannot be read"""


class SchemaValidationError(Exception):
    """Raised when the dataset cannot support any part of the analysis"""


@dataclass
class DatasetSchema:
    """Column names the analysis expects after normalization"""
    date_column: str = 'date'
    location_column: str = 'location'
    rainfall_column: str = 'rainfall'
    sunshine_column: str = 'sunshine'
    target_columns: List[str] = field(
        default_factory=lambda: ['sunshine', 'evaporation', 'cloud3pm', 'cloud9am']
    )

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> 'DatasetSchema':
        data_config = config.get('data', {})
        defaults = cls()
        return cls(
            date_column=data_config.get('date_column', defaults.date_column),
            location_column=data_config.get('location_column', defaults.location_column),
            rainfall_column=data_config.get('rainfall_column', defaults.rainfall_column),
            sunshine_column=data_config.get('sunshine_column', defaults.sunshine_column),
            target_columns=list(data_config.get('target_columns', defaults.target_columns)),
        )


@dataclass
class DataQualityIssue:
    """Represents a data quality issue"""
    severity: str  # 'critical', 'warning', 'info'
    category: str  # 'schema', 'completeness', 'temporal'
    message: str
    affected_rows: int
    total_rows: int
    completeness: float
    timestamp: datetime


@dataclass(frozen=True, eq=False)
class ValidatedDataset:
    """Cleaned weather table together with the columns the analysis may use"""
    data: pd.DataFrame
    schema: DatasetSchema
    target_columns: Tuple[str, ...]
    missing_target_columns: Tuple[str, ...]
    has_dates: bool
    has_locations: bool
    has_rainfall_check: bool
    issues: Tuple[DataQualityIssue, ...] = ()

    @property
    def n_rows(self) -> int:
        return len(self.data)


def clean_column_name(name: Any) -> str:
    """
    Normalize a single column name to lowercase snake_case.

    'MinTemp' -> 'min_temp', 'Cloud9am' -> 'cloud9am', 'Wind Gust (km/h)' -> 'wind_gust_km_h'
    """
    text = str(name).strip()
    text = re.sub(r'(?<=[a-z0-9])(?=[A-Z])', '_', text)
    text = re.sub(r'(?<=[A-Z])(?=[A-Z][a-z])', '_', text)
    text = re.sub(r'[^0-9a-zA-Z]+', '_', text)
    text = re.sub(r'_+', '_', text).strip('_').lower()
    return text or 'x'


def clean_column_names(df: pd.DataFrame) -> pd.DataFrame:
    """
    Return a copy of the table with normalized, unique column names.

    Duplicate names after cleaning get a numeric suffix (_2, _3, ...).
    """
    seen: Dict[str, int] = {}
    new_names = []
    for name in df.columns:
        cleaned = clean_column_name(name)
        if cleaned in seen:
            seen[cleaned] += 1
            cleaned = f"{cleaned}_{seen[cleaned]}"
        else:
            seen[cleaned] = 1
        new_names.append(cleaned)

    cleaned_df = df.copy()
    cleaned_df.columns = new_names
    return cleaned_df


class DatasetValidator:
    """
    Loads the weather table and validates it against the analysis schema.
    """

    def __init__(self, schema: Optional[DatasetSchema] = None,
                 min_completeness: float = 0.8):
        """
        Initialize dataset validator.

        Args:
            schema: Expected column names (defaults to the weatherAUS layout)
            min_completeness: Completeness below which a target column is flagged
        """
        self.schema = schema or DatasetSchema()
        self.min_completeness = min_completeness

        logging.info("Dataset validator initialized")
        logging.info(f"Target columns: {', '.join(self.schema.target_columns)}")

    def load_dataset(self, file_path: Union[str, Path]) -> pd.DataFrame:
        """
        Read a CSV file and normalize its column names.

        Args:
            file_path: Path to the CSV file

        Returns:
            DataFrame with cleaned column names

        Raises:
            DatasetLoadError: If the file is missing, empty or unparseable
        """
        path = Path(file_path)
        if not path.exists():
            raise DatasetLoadError(f"Input dataset not found: {path}")
        if not path.is_file():
            raise DatasetLoadError(f"Input dataset is not a file: {path}")

        try:
            raw = pd.read_csv(path)
        except pd.errors.EmptyDataError as e:
            raise DatasetLoadError(f"Input dataset is empty: {path}") from e
        except (pd.errors.ParserError, UnicodeDecodeError) as e:
            raise DatasetLoadError(f"Could not parse input dataset {path}: {e}") from e
        except OSError as e:
            raise DatasetLoadError(f"Could not read input dataset {path}: {e}") from e

        df = clean_column_names(raw)
        logging.info(f"Loaded {len(df):,} rows and {len(df.columns)} columns from {path}")
        return df

    def split_target_columns(self, df: pd.DataFrame) -> Tuple[List[str], List[str]]:
        """Split the requested target columns into (present, absent), keeping requested order"""
        found = [col for col in self.schema.target_columns if col in df.columns]
        missing = [col for col in self.schema.target_columns if col not in df.columns]
        return found, missing

    def validate(self, df: pd.DataFrame) -> ValidatedDataset:
        """
        Validate a cleaned table and return the typed dataset used by the analysis.

        Args:
            df: DataFrame with normalized column names

        Returns:
            ValidatedDataset with the available target columns and section flags

        Raises:
            SchemaValidationError: If none of the target columns are present
        """
        issues: List[DataQualityIssue] = []
        total_rows = len(df)

        found, missing = self.split_target_columns(df)

        if not found:
            raise SchemaValidationError(
                "None of the target columns are present in the dataset: "
                f"{', '.join(self.schema.target_columns)}"
            )

        for col in missing:
            issues.append(self._issue(
                'warning', 'schema',
                f'Target column {col} not found in dataset; continuing without it',
                affected_rows=total_rows, total_rows=total_rows, completeness=0.0
            ))

        data = df.copy()

        has_dates = self.schema.date_column in data.columns
        if has_dates:
            data[self.schema.date_column] = pd.to_datetime(
                data[self.schema.date_column], errors='coerce'
            )
            unparsed = int(data[self.schema.date_column].isna().sum())
            if unparsed == total_rows and total_rows > 0:
                has_dates = False
                issues.append(self._issue(
                    'warning', 'temporal',
                    f'Date column {self.schema.date_column} could not be parsed; temporal trends disabled',
                    affected_rows=unparsed, total_rows=total_rows, completeness=0.0
                ))
            elif unparsed > 0:
                issues.append(self._issue(
                    'warning', 'temporal',
                    f'{unparsed} rows have missing or unparseable dates',
                    affected_rows=unparsed, total_rows=total_rows,
                    completeness=1 - unparsed / total_rows
                ))
        else:
            issues.append(self._issue(
                'warning', 'schema',
                f'Date column {self.schema.date_column} not found; temporal trends disabled',
                affected_rows=total_rows, total_rows=total_rows, completeness=0.0
            ))

        has_locations = self.schema.location_column in data.columns
        if not has_locations:
            issues.append(self._issue(
                'warning', 'schema',
                f'Location column {self.schema.location_column} not found; location summary disabled',
                affected_rows=total_rows, total_rows=total_rows, completeness=0.0
            ))

        has_rainfall_check = (
            self.schema.rainfall_column in data.columns
            and self.schema.sunshine_column in data.columns
        )
        if not has_rainfall_check:
            issues.append(self._issue(
                'info', 'schema',
                f'Columns {self.schema.rainfall_column}/{self.schema.sunshine_column} '
                'not both present; rainfall cross-check will be skipped',
                affected_rows=0, total_rows=total_rows, completeness=0.0
            ))

        issues.extend(self._check_target_completeness(data, found))

        return ValidatedDataset(
            data=data,
            schema=self.schema,
            target_columns=tuple(found),
            missing_target_columns=tuple(missing),
            has_dates=has_dates,
            has_locations=has_locations,
            has_rainfall_check=has_rainfall_check,
            issues=tuple(issues),
        )

    def load_and_validate(self, file_path: Union[str, Path]) -> ValidatedDataset:
        """Load a CSV file and validate it in one step"""
        return self.validate(self.load_dataset(file_path))

    def _check_target_completeness(self, data: pd.DataFrame,
                                   columns: List[str]) -> List[DataQualityIssue]:
        issues = []
        total_rows = len(data)
        if total_rows == 0:
            return issues

        for col in columns:
            n_missing = int(data[col].isna().sum())
            completeness = 1 - n_missing / total_rows

            if n_missing == 0:
                # Conditional co-missingness for this column is undefined
                issues.append(self._issue(
                    'info', 'completeness',
                    f'Target column {col} has no missing values; '
                    'its conditional co-missingness row is undefined',
                    affected_rows=0, total_rows=total_rows, completeness=1.0
                ))
            elif completeness < self.min_completeness:
                issues.append(self._issue(
                    'warning' if completeness > 0.5 else 'critical',
                    'completeness',
                    f'Target column {col} has low completeness: {completeness:.1%}',
                    affected_rows=n_missing, total_rows=total_rows,
                    completeness=completeness
                ))

        return issues

    @staticmethod
    def _issue(severity: str, category: str, message: str, affected_rows: int,
               total_rows: int, completeness: float) -> DataQualityIssue:
        return DataQualityIssue(
            severity=severity,
            category=category,
            message=message,
            affected_rows=affected_rows,
            total_rows=total_rows,
            completeness=completeness,
            timestamp=datetime.now()
        )

    def log_validation_summary(self, validated: ValidatedDataset):
        """
        Log the validation outcome for monitoring and debugging.

        Args:
            validated: Result of validate()
        """
        logging.info("=== DATASET VALIDATION ===")
        logging.info(f"Rows: {validated.n_rows:,}")
        logging.info(f"Target columns found: {', '.join(validated.target_columns)}")
        if validated.missing_target_columns:
            logging.warning(
                f"Target columns missing: {', '.join(validated.missing_target_columns)}"
            )
        logging.info(f"Temporal trends available: {validated.has_dates}")
        logging.info(f"Location summary available: {validated.has_locations}")
        logging.info(f"Rainfall cross-check available: {validated.has_rainfall_check}")

        for issue in validated.issues:
            if issue.severity == 'critical':
                logging.error(f"CRITICAL: {issue.message}")
            elif issue.severity == 'warning':
                logging.warning(issue.message)
            else:
                logging.info(issue.message)

        logging.info("=== END DATASET VALIDATION ===")

    def get_validation_summary_for_export(self, validated: ValidatedDataset) -> Dict[str, Any]:
        """
        Get validation summary suitable for the exported report and manifest.

        Args:
            validated: Result of validate()

        Returns:
            Dictionary with summary statistics
        """
        data = validated.data
        completeness = {}
        for col in validated.target_columns:
            if len(data) > 0:
                completeness[col] = round(float(data[col].notna().mean()) * 100, 1)
            else:
                completeness[col] = 0.0

        return {
            'validation_timestamp': datetime.now().isoformat(),
            'n_rows': validated.n_rows,
            'n_columns': len(data.columns),
            'target_columns_found': list(validated.target_columns),
            'target_columns_missing': list(validated.missing_target_columns),
            'target_completeness_percentage': completeness,
            'temporal_trends_available': validated.has_dates,
            'location_summary_available': validated.has_locations,
            'rainfall_check_available': validated.has_rainfall_check,
            'critical_issues_count': sum(1 for i in validated.issues if i.severity == 'critical'),
            'warning_issues_count': sum(1 for i in validated.issues if i.severity == 'warning'),
            'info_issues_count': sum(1 for i in validated.issues if i.severity == 'info'),
        }
