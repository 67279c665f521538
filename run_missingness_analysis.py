#!/usr/bin/env python3
"""
Weather Missingness Analysis Pipeline
Runs every analysis step over one weather dataset and exports the results
"""

import argparse
import logging
import os
import sys
from datetime import datetime
from typing import Any, Dict, List, Optional

from configuration import ConfigurationError, load_config
from data_validation import (
    DatasetLoadError, DatasetSchema, DatasetValidator, SchemaValidationError,
    ValidatedDataset, clean_column_names
)
from demo_data_generator import DemoDataGenerator
from export_system import ExportConfig, ExportSystem
from logging_system import AnalysisLogger, initialize_logging
from missingness_engine import MissingnessAnalysisEngine, MissingnessReport
from visualization_system import VisualizationSystem


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Analyse patterns of missing data in a daily weather dataset"
    )
    parser.add_argument("--csv", help="Path to input CSV (overrides data.path)")
    parser.add_argument("--config", help="Path to YAML configuration file")
    parser.add_argument("--output-dir", help="Directory for exported results")
    parser.add_argument("--demo", action="store_true",
                        help="Use a generated demo dataset instead of a CSV file")
    parser.add_argument("--no-plots", action="store_true",
                        help="Skip figure generation and export")
    parser.add_argument("--log-level", default=None,
                        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
                        help="Console log level (overrides logging.log_level)")
    return parser.parse_args(argv)


def _section(title: str):
    print("\n" + "=" * 60)
    print(title)
    print("=" * 60)


def load_dataset(config: Dict[str, Any], validator: DatasetValidator,
                 logger: AnalysisLogger, demo: bool = False) -> ValidatedDataset:
    """Load the input table (CSV or demo data) and validate it"""
    if demo:
        raw = DemoDataGenerator(42).generate_weather_dataset()
        df = clean_column_names(raw)
        logger.record_input("demo_weather", "generated", "synthetic station-day table",
                            n_rows=len(df), n_columns=len(df.columns))
    else:
        path = config['data']['path']
        try:
            df = validator.load_dataset(path)
        except DatasetLoadError as e:
            logger.record_input("weather_csv", str(path), "csv", error=str(e))
            raise
        logger.record_input("weather_csv", str(path), "csv",
                            n_rows=len(df), n_columns=len(df.columns))

    dataset = validator.validate(df)
    validator.log_validation_summary(dataset)
    return dataset


def print_report(report: MissingnessReport, engine: MissingnessAnalysisEngine):
    """Print the result tables in pipeline order"""
    top_n = engine.settings.top_n

    _section("CO-MISSINGNESS PATTERNS")
    print(report.co_missing_stats.to_string(index=False))
    print()
    for message in report.co_missing_messages:
        print(message)

    _section(f"MISSING PATTERN COMBINATIONS (TOP {top_n})")
    print(report.missing_patterns.to_string(index=False))

    if report.top_location_missingness is not None:
        _section("MISSINGNESS BY LOCATION")
        print(report.top_location_missingness.to_string(index=False))

    if report.temporal_trend is not None:
        _section("TEMPORAL TRENDS")
        n_months = report.temporal_trend['month'].nunique()
        print(f"Monthly missingness computed for {n_months} months "
              f"across {len(report.target_columns)} variables")

    if report.rainfall_missingness is not None:
        _section("SUNSHINE VS RAINFALL CHECK")
        print(report.rainfall_missingness.to_string(index=False))

    for section, reason in report.skipped_sections.items():
        print(f"\nSkipped {section} analysis: {reason}")


def run_analysis(config: Dict[str, Any], logger: AnalysisLogger,
                 demo: bool = False, make_plots: bool = True) -> Dict[str, Any]:
    """
    Execute the complete missingness pipeline.

    Returns:
        Dictionary with the validated dataset, the report, figures and export paths
    """
    try:
        engine = MissingnessAnalysisEngine(config)
    except ValueError as e:
        raise ConfigurationError(f"Invalid analysis configuration: {e}") from e

    schema = DatasetSchema.from_config(config)
    validator = DatasetValidator(schema)

    with logger.performance_monitor("load_and_validate"):
        dataset = load_dataset(config, validator, logger, demo=demo)

    print(f"High missingness variables: {', '.join(dataset.target_columns)}")
    if dataset.missing_target_columns:
        print(f"Not found in dataset: {', '.join(dataset.missing_target_columns)}")

    with logger.performance_monitor("missingness_analysis", n_rows=dataset.n_rows):
        report = engine.run_full_analysis(dataset)

    print_report(report, engine)

    figures = {}
    visualization = VisualizationSystem(variable_label=schema.sunshine_column.title())
    if make_plots:
        with logger.performance_monitor("visualization"):
            figures = visualization.generate_all_visualizations(report)

    export_config = ExportConfig.from_config(config)
    if not make_plots:
        export_config.export_figures = False
    exporter = ExportSystem(export_config, visualization)

    with logger.performance_monitor("export"):
        exports = exporter.export_all_outputs(
            report,
            figures=figures,
            validation_summary=validator.get_validation_summary_for_export(dataset),
            configuration=config
        )

    return {
        'dataset': dataset,
        'report': report,
        'figures': figures,
        'exports': exports
    }


def main(argv: Optional[List[str]] = None) -> int:
    """Execute the weather missingness pipeline"""
    args = parse_args(argv)

    try:
        config = load_config(args.config)
    except ConfigurationError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1

    if args.csv:
        config['data']['path'] = args.csv
    if args.output_dir:
        config['output']['output_dir'] = args.output_dir
        config['logging']['log_dir'] = os.path.join(args.output_dir, 'logs')
    if args.log_level:
        config['logging']['log_level'] = args.log_level

    os.makedirs(config['output']['output_dir'], exist_ok=True)

    logging.basicConfig(
        level=getattr(logging, config['logging']['log_level'].upper()),
        format='%(asctime)s - %(levelname)s - %(message)s'
    )

    logger = initialize_logging(
        log_dir=config['logging']['log_dir'],
        log_level=config['logging']['log_level'],
        enable_performance=config['logging'].get('enable_performance', True)
    )
    logger.log_configuration(config, source=args.config or "defaults")

    print(f"Execution started at: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")

    exit_code = 0
    try:
        results = run_analysis(config, logger, demo=args.demo, make_plots=not args.no_plots)
        print(f"\nResults exported to: {config['output']['output_dir']}")
        print(f"Manifest: {results['exports']['manifest']}")
    except (ConfigurationError, DatasetLoadError, SchemaValidationError) as e:
        logger.error(f"Analysis aborted: {e}", component="pipeline")
        print(f"ERROR: {e}", file=sys.stderr)
        exit_code = 1
    finally:
        logger.close()

    return exit_code


if __name__ == "__main__":
    sys.exit(main())
