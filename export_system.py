"""
Export System for the Weather Missingness Analysis

This module writes the results of a missingness analysis run to disk.

Key Components:
- CSV exports of every result table
- HTML (interactive) and PNG (static) figure exports
- Markdown missingness report with tables, skipped sections and data quality notes
- JSON export manifest listing every file written
"""

import json
import logging
import os
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

import numpy as np
import pandas as pd
import plotly.graph_objects as go

from missingness_engine import MissingnessReport
from visualization_system import VisualizationSystem


@dataclass
class ExportConfig:
    """Configuration for export system"""
    # Output directories
    output_dir: str = "output"
    tables_dir: str = "tables"
    figures_dir: str = "figures"
    docs_dir: str = "docs"

    # File naming
    timestamp_format: str = "%Y%m%d_%H%M%S"

    # CSV export settings
    csv_precision: int = 4

    # Toggles
    export_tables: bool = True
    export_figures: bool = True
    export_report: bool = True

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> 'ExportConfig':
        output_config = config.get('output', {})
        return cls(
            output_dir=output_config.get('output_dir', cls.output_dir),
            export_tables=output_config.get('export_tables', True),
            export_figures=output_config.get('export_figures', True),
            export_report=output_config.get('export_report', True),
        )


# Report table attribute -> exported file stem
REPORT_TABLES = {
    'co_missing_stats': 'co_missingness',
    'missing_patterns': 'missing_patterns',
    'missing_per_case': 'missing_per_case',
    'location_summary': 'location_summary',
    'top_location_missingness': 'top_location_missingness',
    'temporal_trend': 'temporal_trend',
    'rainfall_missingness': 'rainfall_missingness',
}


class StandardizedFileExporter:
    """
    Handles table, figure and report exports.
    """

    def __init__(self, config: Optional[ExportConfig] = None):
        """
        Initialize file exporter.

        Args:
            config: Export configuration
        """
        self.config = config or ExportConfig()
        self.export_timestamp = datetime.now().strftime(self.config.timestamp_format)

        self._create_output_directories()

        logging.info("Standardized file exporter initialized")

    def _create_output_directories(self) -> None:
        directories = [
            self.config.output_dir,
            os.path.join(self.config.output_dir, self.config.tables_dir),
            os.path.join(self.config.output_dir, self.config.figures_dir),
            os.path.join(self.config.output_dir, self.config.docs_dir)
        ]
        for directory in directories:
            os.makedirs(directory, exist_ok=True)

        logging.info(f"Created output directories in {self.config.output_dir}")

    def export_tables(self, report: MissingnessReport) -> Dict[str, str]:
        """
        Export every available result table to CSV.

        Args:
            report: Analysis report

        Returns:
            Dictionary mapping table name to exported file path
        """
        exported = {}

        try:
            for attribute, stem in REPORT_TABLES.items():
                table = getattr(report, attribute)
                if table is None:
                    continue

                export_data = table.copy()
                numeric_columns = export_data.select_dtypes(include=[np.number]).columns
                export_data[numeric_columns] = export_data[numeric_columns].round(
                    self.config.csv_precision
                )

                filepath = os.path.join(
                    self.config.output_dir, self.config.tables_dir,
                    f"{stem}_{self.export_timestamp}.csv"
                )
                export_data.to_csv(filepath, index=False)
                exported[stem] = filepath

            # Counts matrix keeps its index as the row labels
            counts_path = os.path.join(
                self.config.output_dir, self.config.tables_dir,
                f"co_missingness_counts_{self.export_timestamp}.csv"
            )
            report.co_missing_counts.to_csv(counts_path, index_label='variable')
            exported['co_missingness_counts'] = counts_path

            logging.info(f"Exported {len(exported)} tables to "
                         f"{os.path.join(self.config.output_dir, self.config.tables_dir)}")
            return exported

        except Exception as e:
            logging.error(f"Error exporting tables: {e}")
            raise

    def export_figures(self, figures: Dict[str, go.Figure]) -> Dict[str, str]:
        """Export interactive figures as standalone HTML files"""
        exported = {}

        try:
            for name, fig in figures.items():
                filepath = os.path.join(
                    self.config.output_dir, self.config.figures_dir,
                    f"{name}_{self.export_timestamp}.html"
                )
                fig.write_html(filepath, include_plotlyjs='cdn')
                exported[name] = filepath
                logging.info(f"Exported {name} figure to: {filepath}")
            return exported

        except Exception as e:
            logging.error(f"Error exporting figures: {e}")
            raise

    def create_missingness_report(self,
                                  report: MissingnessReport,
                                  validation_summary: Optional[Dict[str, Any]] = None,
                                  configuration: Optional[Dict[str, Any]] = None) -> str:
        """
        Create the markdown missingness report.

        Args:
            report: Analysis report
            validation_summary: Output of DatasetValidator.get_validation_summary_for_export
            configuration: Configuration used for the run

        Returns:
            Path to the markdown file
        """
        try:
            filepath = os.path.join(
                self.config.output_dir, self.config.docs_dir,
                f"missingness_report_{self.export_timestamp}.md"
            )
            content = self._generate_report_content(report, validation_summary, configuration)

            with open(filepath, 'w', encoding='utf-8') as f:
                f.write(content)

            logging.info(f"Created missingness report: {filepath}")
            return filepath

        except Exception as e:
            logging.error(f"Error creating missingness report: {e}")
            raise

    @staticmethod
    def _table_block(table: Optional[pd.DataFrame], float_format: str = '{:.1f}') -> str:
        if table is None or len(table) == 0:
            return "_No rows._\n"
        text = table.to_string(index=False, float_format=float_format.format)
        return f"```\n{text}\n```\n"

    def _generate_report_content(self,
                                 report: MissingnessReport,
                                 validation_summary: Optional[Dict[str, Any]],
                                 configuration: Optional[Dict[str, Any]]) -> str:
        validation_summary = validation_summary or {}
        analysis_config = (configuration or {}).get('analysis', {})

        lines = [
            "# Weather Dataset Missingness Report",
            "",
            f"**Generated:** {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}  ",
            f"**Version:** {self.export_timestamp}",
            "",
            "## Dataset",
            "",
            f"- Rows: {validation_summary.get('n_rows', 'unknown')}",
            f"- Target variables analysed: {', '.join(report.target_columns)}",
        ]

        missing_targets = validation_summary.get('target_columns_missing') or []
        if missing_targets:
            lines.append(f"- Target variables not found: {', '.join(missing_targets)}")

        completeness = validation_summary.get('target_completeness_percentage') or {}
        for col, pct in completeness.items():
            lines.append(f"- {col}: {pct}% complete")

        lines += [
            "",
            "## Co-missingness",
            "",
            "Percentage of rows where `var2` is missing given that `var1` is missing. "
            "Undefined values mean `var1` is never missing.",
            "",
            self._table_block(report.co_missing_stats),
            "## Missing Pattern Combinations",
            "",
            "`True` marks a missing value.",
            "",
            self._table_block(report.missing_patterns),
            "## Missing Values per Row",
            "",
            self._table_block(report.missing_per_case),
            "## Missingness by Location",
            "",
            self._table_block(report.top_location_missingness),
            "## Sunshine Missingness on Rainy vs. Dry Days",
            "",
        ]

        if 'rainy_threshold_mm' in analysis_config:
            lines += [
                f"Rainy days are days with rainfall above {analysis_config['rainy_threshold_mm']} mm.",
                "",
            ]
        lines.append(self._table_block(report.rainfall_missingness))

        if report.skipped_sections:
            lines += ["## Skipped Sections", ""]
            for section, reason in report.skipped_sections.items():
                lines.append(f"- **{section}**: {reason}")
            lines.append("")

        lines += [
            "## Limitations",
            "",
            "- Statistics are descriptive only; no missingness mechanism is inferred.",
            "- Months without observations are absent from the trend, not interpolated.",
            "- The rainy/dry threshold is a fixed domain choice.",
            "",
        ]

        return "\n".join(lines)


class ExportSystem:
    """
    Coordinates all exports for one analysis run.
    """

    def __init__(self, config: Optional[ExportConfig] = None,
                 visualization: Optional[VisualizationSystem] = None):
        self.config = config or ExportConfig()
        self.file_exporter = StandardizedFileExporter(self.config)
        self.visualization = visualization or VisualizationSystem()

        logging.info("Export system initialized")

    def export_all_outputs(self,
                           report: MissingnessReport,
                           figures: Optional[Dict[str, go.Figure]] = None,
                           validation_summary: Optional[Dict[str, Any]] = None,
                           configuration: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Export tables, figures, report and manifest.

        Args:
            report: Analysis report
            figures: Interactive figures by name
            validation_summary: Dataset validation summary
            configuration: Configuration used for the run

        Returns:
            Dictionary with paths to all exported files
        """
        try:
            export_results: Dict[str, Any] = {
                'tables': {},
                'html_figures': {},
                'png_figures': {},
                'report': '',
                'export_timestamp': self.file_exporter.export_timestamp
            }

            logging.info("Starting export process...")

            if self.config.export_tables:
                export_results['tables'] = self.file_exporter.export_tables(report)

            if self.config.export_figures:
                export_results['html_figures'] = self.file_exporter.export_figures(figures or {})
                export_results['png_figures'] = self.visualization.save_static_snapshots(
                    report, os.path.join(self.config.output_dir, self.config.figures_dir)
                )

            if self.config.export_report:
                export_results['report'] = self.file_exporter.create_missingness_report(
                    report, validation_summary, configuration
                )

            export_results['manifest'] = self._create_export_manifest(export_results)

            logging.info(f"All files exported to: {self.config.output_dir}")
            return export_results

        except Exception as e:
            logging.error(f"Error in export process: {e}")
            raise

    def _create_export_manifest(self, export_results: Dict[str, Any]) -> str:
        """Create manifest file listing all exported files"""
        manifest_filepath = os.path.join(
            self.config.output_dir,
            f"export_manifest_{self.file_exporter.export_timestamp}.json"
        )

        manifest_data = {
            'export_timestamp': export_results['export_timestamp'],
            'export_date': datetime.now().isoformat(),
            'files': export_results,
            'summary': {
                'total_tables': len(export_results.get('tables', {})),
                'total_html_figures': len(export_results.get('html_figures', {})),
                'total_png_figures': len(export_results.get('png_figures', {})),
                'report_created': bool(export_results.get('report'))
            }
        }

        with open(manifest_filepath, 'w', encoding='utf-8') as f:
            json.dump(manifest_data, f, indent=2, ensure_ascii=False)

        logging.info(f"Created export manifest: {manifest_filepath}")
        return manifest_filepath
