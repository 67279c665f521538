"""
Visualization System for the Weather Missingness Analysis

This module renders the two figures of the missingness analysis, each as an
interactive Plotly chart and as a static matplotlib/seaborn snapshot.

Key Components:
- Faceted monthly missingness chart (one panel per target variable)
- Rainfall density chart split by sunshine presence
- Static PNG rendering for reports
- Chart validation helpers
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional, Tuple

import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import plotly.express as px
import plotly.graph_objects as go
import seaborn as sns
from plotly.subplots import make_subplots
from scipy import stats

from missingness_engine import MissingnessReport


@dataclass
class VisualizationConfig:
    """Configuration for visualization system"""
    # Color settings
    density_colormap: str = "viridis"
    status_colors: Tuple[str, str] = ('#440154', '#fde725')  # Missing, Present

    # Display settings
    line_width: float = 2.0
    density_alpha: float = 0.6
    density_points: int = 200

    # Export settings
    chart_width: int = 900
    panel_height: int = 220
    chart_height: int = 600
    png_dpi: int = 150


class MissingnessChartGenerator:
    """
    Generates the temporal trend and rainfall density charts.
    """

    def __init__(self, config: Optional[VisualizationConfig] = None):
        """
        Initialize chart generator.

        Args:
            config: Visualization configuration
        """
        self.config = config or VisualizationConfig()

        logging.info("Missingness chart generator initialized")

    def create_temporal_trend_chart(self, temporal_trend: pd.DataFrame) -> go.Figure:
        """
        Create faceted line chart of monthly missingness, one panel per variable.

        Args:
            temporal_trend: Long table with month, variable, pct_missing

        Returns:
            Plotly figure object
        """
        if temporal_trend is None or len(temporal_trend) == 0:
            logging.warning("No temporal trend data to plot")
            return go.Figure()

        try:
            variables = sorted(temporal_trend['variable'].unique())
            colors = px.colors.qualitative.Plotly

            fig = make_subplots(
                rows=len(variables), cols=1,
                shared_xaxes=True,
                subplot_titles=variables,
                vertical_spacing=0.06
            )

            for row, variable in enumerate(variables, start=1):
                series = temporal_trend[temporal_trend['variable'] == variable].sort_values('month')
                fig.add_trace(go.Scatter(
                    x=series['month'],
                    y=series['pct_missing'],
                    mode='lines',
                    name=variable,
                    line=dict(width=self.config.line_width, color=colors[(row - 1) % len(colors)]),
                    hovertemplate='%{x|%b %Y}: %{y:.1f}%<extra>' + variable + '</extra>'
                ), row=row, col=1)
                fig.update_yaxes(range=[0, 100], title_text='Missingness (%)', row=row, col=1)

            fig.update_xaxes(title_text='Year', row=len(variables), col=1)
            fig.update_layout(
                title=('Timeline of Systematic Missingness<br>'
                       '<sup>Notice the structural breaks in data collection</sup>'),
                width=self.config.chart_width,
                height=max(self.config.chart_height, self.config.panel_height * len(variables)),
                template='plotly_white',
                showlegend=False
            )

            logging.info(f"Created temporal trend chart with {len(variables)} panels")
            return fig

        except Exception as e:
            logging.error(f"Error creating temporal trend chart: {e}")
            raise

    def _density_curve(self, values: np.ndarray, grid: np.ndarray) -> Optional[np.ndarray]:
        # gaussian_kde needs at least two distinct values
        if len(values) < 2 or np.unique(values).size < 2:
            return None
        return stats.gaussian_kde(values)(grid)

    def create_rainfall_density_chart(self, density_data: pd.DataFrame,
                                      variable_label: str = 'Sunshine') -> go.Figure:
        """
        Create density chart of rainfall amounts for missing vs. present values.

        Args:
            density_data: Table with rainfall and status ('Missing' / 'Present')
            variable_label: Display name of the variable whose status splits the data

        Returns:
            Plotly figure object
        """
        if density_data is None or len(density_data) == 0:
            logging.warning("No rainfall density data to plot")
            return go.Figure()

        try:
            grid = np.linspace(
                density_data['rainfall'].min(), density_data['rainfall'].max(),
                self.config.density_points
            )
            fig = go.Figure()

            for status, color in zip(['Missing', 'Present'], self.config.status_colors):
                values = density_data.loc[density_data['status'] == status, 'rainfall'].to_numpy()
                density = self._density_curve(values, grid)
                if density is None:
                    logging.warning(f"Not enough distinct rainfall values for '{status}' density")
                    continue

                fig.add_trace(go.Scatter(
                    x=grid,
                    y=density,
                    mode='lines',
                    fill='tozeroy',
                    name=status,
                    opacity=self.config.density_alpha,
                    line=dict(color=color)
                ))

            fig.update_layout(
                title=(f'Does {variable_label} go missing on rainy days?<br>'
                       f'<sup>Density of rainfall amounts for Missing vs. Present '
                       f'{variable_label.lower()} data</sup>'),
                xaxis_title='Rainfall (mm)',
                yaxis_title='Density',
                legend_title_text=f'{variable_label} Status',
                width=self.config.chart_width,
                height=self.config.chart_height,
                template='plotly_white'
            )

            logging.info(f"Created rainfall density chart from {len(density_data):,} rows")
            return fig

        except Exception as e:
            logging.error(f"Error creating rainfall density chart: {e}")
            raise

    def save_temporal_trend_png(self, temporal_trend: pd.DataFrame,
                                file_path: str) -> Optional[str]:
        """Render the faceted temporal trend chart to a PNG file"""
        if temporal_trend is None or len(temporal_trend) == 0:
            return None

        variables = sorted(temporal_trend['variable'].unique())
        sns.set_theme(style='whitegrid')
        fig, axes = plt.subplots(len(variables), 1, figsize=(10, 2.5 * len(variables)),
                                 sharex=True, squeeze=False)
        palette = sns.color_palette(n_colors=len(variables))

        for ax, variable, color in zip(axes[:, 0], variables, palette):
            series = temporal_trend[temporal_trend['variable'] == variable]
            sns.lineplot(data=series, x='month', y='pct_missing', ax=ax,
                         color=color, linewidth=self.config.line_width)
            ax.set_title(variable)
            ax.set_ylim(0, 100)
            ax.set_ylabel('Missingness (%)')

        axes[-1, 0].set_xlabel('Year')
        fig.suptitle('Timeline of Systematic Missingness')
        fig.tight_layout()

        Path(file_path).parent.mkdir(parents=True, exist_ok=True)
        fig.savefig(file_path, dpi=self.config.png_dpi, bbox_inches='tight')
        plt.close(fig)
        return file_path

    def save_rainfall_density_png(self, density_data: pd.DataFrame, file_path: str,
                                  variable_label: str = 'Sunshine') -> Optional[str]:
        """Render the rainfall density chart to a PNG file"""
        if density_data is None or len(density_data) == 0:
            return None

        sns.set_theme(style='whitegrid')
        fig, ax = plt.subplots(figsize=(9, 6))
        sns.kdeplot(
            data=density_data, x='rainfall', hue='status',
            hue_order=['Missing', 'Present'],
            fill=True, alpha=self.config.density_alpha, common_norm=False,
            palette=self.config.density_colormap, warn_singular=False, ax=ax
        )
        ax.set_title(f'Does {variable_label} go missing on rainy days?')
        ax.set_xlabel('Rainfall (mm)')
        ax.set_ylabel('Density')
        fig.tight_layout()

        Path(file_path).parent.mkdir(parents=True, exist_ok=True)
        fig.savefig(file_path, dpi=self.config.png_dpi, bbox_inches='tight')
        plt.close(fig)
        return file_path


class VisualizationValidation:
    """Checks applied to generated charts"""

    @staticmethod
    def validate_chart_generation(fig: go.Figure) -> Dict[str, bool]:
        results = {
            'is_figure': isinstance(fig, go.Figure),
            'has_traces': False,
            'has_title': False,
            'has_axis_labels': False
        }
        if not results['is_figure']:
            return results

        layout = fig.to_dict().get('layout', {})
        results['has_traces'] = len(fig.data) > 0
        results['has_title'] = bool(layout.get('title', {}).get('text'))
        results['has_axis_labels'] = any(
            isinstance(value, dict) and bool(value.get('title', {}).get('text'))
            for key, value in layout.items()
            if key.startswith(('xaxis', 'yaxis'))
        )
        return results


class VisualizationSystem:
    """
    Builds every figure supported by a missingness report.
    """

    def __init__(self, config: Optional[VisualizationConfig] = None,
                 variable_label: str = 'Sunshine'):
        self.config = config or VisualizationConfig()
        self.charts = MissingnessChartGenerator(self.config)
        self.variable_label = variable_label

        logging.info("Visualization system initialized")

    def generate_all_visualizations(self, report: MissingnessReport) -> Dict[str, go.Figure]:
        """
        Create interactive figures for the sections present in the report.

        Args:
            report: Result of MissingnessAnalysisEngine.run_full_analysis

        Returns:
            Dictionary of figure name to Plotly figure
        """
        figures: Dict[str, go.Figure] = {}

        if report.temporal_trend is not None and len(report.temporal_trend) > 0:
            figures['temporal_trend'] = self.charts.create_temporal_trend_chart(
                report.temporal_trend
            )

        if report.rainfall_density_data is not None and len(report.rainfall_density_data) > 0:
            figures['rainfall_density'] = self.charts.create_rainfall_density_chart(
                report.rainfall_density_data, self.variable_label
            )

        logging.info(f"Generated {len(figures)} figures: {', '.join(figures) or 'none'}")
        return figures

    def save_static_snapshots(self, report: MissingnessReport,
                              output_dir: str) -> Dict[str, str]:
        """Write PNG versions of the figures to output_dir"""
        saved: Dict[str, str] = {}
        output_path = Path(output_dir)

        trend_png = self.charts.save_temporal_trend_png(
            report.temporal_trend, str(output_path / 'temporal_trend.png')
        )
        if trend_png:
            saved['temporal_trend'] = trend_png

        density_png = self.charts.save_rainfall_density_png(
            report.rainfall_density_data, str(output_path / 'rainfall_density.png'),
            self.variable_label
        )
        if density_png:
            saved['rainfall_density'] = density_png

        return saved
