"""
Run Logging for the Weather Missingness Analysis

Every pipeline run gets one AnalysisLogger. It writes human-readable lines to
the console and a run log file, and keeps a structured copy of the run in
memory so it can be exported next to the analysis results.

Key Features:
- Console and file handlers on a dedicated, non-propagating logger
- Structured LogEntry records with free-form context
- Step timing and memory tracking (psutil) via performance_monitor
- Input dataset and configuration tracking
- Reproducibility report (environment, package versions, inputs, steps)
"""

import copy
import json
import logging
import platform
import sys
import time
import traceback
from collections import Counter
from contextlib import contextmanager
from dataclasses import asdict, dataclass, field
from datetime import datetime
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path
from typing import Any, Dict, List, Optional

import pandas as pd
import psutil


LOGGER_NAME = "weather_missingness"
CONSOLE_FORMAT = '%(asctime)s | %(levelname)-8s | %(message)s'
FILE_FORMAT = '%(asctime)s | %(levelname)-8s | %(name)s | %(module)s.%(funcName)s | %(message)s'
REPORTED_PACKAGES = (
    'numpy', 'pandas', 'scipy', 'matplotlib', 'seaborn', 'plotly', 'PyYAML', 'psutil'
)


@dataclass
class LogEntry:
    """One structured log record"""
    timestamp: datetime
    level: str
    component: str
    message: str
    step: Optional[str] = None
    rss_mb: Optional[float] = None
    context: Dict[str, Any] = field(default_factory=dict)
    traceback: Optional[str] = None


@dataclass
class StepTiming:
    """Wall time and memory for one pipeline step"""
    step: str
    started_at: datetime
    elapsed_ms: float
    rss_before_mb: float
    rss_after_mb: float
    n_rows: Optional[int] = None
    cpu_percent: Optional[float] = None

    @property
    def rss_delta_mb(self) -> float:
        return self.rss_after_mb - self.rss_before_mb


@dataclass
class InputRecord:
    """A dataset the run read (or failed to read)"""
    name: str
    location: str
    kind: str
    loaded_at: datetime
    n_rows: Optional[int] = None
    n_columns: Optional[int] = None
    date_span: Optional[str] = None
    error: Optional[str] = None


class AnalysisLogger:
    """Console, file and structured logging for one analysis run"""

    def __init__(self,
                 log_dir: str = "output/logs",
                 log_level: str = "INFO",
                 enable_performance: bool = True,
                 enable_file_log: bool = True):
        """
        Args:
            log_dir: Directory for the run log and exported records
            log_level: Console level (DEBUG, INFO, WARNING, ERROR); the file gets everything
            enable_performance: Track step timings and memory usage
            enable_file_log: Write missingness_<run_id>.log in log_dir
        """
        self.log_dir = Path(log_dir)
        self.log_dir.mkdir(parents=True, exist_ok=True)

        self.log_level = logging.getLevelName(log_level.upper())
        self.enable_performance = enable_performance

        self.run_id = datetime.now().strftime("%Y%m%d_%H%M%S")
        self.started_at = datetime.now()
        self.log_file = self.log_dir / f"missingness_{self.run_id}.log" if enable_file_log else None

        self.entries: List[LogEntry] = []
        self.step_timings: List[StepTiming] = []
        self.inputs: List[InputRecord] = []
        self.configurations: Dict[str, Dict[str, Any]] = {}
        self._process = psutil.Process()

        self.logger = logging.getLogger(LOGGER_NAME)
        self._attach_handlers()

        self.info(f"Run {self.run_id} started", component="logging_system")

    def _attach_handlers(self):
        self.logger.setLevel(logging.DEBUG)
        self.logger.propagate = False
        self._detach_handlers()

        handlers = [(logging.StreamHandler(sys.stdout), self.log_level, CONSOLE_FORMAT, '%H:%M:%S')]
        if self.log_file is not None:
            handlers.append((logging.FileHandler(self.log_file, encoding='utf-8'),
                             logging.DEBUG, FILE_FORMAT, '%Y-%m-%d %H:%M:%S'))

        for handler, level, fmt, datefmt in handlers:
            handler.setLevel(level)
            handler.setFormatter(logging.Formatter(fmt, datefmt=datefmt))
            self.logger.addHandler(handler)

    def _detach_handlers(self):
        for handler in list(self.logger.handlers):
            handler.close()
            self.logger.removeHandler(handler)

    def _rss_mb(self) -> float:
        return self._process.memory_info().rss / 2 ** 20

    # ------------------------------------------------------------------
    # Log records
    # ------------------------------------------------------------------

    def log(self, level: int, message: str, component: str = "analysis",
            step: Optional[str] = None, traceback_text: Optional[str] = None,
            **context) -> LogEntry:
        """Record a structured entry and emit it through the standard logger"""
        entry = LogEntry(
            timestamp=datetime.now(),
            level=logging.getLevelName(level),
            component=component,
            message=message,
            step=step,
            rss_mb=self._rss_mb() if self.enable_performance else None,
            context=context,
            traceback=traceback_text
        )
        self.entries.append(entry)
        self.logger.log(level, message, exc_info=traceback_text is not None)
        return entry

    def debug(self, message: str, **kwargs) -> LogEntry:
        return self.log(logging.DEBUG, message, **kwargs)

    def info(self, message: str, **kwargs) -> LogEntry:
        return self.log(logging.INFO, message, **kwargs)

    def warning(self, message: str, **kwargs) -> LogEntry:
        return self.log(logging.WARNING, message, **kwargs)

    def error(self, message: str, **kwargs) -> LogEntry:
        return self.log(logging.ERROR, message, **kwargs)

    def exception(self, message: str, **kwargs) -> LogEntry:
        """Log an error together with the traceback being handled"""
        return self.log(logging.ERROR, message, traceback_text=traceback.format_exc(), **kwargs)

    # ------------------------------------------------------------------
    # Run metadata
    # ------------------------------------------------------------------

    def log_configuration(self, config: Dict[str, Any], source: str = "config"):
        """Keep a copy of the configuration the run was started with"""
        self.configurations[source] = copy.deepcopy(config)
        self.info(f"Configuration loaded from {source}", component="configuration", config=config)

        targets = config.get('data', {}).get('target_columns')
        if targets:
            self.info(f"Target columns: {', '.join(targets)}", component="configuration")

    def record_input(self,
                     name: str,
                     location: str,
                     kind: str,
                     n_rows: Optional[int] = None,
                     n_columns: Optional[int] = None,
                     date_span: Optional[str] = None,
                     error: Optional[str] = None) -> InputRecord:
        """Track a dataset the run read, or tried to read"""
        record = InputRecord(
            name=name,
            location=location,
            kind=kind,
            loaded_at=datetime.now(),
            n_rows=n_rows,
            n_columns=n_columns,
            date_span=date_span,
            error=error
        )
        self.inputs.append(record)

        if error:
            self.warning(f"Input {name} ({kind}) unavailable: {error}",
                         component="data_ingestion", location=location)
        else:
            shape = f": {n_rows:,} rows x {n_columns} columns" if n_rows is not None else ""
            self.info(f"Input {name} ({kind}) loaded{shape}",
                      component="data_ingestion", location=location)
        return record

    @contextmanager
    def performance_monitor(self, step: str, n_rows: Optional[int] = None):
        """Time a pipeline step and record its memory footprint"""
        if not self.enable_performance:
            yield
            return

        started_at = datetime.now()
        rss_before = self._rss_mb()
        self._process.cpu_percent()
        clock = time.perf_counter()
        self.debug(f"Step {step} started", component="performance", step=step)

        try:
            yield
        finally:
            timing = StepTiming(
                step=step,
                started_at=started_at,
                elapsed_ms=(time.perf_counter() - clock) * 1000,
                rss_before_mb=rss_before,
                rss_after_mb=self._rss_mb(),
                n_rows=n_rows,
                cpu_percent=self._process.cpu_percent()
            )
            self.step_timings.append(timing)
            self.info(f"Step {step} finished in {timing.elapsed_ms:.1f}ms "
                      f"({timing.rss_delta_mb:+.1f}MB)",
                      component="performance", step=step,
                      elapsed_ms=timing.elapsed_ms, n_rows=n_rows)

    def get_performance_summary(self) -> pd.DataFrame:
        """Step timings as a table, one row per step"""
        if not self.step_timings:
            return pd.DataFrame()

        summary = pd.DataFrame([asdict(timing) for timing in self.step_timings])
        summary['rss_delta_mb'] = summary['rss_after_mb'] - summary['rss_before_mb']
        return summary

    # ------------------------------------------------------------------
    # Reports and export
    # ------------------------------------------------------------------

    @staticmethod
    def _package_versions() -> Dict[str, str]:
        versions = {}
        for package in REPORTED_PACKAGES:
            try:
                versions[package] = version(package)
            except PackageNotFoundError:
                versions[package] = "not_installed"
        return versions

    def generate_reproducibility_report(self) -> Dict[str, Any]:
        """Everything needed to rerun this analysis and compare the results"""
        now = datetime.now()
        return {
            'run_id': self.run_id,
            'generated_at': now.isoformat(),
            'elapsed_minutes': (now - self.started_at).total_seconds() / 60,
            'environment': {
                'python': platform.python_version(),
                'platform': platform.platform(),
                'machine': platform.machine(),
                'hostname': platform.node(),
            },
            'packages': self._package_versions(),
            'configuration': self.configurations,
            'inputs': [asdict(record) for record in self.inputs],
            'steps': {
                'count': len(self.step_timings),
                'total_elapsed_ms': sum(t.elapsed_ms for t in self.step_timings),
                'peak_rss_mb': max(
                    (max(t.rss_before_mb, t.rss_after_mb) for t in self.step_timings), default=0.0
                ),
                'by_step': [
                    {'step': t.step, 'elapsed_ms': t.elapsed_ms,
                     'rss_delta_mb': t.rss_delta_mb, 'n_rows': t.n_rows}
                    for t in self.step_timings
                ],
            },
            'log_counts': dict(Counter(entry.level for entry in self.entries)),
        }

    @staticmethod
    def _write_json(path: Path, payload: Dict[str, Any]) -> Path:
        with open(path, 'w', encoding='utf-8') as f:
            json.dump(payload, f, indent=2, default=str)
        return path

    def _write_structured_log(self) -> Path:
        return self._write_json(self.log_dir / f"structured_logs_{self.run_id}.json", {
            'run_id': self.run_id,
            'started_at': self.started_at.isoformat(),
            'exported_at': datetime.now().isoformat(),
            'entries': [asdict(entry) for entry in self.entries],
            'steps': [asdict(timing) for timing in self.step_timings],
            'inputs': [asdict(record) for record in self.inputs],
            'configuration': self.configurations,
        })

    def _write_step_timings(self) -> Optional[Path]:
        if not self.step_timings:
            return None
        path = self.log_dir / f"performance_metrics_{self.run_id}.csv"
        self.get_performance_summary().to_csv(path, index=False)
        return path

    def _write_reproducibility_report(self) -> Path:
        return self._write_json(self.log_dir / f"reproducibility_report_{self.run_id}.json",
                                self.generate_reproducibility_report())

    def export_logs(self, format_type: str = "all") -> Dict[str, str]:
        """
        Write the structured run records to log_dir.

        Args:
            format_type: 'json' (log entries), 'csv' (step timings),
                'report' (reproducibility report) or 'all'

        Returns:
            Dictionary of format to written file path
        """
        writers = {
            'json': self._write_structured_log,
            'csv': self._write_step_timings,
            'report': self._write_reproducibility_report,
        }
        if format_type != "all" and format_type not in writers:
            raise ValueError(f"Unknown log export format: {format_type}")

        selected = list(writers) if format_type == "all" else [format_type]
        output_files = {}
        for name in selected:
            path = writers[name]()
            if path is not None:
                output_files[name] = str(path)
        return output_files

    def close(self) -> Dict[str, str]:
        """Export the run records and release the handlers"""
        self.info(f"Run {self.run_id} finished", component="logging_system")
        output_files = self.export_logs("all")
        self.debug(f"Run records written: {', '.join(output_files.values())}",
                   component="logging_system")
        self._detach_handlers()
        return output_files


_active_logger: Optional[AnalysisLogger] = None


def get_logger() -> AnalysisLogger:
    """Return the process-wide logger, creating one with defaults on first use"""
    global _active_logger
    if _active_logger is None:
        _active_logger = AnalysisLogger()
    return _active_logger


def initialize_logging(log_dir: str = "output/logs",
                       log_level: str = "INFO",
                       enable_performance: bool = True) -> AnalysisLogger:
    """Replace the process-wide logger"""
    global _active_logger
    _active_logger = AnalysisLogger(log_dir=log_dir, log_level=log_level,
                                    enable_performance=enable_performance)
    return _active_logger
