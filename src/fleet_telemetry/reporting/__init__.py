"""
Reporting: CSV export, aggregate statistics and the HTML report.
"""

from .exporter import COLUMNS, ExportError, export_csv, read_export, record_to_row
from .html_report import render_html_report, write_html_report
from .summary import AggregateStats, CountEntry, HostSummary, format_summary, summarize, top_n

__all__ = [
    "COLUMNS",
    "AggregateStats",
    "CountEntry",
    "ExportError",
    "HostSummary",
    "export_csv",
    "format_summary",
    "read_export",
    "record_to_row",
    "render_html_report",
    "summarize",
    "top_n",
    "write_html_report",
]
