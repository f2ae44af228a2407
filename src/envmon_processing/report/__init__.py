"""
Structured processing reports and their Markdown preview.
"""

from .builder import Report, ReportSection, ReportTemplate, build_report, preview_report

__all__ = [
    "Report",
    "ReportSection",
    "ReportTemplate",
    "build_report",
    "preview_report",
]
