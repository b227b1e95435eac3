"""Output generation for schedules (text report, PDF)."""

from supsched.output.pdf_generator import PDFGenerator
from supsched.output.report_generator import ReportGenerator

__all__ = [
    "PDFGenerator",
    "ReportGenerator",
]
