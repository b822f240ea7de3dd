"""Report generation."""

from .excel_generator import ExcelReportGenerator

__all__ = ["ExcelReportGenerator"]
