"""
Format generators: PDF (reportlab), Excel (openpyxl) and CSV, plus the
dispatcher that routes a bundle to one of them.
"""

from farm_exports.generators.base import (
    GeneratedFile,
    GenerationResult,
    ReportGenerator,
)

from farm_exports.generators.csv_generator import CSVReportGenerator
from farm_exports.generators.excel_generator import ExcelReportGenerator
from farm_exports.generators.pdf_generator import PDFReportGenerator

from farm_exports.generators.dispatcher import (
    GeneratorDispatcher,
    build_destination_path,
    parse_format_options,
)

__all__ = [
    "GeneratedFile",
    "GenerationResult",
    "ReportGenerator",
    "CSVReportGenerator",
    "ExcelReportGenerator",
    "PDFReportGenerator",
    "GeneratorDispatcher",
    "build_destination_path",
    "parse_format_options",
]
