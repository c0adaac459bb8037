"""
Generator Dispatcher

Picks the format strategy for a job, prepares the destination and validates
every file the strategy produced.
"""

import logging
import os
from typing import Any, Dict, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from farm_exports.config import BrandingConfig
from farm_exports.files.validator import FileValidator
from farm_exports.generators.base import GenerationResult, ReportGenerator
from farm_exports.generators.csv_generator import CSVReportGenerator
from farm_exports.generators.excel_generator import ExcelReportGenerator
from farm_exports.generators.pdf_generator import PDFReportGenerator
from farm_exports.jobs.errors import FileSizeError, ValidationError
from farm_exports.jobs.job_types import (
    FILE_EXTENSIONS, MIME_TYPES, SUPPORTED_ENCODINGS, SUPPORTED_ORIENTATIONS,
    SUPPORTED_PAGE_SIZES, SUPPORTED_SEPARATORS, CSVOptions, ExcelOptions,
    ExportFormat, PDFOptions,
)
from farm_exports.jobs.utils import safe_filename

logger = logging.getLogger(__name__)

FormatOptions = Union[PDFOptions, ExcelOptions, CSVOptions]

OPTION_MODELS = {
    ExportFormat.PDF: PDFOptions,
    ExportFormat.EXCEL: ExcelOptions,
    ExportFormat.CSV: CSVOptions,
}


def coerce_format(format: Any) -> ExportFormat:
    try:
        return ExportFormat(format)
    except ValueError:
        raise ValidationError(f"Unsupported format: {format}")


def parse_format_options(format: Any, options: Optional[Dict[str, Any]]) -> FormatOptions:
    """
    Validate raw format options for ``format`` and return the typed model.
    Raises ValidationError describing every invalid option.
    """
    export_format = coerce_format(format)
    try:
        parsed = OPTION_MODELS[export_format].model_validate(options or {})
    except PydanticValidationError as e:
        fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in e.errors())
        raise ValidationError(f"Invalid format options: {fields}", cause=e)

    errors = []
    if isinstance(parsed, PDFOptions):
        if parsed.page_size not in SUPPORTED_PAGE_SIZES:
            errors.append(f"pageSize must be one of: {', '.join(SUPPORTED_PAGE_SIZES)}")
        if parsed.orientation not in SUPPORTED_ORIENTATIONS:
            errors.append(f"orientation must be one of: {', '.join(SUPPORTED_ORIENTATIONS)}")
    elif isinstance(parsed, CSVOptions):
        if parsed.encoding not in SUPPORTED_ENCODINGS:
            errors.append(f"encoding must be one of: {', '.join(SUPPORTED_ENCODINGS)}")
        if parsed.separator not in SUPPORTED_SEPARATORS:
            errors.append("separator must be one of: comma, semicolon, tab")
    if parsed.file_name is not None and not safe_filename(os.path.splitext(parsed.file_name)[0]):
        errors.append("fileName cannot be empty")

    if errors:
        raise ValidationError("; ".join(errors))
    return parsed


def build_destination_path(
    output_dir: str,
    template_id: str,
    job_id: str,
    format: ExportFormat,
    file_name: Optional[str] = None,
) -> str:
    """``{output_dir}/{template_id}_{job_id}.{ext}`` unless an explicit file name is given."""
    extension = FILE_EXTENSIONS[format]
    if file_name:
        base_name = safe_filename(os.path.splitext(os.path.basename(file_name))[0])
    else:
        base_name = f"{template_id}_{job_id}"
    return os.path.join(output_dir, f"{base_name}.{extension}")


class GeneratorDispatcher:
    """Routes a bundle to the PDF, Excel or CSV strategy."""

    def __init__(
        self,
        branding: Optional[BrandingConfig] = None,
        validator: Optional[FileValidator] = None,
        generators: Optional[Dict[ExportFormat, ReportGenerator]] = None,
    ):
        self.branding = branding or BrandingConfig()
        self.validator = validator or FileValidator()
        self.generators: Dict[ExportFormat, ReportGenerator] = generators or {
            ExportFormat.PDF: PDFReportGenerator(self.branding),
            ExportFormat.EXCEL: ExcelReportGenerator(self.branding),
            ExportFormat.CSV: CSVReportGenerator(self.branding),
        }

    def generate(
        self,
        bundle,
        format: Any,
        format_options: Optional[Dict[str, Any]],
        destination_path: str,
    ) -> GenerationResult:
        if bundle is None:
            raise ValidationError("Report data is required")
        export_format = coerce_format(format)
        generator = self.generators.get(export_format)
        if generator is None:
            raise ValidationError(f"Unsupported format: {export_format.value}")
        options = parse_format_options(export_format, format_options)

        directory = os.path.dirname(destination_path)
        if directory and not os.path.isdir(directory):
            os.makedirs(directory, exist_ok=True)
            logger.info(f"Created directory: {directory}")

        logger.info(f"Starting file generation: {export_format.value} -> {destination_path}")
        result = generator.generate(bundle, options, destination_path)

        try:
            for generated in result.files or []:
                generated.size_bytes = self.validator.check(generated.path)
                generated.mime_type = self._mime_for(generated.path, export_format)
            if not result.files:
                result.size_bytes = self.validator.check(result.path)
        except FileSizeError:
            self.discard(result)
            raise

        result.size_bytes = sum(f.size_bytes for f in result.files) or result.size_bytes
        result.mime_type = MIME_TYPES[export_format]
        logger.info(
            f"File generation completed: {result.file_name} "
            f"({result.size_bytes} bytes, {len(result.files)} file(s))"
        )
        return result

    @staticmethod
    def _mime_for(path: str, export_format: ExportFormat) -> str:
        extension = os.path.splitext(path)[1].lstrip(".").lower()
        if extension == FILE_EXTENSIONS[export_format]:
            return MIME_TYPES[export_format]
        return "application/octet-stream"

    def discard(self, result: Optional[GenerationResult]):
        """Delete every file of a result that will not be kept."""
        if result is None:
            return
        paths = {f.path for f in result.files} | {result.path}
        for path in paths:
            self.validator.delete_file(path)

    def close(self):
        for export_format, generator in self.generators.items():
            try:
                generator.close()
            except Exception as e:
                logger.error(f"Error closing {export_format.value} generator: {e}")
