"""
CSV Report Generator

Writes one CSV per non-empty data section of a report. A single section is
written straight to the requested path; several sections get an index file at
the requested path; no data at all yields a placeholder file.
"""

import csv
import datetime as dt
import logging
import os
from typing import Any, List, Optional

from farm_exports.generators.base import GeneratedFile, GenerationResult, ReportGenerator
from farm_exports.generators.sections import (
    TableSection, chart_section, entity_sections, period_label, report_title,
    summary_rows,
)
from farm_exports.jobs.job_types import CSVOptions
from farm_exports.reports.data_types import BundleBase

logger = logging.getLogger(__name__)

ENCODINGS = {
    "utf8": "utf-8",
    "latin1": "latin-1",
    "ascii": "ascii",
}

NO_DATA_MESSAGE = "No data available for export"


def csv_value(value: Any) -> Any:
    if value is None:
        return ""
    if isinstance(value, (dt.date, dt.datetime)):
        return value.isoformat()
    if isinstance(value, (list, tuple)):
        return "; ".join(str(v) for v in value)
    return value


class CSVReportGenerator(ReportGenerator):
    format_label = "CSV"

    def _open(self, path: str, options: CSVOptions):
        encoding = ENCODINGS.get(options.encoding, "utf-8")
        errors = "strict" if encoding == "utf-8" else "replace"
        return open(path, "w", newline="", encoding=encoding, errors=errors)

    def _write(self, path: str, header: List[str], rows: List[List[Any]], options: CSVOptions) -> int:
        with self._open(path, options) as f:
            w = csv.writer(f, delimiter=options.separator)
            if options.include_headers:
                w.writerow(header)
            for row in rows:
                w.writerow([csv_value(v) for v in row])
        return os.path.getsize(path)

    def _write_summary(self, path: str, bundle: BundleBase, options: CSVOptions) -> int:
        rows = [
            ["Report", report_title(bundle)],
            ["Generated", bundle.generated_at.strftime("%Y-%m-%d %H:%M:%S")],
            ["Period", period_label(bundle)],
            ["", ""],
            ["EXECUTIVE SUMMARY", ""],
        ]
        rows.extend([label, value] for label, value, _ in summary_rows(bundle))
        return self._write(path, ["Metric", "Value"], rows, options)

    def _write_section(self, path: str, section: TableSection, options: CSVOptions) -> int:
        header = [c.header for c in section.columns]
        rows = [section.values(row) for row in section.rows]
        return self._write(path, header, rows, options)

    def _write_index(self, path: str, bundle: BundleBase, files: List[GeneratedFile], options: CSVOptions) -> int:
        rows = [
            ["GENERATED FILES INDEX", "", ""],
            ["", "", ""],
            ["Report:", report_title(bundle), ""],
            ["Generated:", bundle.generated_at.strftime("%Y-%m-%d %H:%M:%S"), ""],
            ["", "", ""],
            ["FILES:", "", ""],
        ]
        rows.extend([f.file_name, f.description, f"{f.size_bytes} bytes"] for f in files)
        return self._write(path, ["File", "Description", "Size"], rows, options)

    def _write_placeholder(self, path: str, bundle: BundleBase, options: CSVOptions) -> int:
        rows = [
            ["Report", report_title(bundle)],
            ["Generated", bundle.generated_at.strftime("%Y-%m-%d %H:%M:%S")],
            ["Status", NO_DATA_MESSAGE],
        ]
        return self._write(path, ["Field", "Value"], rows, options)

    def _render(self, bundle: BundleBase, options: Optional[CSVOptions], output_path: str) -> GenerationResult:
        options = options or CSVOptions()
        base_dir = os.path.dirname(output_path) or "."
        base_name = os.path.splitext(os.path.basename(output_path))[0]

        def section_path(key: str) -> str:
            return os.path.join(base_dir, f"{base_name}_{key}.csv")

        generated: List[GeneratedFile] = []
        try:
            if bundle.summary_items():
                path = section_path("summary")
                size = self._write_summary(path, bundle, options)
                generated.append(GeneratedFile(path, size, "Executive summary"))

            for section in entity_sections(bundle) + [chart_section(bundle)]:
                if section.is_empty:
                    continue
                path = section_path(section.key)
                size = self._write_section(path, section, options)
                generated.append(GeneratedFile(path, size, section.description))

            return self._finish(bundle, generated, output_path, options)
        except Exception:
            for f in generated:
                if os.path.exists(f.path):
                    os.remove(f.path)
            raise

    def _finish(
        self,
        bundle: BundleBase,
        generated: List[GeneratedFile],
        output_path: str,
        options: CSVOptions,
    ) -> GenerationResult:
        if len(generated) == 1:
            only = generated[0]
            os.replace(only.path, output_path)
            only.path = output_path
            return GenerationResult(path=output_path, size_bytes=only.size_bytes, files=[only])

        if generated:
            index_size = self._write_index(output_path, bundle, generated, options)
            index = GeneratedFile(output_path, index_size, "Index of generated files")
            files = [index] + generated
            return GenerationResult(
                path=output_path,
                size_bytes=sum(f.size_bytes for f in files),
                files=files,
            )

        size = self._write_placeholder(output_path, bundle, options)
        logger.info(f"No data to export for {bundle.template_id}, wrote placeholder")
        return GenerationResult(
            path=output_path,
            size_bytes=size,
            files=[GeneratedFile(output_path, size, NO_DATA_MESSAGE)],
        )
