"""
Excel Report Generator

Builds a multi-sheet workbook: a branded summary dashboard, one sheet per
non-empty record section and, optionally, a chart data sheet with native
Excel charts.
"""

import logging
import os
from typing import Optional

from openpyxl import Workbook
from openpyxl.chart import BarChart, DoughnutChart, LineChart, PieChart, Reference
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter

from farm_exports.generators.base import GeneratedFile, GenerationResult, ReportGenerator
from farm_exports.generators.sections import (
    CURRENCY, DATE, INTEGER, NUMBER, PERCENT, SUMMABLE_KINDS, TableSection,
    entity_sections, insights, period_label, report_title, summary_rows,
)
from farm_exports.jobs.job_types import ExcelOptions
from farm_exports.reports.data_types import BundleBase, ChartSeries

logger = logging.getLogger(__name__)

NUMBER_FORMATS = {
    CURRENCY: '"$"#,##0.00',
    INTEGER: '#,##0',
    NUMBER: '#,##0.00',
    PERCENT: '0.00"%"',
    DATE: 'dd/mm/yyyy',
}

ALT_ROW_FILL = PatternFill(start_color="F5F5F5", end_color="F5F5F5", fill_type="solid")
TOTALS_FILL = PatternFill(start_color="E8F5E9", end_color="E8F5E9", fill_type="solid")
BORDER = Border(
    left=Side(style='thin'),
    right=Side(style='thin'),
    top=Side(style='thin'),
    bottom=Side(style='thin')
)

MAX_SHEET_TITLE = 31
CHART_CLASSES = {
    "bar": BarChart,
    "line": LineChart,
    "pie": PieChart,
    "doughnut": DoughnutChart,
}


def solid_fill(color: str) -> PatternFill:
    return PatternFill(start_color=color, end_color=color, fill_type="solid")


def sheet_title(title: str) -> str:
    cleaned = "".join(c for c in title if c not in '[]:*?/\\')
    return cleaned[:MAX_SHEET_TITLE] or "Sheet"


def auto_adjust_columns(ws, min_width: int = 10, max_width: int = 50):
    """Auto-adjust column widths based on content"""
    for column in ws.columns:
        max_length = 0
        column_letter = get_column_letter(column[0].column)
        for cell in column:
            if cell.value is not None:
                max_length = max(max_length, len(str(cell.value)))
        current = ws.column_dimensions[column_letter].width or 0
        ws.column_dimensions[column_letter].width = max(
            current, min(max(max_length + 2, min_width), max_width)
        )


class ExcelReportGenerator(ReportGenerator):
    format_label = "Excel"

    def apply_header_style(self, ws, row_num: int = 1):
        """Apply header styling to a row"""
        fill = solid_fill(self.branding.argb("primary"))
        for cell in ws[row_num]:
            if cell.value is None:
                continue
            cell.fill = fill
            cell.font = Font(color="FFFFFF", bold=True)
            cell.alignment = Alignment(horizontal='center', vertical='center')
            cell.border = BORDER

    # =========================================================================
    # SUMMARY
    # =========================================================================

    def _summary_sheet(self, wb: Workbook, bundle: BundleBase):
        ws = wb.active
        ws.title = "Summary"
        primary = self.branding.argb("primary")

        ws.merge_cells("A1:D1")
        ws["A1"] = self.branding.company_name
        ws["A1"].font = Font(bold=True, size=16, color="FFFFFF")
        ws["A1"].fill = solid_fill(primary)
        ws["A1"].alignment = Alignment(horizontal="center", vertical="center")
        ws.row_dimensions[1].height = 28

        ws.merge_cells("A2:D2")
        ws["A2"] = self.branding.tagline
        ws["A2"].font = Font(italic=True, color=self.branding.argb("text_light"))
        ws["A2"].alignment = Alignment(horizontal="center")

        ws["A4"] = report_title(bundle)
        ws["A4"].font = Font(bold=True, size=14, color=self.branding.argb("text"))
        ws["A5"] = "Generated"
        ws["B5"] = bundle.generated_at.strftime("%d/%m/%Y %H:%M")
        ws["A6"] = "Period"
        ws["B6"] = period_label(bundle)

        row = 8
        ws.cell(row=row, column=1, value="Metric")
        ws.cell(row=row, column=2, value="Value")
        self.apply_header_style(ws, row)

        for index, (label, value, kind) in enumerate(summary_rows(bundle)):
            row += 1
            label_cell = ws.cell(row=row, column=1, value=label)
            value_cell = ws.cell(row=row, column=2, value=value)
            if kind in NUMBER_FORMATS:
                value_cell.number_format = NUMBER_FORMATS[kind]
            for cell in (label_cell, value_cell):
                cell.border = BORDER
                if index % 2 == 1:
                    cell.fill = ALT_ROW_FILL

        notes = insights(bundle)
        if notes:
            row += 2
            ws.cell(row=row, column=1, value="Insights").font = Font(
                bold=True, color=self.branding.argb("secondary")
            )
            for note in notes:
                row += 1
                ws.cell(row=row, column=1, value=f"- {note}")

        ws.column_dimensions["A"].width = 32
        ws.column_dimensions["B"].width = 24

    # =========================================================================
    # DATA SHEETS
    # =========================================================================

    def _data_sheet(self, wb: Workbook, section: TableSection):
        ws = wb.create_sheet(sheet_title(section.title))
        ws.append([c.header for c in section.columns])
        self.apply_header_style(ws)

        for index, record in enumerate(section.rows):
            row = index + 2
            for col, column in enumerate(section.columns, start=1):
                cell = ws.cell(row=row, column=col, value=record.get(column.key))
                cell.border = BORDER
                if column.kind in NUMBER_FORMATS:
                    cell.number_format = NUMBER_FORMATS[column.kind]
                if index % 2 == 1:
                    cell.fill = ALT_ROW_FILL

        last_data_row = len(section.rows) + 1
        last_col = get_column_letter(len(section.columns))

        summable = [
            (col, column) for col, column in enumerate(section.columns, start=1)
            if column.kind in SUMMABLE_KINDS
        ]
        if summable and section.rows:
            totals_row = last_data_row + 1
            label_col = next(
                (col for col, column in enumerate(section.columns, start=1)
                 if column.kind not in SUMMABLE_KINDS),
                None,
            )
            if label_col is not None:
                ws.cell(row=totals_row, column=label_col, value="TOTAL")
            for col, column in summable:
                letter = get_column_letter(col)
                cell = ws.cell(
                    row=totals_row, column=col,
                    value=f"=SUM({letter}2:{letter}{last_data_row})",
                )
                cell.number_format = NUMBER_FORMATS[column.kind]
            for cell in ws[totals_row]:
                cell.font = Font(bold=True)
                cell.fill = TOTALS_FILL
                cell.border = BORDER

        ws.auto_filter.ref = f"A1:{last_col}{last_data_row}"
        ws.freeze_panes = "A2"
        for col, column in enumerate(section.columns, start=1):
            ws.column_dimensions[get_column_letter(col)].width = column.width
        auto_adjust_columns(ws)

    # =========================================================================
    # CHARTS
    # =========================================================================

    def _chart(self, ws, chart: ChartSeries, header_row: int, last_row: int, anchor: str):
        chart_class = CHART_CLASSES.get(chart.type, BarChart)
        excel_chart = chart_class()
        excel_chart.title = chart.title
        # Pie-like charts plot the first series only
        series_count = 1 if chart.type in ("pie", "doughnut") else len(chart.series)
        data = Reference(ws, min_col=2, max_col=1 + series_count, min_row=header_row, max_row=last_row)
        categories = Reference(ws, min_col=1, min_row=header_row + 1, max_row=last_row)
        excel_chart.add_data(data, titles_from_data=True)
        excel_chart.set_categories(categories)
        excel_chart.height = 7.5
        excel_chart.width = 15
        ws.add_chart(excel_chart, anchor)

    def _charts_sheet(self, wb: Workbook, bundle: BundleBase):
        ws = wb.create_sheet("Charts")
        row = 1
        for chart in bundle.charts:
            if not chart.labels or not chart.series:
                continue
            title_cell = ws.cell(row=row, column=1, value=chart.title)
            title_cell.font = Font(bold=True, size=12, color="FFFFFF")
            title_cell.fill = solid_fill(self.branding.argb("secondary"))

            header_row = row + 1
            ws.cell(row=header_row, column=1, value="Label")
            for col, dataset in enumerate(chart.series, start=2):
                ws.cell(row=header_row, column=col, value=dataset.label)
            self.apply_header_style(ws, header_row)

            for offset, label in enumerate(chart.labels, start=1):
                ws.cell(row=header_row + offset, column=1, value=label)
                for col, dataset in enumerate(chart.series, start=2):
                    value = dataset.data[offset - 1] if offset - 1 < len(dataset.data) else None
                    ws.cell(row=header_row + offset, column=col, value=value).number_format = '#,##0.00'

            last_row = header_row + len(chart.labels)
            chart_col = get_column_letter(len(chart.series) + 3)
            self._chart(ws, chart, header_row, last_row, f"{chart_col}{row}")
            # Leave room for the chart drawing (about 15 rows tall)
            row = max(last_row, row + 15) + 2
        auto_adjust_columns(ws)

    def _render(self, bundle: BundleBase, options: Optional[ExcelOptions], output_path: str) -> GenerationResult:
        options = options or ExcelOptions()
        wb = Workbook()

        self._summary_sheet(wb, bundle)
        sheets = 0
        for section in entity_sections(bundle):
            if section.is_empty:
                continue
            self._data_sheet(wb, section)
            sheets += 1

        if options.include_charts and bundle.charts:
            self._charts_sheet(wb, bundle)

        wb.save(output_path)
        size = os.path.getsize(output_path)
        logger.info(f"Workbook for {bundle.template_id} has {sheets} data sheet(s)")
        return GenerationResult(
            path=output_path,
            size_bytes=size,
            files=[GeneratedFile(output_path, size, report_title(bundle))],
        )
