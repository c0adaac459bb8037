"""
PDF Report Generator

Renders a paginated report with reportlab: branded header, executive summary
KPI cards, insights, one table per record section, an optional chart section
and a footer with page numbers.

The style sheet (and an optional custom TTF font) live in a rendering engine
that is started on first use and kept for subsequent jobs until close().
"""

import logging
import os
import threading
from typing import Any, List, Optional
from xml.sax.saxutils import escape

from reportlab.graphics.charts.barcharts import VerticalBarChart
from reportlab.graphics.charts.doughnut import Doughnut
from reportlab.graphics.charts.linecharts import HorizontalLineChart
from reportlab.graphics.charts.piecharts import Pie
from reportlab.graphics.shapes import Drawing
from reportlab.lib import colors
from reportlab.lib.enums import TA_CENTER
from reportlab.lib.pagesizes import A3, A4, LEGAL, LETTER, landscape, portrait
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.pdfbase import pdfmetrics
from reportlab.pdfbase.ttfonts import TTFont
from reportlab.platypus import (
    CondPageBreak, KeepTogether, Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle
)

from farm_exports.config import BrandingConfig
from farm_exports.generators.base import GeneratedFile, GenerationResult, ReportGenerator
from farm_exports.generators.sections import (
    TableSection, entity_sections, format_value, insights, period_label,
    report_title, summary_rows,
)
from farm_exports.jobs.job_types import PDFOptions
from farm_exports.reports.data_types import BundleBase, ChartSeries

logger = logging.getLogger(__name__)

PAGE_SIZES = {
    "A4": A4,
    "A3": A3,
    "Letter": LETTER,
    "Legal": LEGAL,
}

MARGIN_TOP = 20 * mm
MARGIN_BOTTOM = 20 * mm
MARGIN_SIDE = 15 * mm

# Detail tables beyond this are truncated with a note
MAX_TABLE_ROWS = 1000
KPI_CARDS_PER_ROW = 3
CHART_HEIGHT = 180

CHART_PALETTE = [
    "#36A2EB", "#FF6384", "#FFCD56", "#4BC0C0", "#9966FF", "#FF9F40", "#C7C7C7", "#5366FF",
]


class _ReportEngine:
    """Style sheet and font registration shared across renders."""

    def __init__(self, branding: BrandingConfig):
        self.branding = branding
        self.font_name = branding.font_name
        self.bold_font_name = branding.bold_font_name

        if branding.font_path:
            if not os.path.exists(branding.font_path):
                raise RuntimeError(f"Failed to start rendering engine: font not found at {branding.font_path}")
            pdfmetrics.registerFont(TTFont("BrandFont", branding.font_path))
            self.font_name = "BrandFont"
            self.bold_font_name = "BrandFont"
            logger.info(f"Registered custom report font from {branding.font_path}")

        text = colors.HexColor(branding.color("text"))
        primary = colors.HexColor(branding.color("primary"))
        styles = getSampleStyleSheet()
        styles.add(ParagraphStyle(
            "BrandTitle", parent=styles["Title"], fontName=self.bold_font_name,
            fontSize=20, textColor=colors.white, alignment=TA_CENTER,
        ))
        styles.add(ParagraphStyle(
            "BrandTagline", parent=styles["Normal"], fontName=self.font_name,
            fontSize=10, textColor=colors.white, alignment=TA_CENTER,
        ))
        styles.add(ParagraphStyle(
            "ReportTitle", parent=styles["Heading1"], fontName=self.bold_font_name,
            textColor=text, spaceBefore=6,
        ))
        styles.add(ParagraphStyle(
            "Section", parent=styles["Heading2"], fontName=self.bold_font_name,
            textColor=primary, spaceBefore=12, spaceAfter=6,
        ))
        styles.add(ParagraphStyle(
            "Meta", parent=styles["Normal"], fontName=self.font_name,
            fontSize=9, textColor=colors.HexColor(branding.color("text_light")),
        ))
        styles.add(ParagraphStyle(
            "Body", parent=styles["Normal"], fontName=self.font_name, fontSize=10, textColor=text,
        ))
        styles.add(ParagraphStyle(
            "Cell", parent=styles["Normal"], fontName=self.font_name, fontSize=8, leading=10,
        ))
        styles.add(ParagraphStyle(
            "HeaderCell", parent=styles["Cell"], fontName=self.bold_font_name, textColor=colors.white,
        ))
        styles.add(ParagraphStyle(
            "KpiLabel", parent=styles["Normal"], fontName=self.font_name, fontSize=8,
            textColor=colors.HexColor(branding.color("text_light")), alignment=TA_CENTER,
        ))
        styles.add(ParagraphStyle(
            "KpiValue", parent=styles["Normal"], fontName=self.bold_font_name, fontSize=14,
            leading=18, textColor=primary, alignment=TA_CENTER,
        ))
        self.styles = styles


class PDFReportGenerator(ReportGenerator):
    format_label = "PDF"

    def __init__(self, branding: Optional[BrandingConfig] = None):
        super().__init__(branding)
        self._engine: Optional[_ReportEngine] = None
        self._engine_lock = threading.Lock()

    @property
    def engine_started(self) -> bool:
        return self._engine is not None

    def _get_engine(self) -> _ReportEngine:
        with self._engine_lock:
            if self._engine is None:
                logger.info("Starting PDF rendering engine")
                self._engine = _ReportEngine(self.branding)
            return self._engine

    def close(self):
        with self._engine_lock:
            if self._engine is not None:
                logger.info("PDF rendering engine released")
            self._engine = None

    # =========================================================================
    # STORY BUILDERS
    # =========================================================================

    def _header(self, engine: _ReportEngine, bundle: BundleBase, width: float) -> List[Any]:
        styles = engine.styles
        banner = Table(
            [
                [Paragraph(escape(self.branding.company_name), styles["BrandTitle"])],
                [Paragraph(escape(self.branding.tagline), styles["BrandTagline"])],
            ],
            colWidths=[width],
        )
        banner.setStyle(TableStyle([
            ("BACKGROUND", (0, 0), (-1, -1), colors.HexColor(self.branding.color("primary"))),
            ("TOPPADDING", (0, 0), (-1, 0), 10),
            ("BOTTOMPADDING", (0, -1), (-1, -1), 10),
        ]))
        return [
            banner,
            Spacer(1, 4 * mm),
            Paragraph(escape(report_title(bundle)), styles["ReportTitle"]),
            Paragraph(
                f"Period: {escape(period_label(bundle))} &nbsp;&nbsp; "
                f"Generated: {bundle.generated_at.strftime('%d/%m/%Y %H:%M')}",
                styles["Meta"],
            ),
            Spacer(1, 4 * mm),
        ]

    def _kpi_cards(self, engine: _ReportEngine, bundle: BundleBase, width: float) -> List[Any]:
        rows = summary_rows(bundle)
        if not rows:
            return []
        styles = engine.styles
        cards = [
            [Paragraph(escape(label), styles["KpiLabel"]),
             Paragraph(escape(format_value(value, kind)), styles["KpiValue"])]
            for label, value, kind in rows
        ]
        grid = []
        for start in range(0, len(cards), KPI_CARDS_PER_ROW):
            chunk = cards[start:start + KPI_CARDS_PER_ROW]
            chunk += [""] * (KPI_CARDS_PER_ROW - len(chunk))
            grid.append(chunk)

        card_width = width / KPI_CARDS_PER_ROW
        table = Table(grid, colWidths=[card_width] * KPI_CARDS_PER_ROW)
        table.setStyle(TableStyle([
            ("BACKGROUND", (0, 0), (-1, -1), colors.HexColor("#F5F5F5")),
            ("BOX", (0, 0), (-1, -1), 0.5, colors.HexColor(self.branding.color("neutral"))),
            ("INNERGRID", (0, 0), (-1, -1), 0.5, colors.white),
            ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
            ("TOPPADDING", (0, 0), (-1, -1), 8),
            ("BOTTOMPADDING", (0, 0), (-1, -1), 8),
        ]))
        return [Paragraph("Executive Summary", styles["Section"]), table]

    def _insights(self, engine: _ReportEngine, bundle: BundleBase) -> List[Any]:
        notes = insights(bundle)
        if not notes:
            return []
        story: List[Any] = [Paragraph("Insights", engine.styles["Section"])]
        for note in notes:
            story.append(Paragraph(f"- {escape(note)}", engine.styles["Body"]))
        return story

    def _section_table(self, engine: _ReportEngine, section: TableSection, width: float) -> List[Any]:
        styles = engine.styles
        rows = section.rows[:MAX_TABLE_ROWS]
        header = [Paragraph(escape(c.header), styles["HeaderCell"]) for c in section.columns]
        data = [header]
        for record in rows:
            data.append([
                Paragraph(escape(format_value(record.get(c.key), c.kind)), styles["Cell"])
                for c in section.columns
            ])

        total_weight = sum(c.width for c in section.columns) or 1
        col_widths = [width * c.width / total_weight for c in section.columns]
        table = Table(data, colWidths=col_widths, repeatRows=1)
        table.setStyle(TableStyle([
            ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor(self.branding.color("primary"))),
            ("TEXTCOLOR", (0, 0), (-1, 0), colors.white),
            ("ROWBACKGROUNDS", (0, 1), (-1, -1), [colors.white, colors.HexColor("#F5F5F5")]),
            ("GRID", (0, 0), (-1, -1), 0.25, colors.grey),
            ("VALIGN", (0, 0), (-1, -1), "TOP"),
        ]))
        story: List[Any] = [
            CondPageBreak(40 * mm),
            Paragraph(escape(section.title), styles["Section"]),
            Paragraph(escape(section.description), styles["Meta"]),
            Spacer(1, 2 * mm),
            table,
        ]
        if len(section.rows) > MAX_TABLE_ROWS:
            story.append(Paragraph(
                f"Showing the first {MAX_TABLE_ROWS} of {len(section.rows)} rows. "
                "Export to Excel or CSV for the full data set.",
                styles["Meta"],
            ))
        return story

    def _chart_drawing(self, chart: ChartSeries, width: float) -> Optional[Drawing]:
        if not chart.labels or not chart.series:
            return None
        drawing = Drawing(width, CHART_HEIGHT + 20)
        palette = [colors.HexColor(c) for c in CHART_PALETTE]

        if chart.type in ("pie", "doughnut"):
            pairs = [
                (label, value) for label, value in zip(chart.labels, chart.series[0].data)
                if value and value > 0
            ]
            if not pairs:
                return None
            pie = Doughnut() if chart.type == "doughnut" else Pie()
            pie.x = width / 2 - CHART_HEIGHT / 2
            pie.y = 10
            pie.width = CHART_HEIGHT - 20
            pie.height = CHART_HEIGHT - 20
            pie.data = [value for _, value in pairs]
            pie.labels = [str(label) for label, _ in pairs]
            for i in range(len(pairs)):
                pie.slices[i].fillColor = palette[i % len(palette)]
            drawing.add(pie)
            return drawing

        plot = HorizontalLineChart() if chart.type == "line" else VerticalBarChart()
        plot.x = 40
        plot.y = 40
        plot.width = width - 60
        plot.height = CHART_HEIGHT - 40
        size = len(chart.labels)
        plot.data = [
            tuple((list(ds.data) + [0] * size)[:size]) for ds in chart.series
        ]
        plot.categoryAxis.categoryNames = [str(label) for label in chart.labels]
        plot.categoryAxis.labels.fontSize = 7
        if size > 6:
            plot.categoryAxis.labels.angle = 30
            plot.categoryAxis.labels.boxAnchor = "ne"
        plot.valueAxis.labels.fontSize = 7
        for i in range(len(chart.series)):
            if chart.type == "line":
                plot.lines[i].strokeColor = palette[i % len(palette)]
                plot.lines[i].strokeWidth = 2
            else:
                plot.bars[i].fillColor = palette[i % len(palette)]
        drawing.add(plot)
        return drawing

    def _charts(self, engine: _ReportEngine, bundle: BundleBase, width: float) -> List[Any]:
        story: List[Any] = []
        for chart in bundle.charts:
            drawing = self._chart_drawing(chart, width)
            if drawing is None:
                continue
            legend = ", ".join(ds.label for ds in chart.series)
            story.append(KeepTogether([
                Paragraph(escape(chart.title), engine.styles["Body"]),
                Paragraph(escape(legend), engine.styles["Meta"]),
                drawing,
                Spacer(1, 4 * mm),
            ]))
        if story:
            story.insert(0, Paragraph("Charts", engine.styles["Section"]))
        return story

    def _footer(self, canvas, doc):
        canvas.saveState()
        canvas.setFont(self.branding.font_name, 8)
        canvas.setFillColor(colors.HexColor(self.branding.color("text_light")))
        page_width = doc.pagesize[0]
        footer = self.branding.company_name
        if self.branding.website:
            footer = f"{footer} - {self.branding.website}"
        canvas.drawString(MARGIN_SIDE, MARGIN_BOTTOM / 2, footer)
        canvas.drawRightString(page_width - MARGIN_SIDE, MARGIN_BOTTOM / 2, f"Page {doc.page}")
        canvas.restoreState()

    def _render(self, bundle: BundleBase, options: Optional[PDFOptions], output_path: str) -> GenerationResult:
        options = options or PDFOptions()
        engine = self._get_engine()

        page_size = PAGE_SIZES.get(options.page_size, A4)
        page_size = landscape(page_size) if options.orientation == "landscape" else portrait(page_size)

        doc = SimpleDocTemplate(
            output_path,
            pagesize=page_size,
            topMargin=MARGIN_TOP,
            bottomMargin=MARGIN_BOTTOM,
            leftMargin=MARGIN_SIDE,
            rightMargin=MARGIN_SIDE,
            title=report_title(bundle),
            author=self.branding.company_name,
        )
        width = doc.width

        story: List[Any] = []
        story += self._header(engine, bundle, width)
        story += self._kpi_cards(engine, bundle, width)
        story += self._insights(engine, bundle)
        sections = [s for s in entity_sections(bundle) if not s.is_empty]
        for section in sections:
            story += self._section_table(engine, section, width)
        if not sections:
            story.append(Spacer(1, 6 * mm))
            story.append(Paragraph("No records were found for this report.", engine.styles["Body"]))
        if options.include_charts:
            story += self._charts(engine, bundle, width)

        doc.build(story, onFirstPage=self._footer, onLaterPages=self._footer)
        size = os.path.getsize(output_path)
        return GenerationResult(
            path=output_path,
            size_bytes=size,
            files=[GeneratedFile(output_path, size, report_title(bundle))],
        )
