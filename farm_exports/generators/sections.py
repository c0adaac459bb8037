"""
Table Sections

Flattens a report bundle into titled tables with typed columns. All three
generators render from these sections, so a column added here shows up in the
PDF, the workbook and the CSV bundle alike.
"""

import datetime as dt
from dataclasses import dataclass, field
from typing import Any, Dict, List, Tuple

from farm_exports.reports.data_types import (
    BundleBase, FinancialBundle, GenericBundle, HealthBundle, InventoryBundle,
    ReproductiveBundle,
)

# Column kinds drive number formats and totals
TEXT = "text"
DATE = "date"
CURRENCY = "currency"
INTEGER = "integer"
NUMBER = "number"
PERCENT = "percent"

NUMERIC_KINDS = (CURRENCY, INTEGER, NUMBER, PERCENT)
SUMMABLE_KINDS = (CURRENCY, INTEGER, NUMBER)


@dataclass
class Column:
    key: str
    header: str
    kind: str = TEXT
    width: int = 15


@dataclass
class TableSection:
    key: str
    title: str
    description: str
    columns: List[Column]
    rows: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.rows

    def values(self, row: Dict[str, Any]) -> List[Any]:
        return [row.get(c.key) for c in self.columns]


def humanize(key: str) -> str:
    return key.replace("_", " ").strip().title()


def summary_kind(key: str, value: Any) -> str:
    """Guess a KPI's display kind from its name."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return TEXT
    if key.endswith("_rate") or key.endswith("_margin"):
        return PERCENT
    if any(word in key for word in ("income", "expenses", "profit", "cost", "amount")):
        return CURRENCY
    if key.endswith("_count") or key.startswith("total_") or key.startswith("active_") \
            or key.startswith("expected_"):
        return INTEGER if isinstance(value, int) else NUMBER
    if isinstance(value, bool):
        return TEXT
    if isinstance(value, int):
        return INTEGER
    if isinstance(value, float):
        return NUMBER
    return TEXT


def summary_rows(bundle: BundleBase) -> List[Tuple[str, Any, str]]:
    """(label, value, kind) for every KPI in the bundle summary."""
    rows = []
    for key, value in bundle.summary_items().items():
        kind = summary_kind(key, value)
        if isinstance(value, (list, tuple)):
            value = "; ".join(str(v) for v in value) if value else "None"
        rows.append((humanize(key), value, kind))
    return rows


def format_value(value: Any, kind: str) -> str:
    """Human readable rendering used by the PDF tables."""
    if value is None or value == "":
        return ""
    if kind in NUMERIC_KINDS:
        # Columns are typed from their first value; later rows may not match
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return str(value)
        if kind == CURRENCY:
            return f"${value:,.2f}"
        if kind == PERCENT:
            return f"{value:.2f}%"
        if kind == INTEGER:
            return f"{int(value):,}"
        return f"{value:,.2f}"
    if kind == DATE and isinstance(value, (dt.date, dt.datetime)):
        return value.strftime("%d/%m/%Y")
    return str(value)


def _section(key: str, title: str, description: str, columns: List[Column], records) -> TableSection:
    return TableSection(
        key=key,
        title=title,
        description=description,
        columns=columns,
        rows=[r.model_dump() if hasattr(r, "model_dump") else dict(r) for r in records],
    )


def _financial_sections(bundle: FinancialBundle) -> List[TableSection]:
    return [
        _section("sales", "Sales", "Sales in the reporting period", [
            Column("date", "Date", DATE, 12),
            Column("customer", "Customer", TEXT, 25),
            Column("quantity", "Quantity", INTEGER, 10),
            Column("unit_price", "Unit Price", CURRENCY, 14),
            Column("total", "Total", CURRENCY, 14),
            Column("notes", "Notes", TEXT, 30),
        ], bundle.sales),
        _section("expenses", "Expenses", "Expenses in the reporting period", [
            Column("date", "Date", DATE, 12),
            Column("concept", "Concept", TEXT, 25),
            Column("category", "Category", TEXT, 18),
            Column("amount", "Amount", CURRENCY, 14),
            Column("description", "Description", TEXT, 30),
        ], bundle.expenses),
        _section("trends", "Monthly Trends", "Income, expenses and profit per month", [
            Column("month", "Month", TEXT, 12),
            Column("income", "Income", CURRENCY, 14),
            Column("expenses", "Expenses", CURRENCY, 14),
            Column("profit", "Profit", CURRENCY, 14),
        ], bundle.trends),
    ]


def _inventory_sections(bundle: InventoryBundle) -> List[TableSection]:
    return [
        _section("animals", "Animals", "Active animals by shed and cage", [
            Column("code", "Code", TEXT, 12),
            Column("sex", "Sex", TEXT, 8),
            Column("life_stage", "Life Stage", TEXT, 15),
            Column("shed", "Shed", TEXT, 15),
            Column("cage", "Cage", TEXT, 8),
            Column("birth_date", "Birth Date", DATE, 12),
            Column("weight", "Weight (kg)", NUMBER, 12),
            Column("status", "Status", TEXT, 10),
        ], bundle.animals),
        _section("sheds", "Sheds", "Shed capacity and occupancy", [
            Column("name", "Shed", TEXT, 18),
            Column("capacity", "Capacity", INTEGER, 10),
            Column("occupancy", "Occupancy", INTEGER, 10),
            Column("occupancy_rate", "Occupancy %", PERCENT, 12),
            Column("cages_total", "Cages", INTEGER, 8),
            Column("cages_occupied", "Occupied Cages", INTEGER, 14),
        ], bundle.sheds),
        _section("distribution", "Life Stage Distribution", "Animals per life stage", [
            Column("life_stage", "Life Stage", TEXT, 18),
            Column("count", "Count", INTEGER, 10),
            Column("percentage", "Percentage", PERCENT, 12),
        ], bundle.distribution),
        _section("alerts", "Alerts", "Capacity warnings", [
            Column("type", "Type", TEXT, 10),
            Column("message", "Message", TEXT, 35),
            Column("details", "Details", TEXT, 35),
        ], bundle.alerts),
    ]


def _reproductive_sections(bundle: ReproductiveBundle) -> List[TableSection]:
    return [
        _section("pregnancies", "Pregnancies", "Services registered in the period", [
            Column("mother_code", "Mother", TEXT, 12),
            Column("father_code", "Father", TEXT, 12),
            Column("service_date", "Service Date", DATE, 12),
            Column("expected_birth_date", "Expected Birth", DATE, 14),
            Column("gestation_days", "Gestation Days", INTEGER, 14),
            Column("status", "Status", TEXT, 10),
        ], bundle.pregnancies),
        _section("litters", "Litters", "Litters born in the period", [
            Column("birth_date", "Birth Date", DATE, 12),
            Column("mother_code", "Mother", TEXT, 12),
            Column("father_code", "Father", TEXT, 12),
            Column("total_offspring", "Offspring", INTEGER, 10),
            Column("alive", "Alive", INTEGER, 8),
            Column("dead", "Dead", INTEGER, 8),
        ], bundle.litters),
        _section("projections", "Birth Projections", "Expected births for the next months", [
            Column("month", "Month", TEXT, 12),
            Column("expected_births", "Expected Births", INTEGER, 15),
            Column("expected_offspring", "Expected Offspring", INTEGER, 17),
        ], bundle.projections),
    ]


def _health_sections(bundle: HealthBundle) -> List[TableSection]:
    return [
        _section("treatments", "Treatments", "Health events in the period", [
            Column("date", "Date", DATE, 12),
            Column("animal_code", "Animal", TEXT, 12),
            Column("type", "Type", TEXT, 15),
            Column("description", "Description", TEXT, 30),
            Column("treatment", "Treatment", TEXT, 25),
            Column("cost", "Cost", CURRENCY, 12),
            Column("veterinarian", "Veterinarian", TEXT, 18),
        ], bundle.treatments),
    ]


def _generic_sections(bundle: GenericBundle) -> List[TableSection]:
    keys: List[str] = []
    kinds: Dict[str, str] = {}
    for row in bundle.details:
        for key, value in row.items():
            if key not in keys:
                keys.append(key)
            if value is not None and key not in kinds:
                if isinstance(value, bool) or not isinstance(value, (int, float)):
                    kinds[key] = TEXT
                else:
                    kinds[key] = INTEGER if isinstance(value, int) else NUMBER
    columns = [Column(k, humanize(k), kinds.get(k, TEXT), 18) for k in keys]
    return [_section("details", "Details", "Report detail rows", columns, bundle.details)]


def entity_sections(bundle: BundleBase) -> List[TableSection]:
    """Every record list of the bundle as a table, empty ones included."""
    if isinstance(bundle, FinancialBundle):
        return _financial_sections(bundle)
    if isinstance(bundle, InventoryBundle):
        return _inventory_sections(bundle)
    if isinstance(bundle, ReproductiveBundle):
        return _reproductive_sections(bundle)
    if isinstance(bundle, HealthBundle):
        return _health_sections(bundle)
    if isinstance(bundle, GenericBundle):
        return _generic_sections(bundle)
    raise TypeError(f"Unsupported report bundle: {type(bundle).__name__}")


def summary_section(bundle: BundleBase) -> TableSection:
    return TableSection(
        key="summary",
        title="Summary",
        description="Key metrics",
        columns=[Column("metric", "Metric", TEXT, 30), Column("value", "Value", TEXT, 20)],
        rows=[{"metric": label, "value": value} for label, value, _ in summary_rows(bundle)],
    )


def chart_section(bundle: BundleBase) -> TableSection:
    """Chart series flattened to one row per plotted point."""
    rows = []
    for chart in bundle.charts:
        for dataset in chart.series:
            for label, value in zip(chart.labels, dataset.data):
                rows.append({
                    "chart": chart.title,
                    "type": chart.type,
                    "series": dataset.label,
                    "label": label,
                    "value": value,
                })
    return TableSection(
        key="charts",
        title="Chart Data",
        description="Data series behind the report charts",
        columns=[
            Column("chart", "Chart", TEXT, 30),
            Column("type", "Type", TEXT, 10),
            Column("series", "Series", TEXT, 18),
            Column("label", "Label", TEXT, 18),
            Column("value", "Value", NUMBER, 14),
        ],
        rows=rows,
    )


def report_title(bundle: BundleBase) -> str:
    titles = {
        "financial": "Financial Report",
        "inventory": "Inventory Report",
        "reproductive": "Reproduction Report",
        "health": "Health Report",
    }
    return titles.get(bundle.template_id, f"{humanize(bundle.template_id)} Report")


def period_label(bundle: BundleBase) -> str:
    if bundle.period_from and bundle.period_to:
        return f"{bundle.period_from:%d/%m/%Y} - {bundle.period_to:%d/%m/%Y}"
    return "All records"


def insights(bundle: BundleBase) -> List[str]:
    """Short plain-language observations shown under the summary."""
    notes = []
    if isinstance(bundle, FinancialBundle):
        s = bundle.summary
        if s.sales_count == 0 and s.expenses_count == 0:
            notes.append("No sales or expenses were recorded in this period.")
        elif s.net_profit >= 0:
            notes.append(f"The period closed with a profit of ${s.net_profit:,.2f} ({s.profit_margin:.2f}% margin).")
        else:
            notes.append(f"The period closed with a loss of ${-s.net_profit:,.2f}.")
        if bundle.expenses:
            top = max(bundle.expenses, key=lambda e: e.amount)
            notes.append(f"Largest single expense: {top.concept} (${top.amount:,.2f}).")
    elif isinstance(bundle, InventoryBundle):
        s = bundle.summary
        notes.append(f"{s.total_animals} animals housed in {s.total_sheds} sheds ({s.occupancy_rate:.2f}% occupancy).")
        if bundle.alerts:
            notes.append(f"{len(bundle.alerts)} shed(s) need attention.")
    elif isinstance(bundle, ReproductiveBundle):
        s = bundle.summary
        notes.append(f"{s.active_pregnancies} active pregnancies, {s.expected_births} births expected in the next months.")
        if s.total_litters:
            notes.append(f"Average litter size: {s.average_litter_size:.2f}.")
    elif isinstance(bundle, HealthBundle):
        s = bundle.summary
        notes.append(f"{s.total_treatments} treatments costing ${s.total_cost:,.2f}.")
        if s.common_issues:
            notes.append(f"Most common issues: {', '.join(s.common_issues)}.")
    return notes
