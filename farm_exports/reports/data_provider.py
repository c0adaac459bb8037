"""
Report Data Provider

Turns a template id plus report parameters into a typed data bundle. The
export worker only depends on ReportDataProvider.fetch(); FarmRecordsDataProvider
is the reference implementation that aggregates a FarmRecordsRepository.
"""

import datetime as dt
import logging
from abc import ABC, abstractmethod
from collections import Counter
from typing import Dict, List, Optional, Tuple

import pandas as pd

from farm_exports.jobs.errors import ValidationError
from farm_exports.jobs.job_types import ReportParameters
from farm_exports.reports.data_types import (
    AlertRecord, AnimalRecord, ChartDataset, ChartSeries, DistributionRecord,
    ExpenseRecord, FinancialBundle, FinancialSummary, GenericBundle, HealthBundle,
    HealthSummary, InventoryBundle, InventorySummary, LitterRecord, MonthlyTrend,
    PregnancyRecord, ProjectionRecord, ReportDataBundle, ReproductiveBundle,
    ReproductiveSummary, SaleRecord, ShedRecord, TreatmentRecord,
)
from farm_exports.reports.records import FarmRecordsRepository

logger = logging.getLogger(__name__)

DEFAULT_PERIOD_DAYS = 30
MAX_TREND_MONTHS = 12
GESTATION_DAYS = 68
PROJECTION_MONTHS = 3
SHED_ALERT_THRESHOLD = 90.0
INACTIVE_ANIMAL_STATUSES = ("sold", "dead")


def _parse_date(value: str) -> dt.date:
    try:
        return dt.datetime.fromisoformat(value.strip().replace("Z", "+00:00")).date()
    except (AttributeError, ValueError):
        raise ValidationError("Invalid date format")


def validate_parameters(parameters: ReportParameters):
    """Reject malformed dates and inverted ranges."""
    date_range = parameters.date_range
    if date_range is None:
        return

    from_date = _parse_date(date_range.from_) if date_range.from_ else None
    to_date = _parse_date(date_range.to) if date_range.to else None
    if from_date and to_date and from_date > to_date:
        raise ValidationError("Start date cannot be after end date")


def resolve_period(parameters: ReportParameters, today: Optional[dt.date] = None) -> Tuple[dt.date, dt.date]:
    """Reporting period, defaulting to the last 30 days."""
    today = today or dt.date.today()
    default_from = today - dt.timedelta(days=DEFAULT_PERIOD_DAYS)
    date_range = parameters.date_range
    if date_range is None:
        return default_from, today
    period_from = _parse_date(date_range.from_) if date_range.from_ else default_from
    period_to = _parse_date(date_range.to) if date_range.to else today
    return period_from, period_to


def _round(value: float) -> float:
    return round(float(value), 2)


def _percent(part: float, whole: float) -> float:
    return _round(part / whole * 100) if whole else 0.0


class ReportDataProvider(ABC):
    """One fetch method per known template; anything else gets an empty bundle."""

    def fetch(self, template_id: str, parameters: ReportParameters) -> ReportDataBundle:
        handlers = {
            "financial": self.fetch_financial,
            "inventory": self.fetch_inventory,
            "reproductive": self.fetch_reproductive,
            "health": self.fetch_health,
        }
        handler = handlers.get(template_id)
        if handler is None:
            logger.warning(f"No report data for template '{template_id}', using empty bundle")
            return GenericBundle(template_id=template_id, parameters=parameters)
        return handler(parameters)

    @abstractmethod
    def fetch_financial(self, parameters: ReportParameters) -> FinancialBundle: ...

    @abstractmethod
    def fetch_inventory(self, parameters: ReportParameters) -> InventoryBundle: ...

    @abstractmethod
    def fetch_reproductive(self, parameters: ReportParameters) -> ReproductiveBundle: ...

    @abstractmethod
    def fetch_health(self, parameters: ReportParameters) -> HealthBundle: ...


# ============================================================================
# Reference implementation
# ============================================================================

def monthly_trends(
    sales: List[SaleRecord],
    expenses: List[ExpenseRecord],
    period_from: dt.date,
    period_to: dt.date,
) -> List[MonthlyTrend]:
    """Income, expenses and profit per calendar month, at most 12 months."""
    if not sales and not expenses:
        return []

    frames = []
    if sales:
        frames.append(pd.DataFrame({
            "date": [s.date for s in sales],
            "income": [s.total for s in sales],
            "expenses": 0.0,
        }))
    if expenses:
        frames.append(pd.DataFrame({
            "date": [e.date for e in expenses],
            "income": 0.0,
            "expenses": [e.amount for e in expenses],
        }))
    df = pd.concat(frames, ignore_index=True)
    df["month"] = pd.to_datetime(df["date"]).dt.to_period("M")
    grouped = df.groupby("month")[["income", "expenses"]].sum()

    months = pd.period_range(
        start=pd.Timestamp(period_from), end=pd.Timestamp(period_to), freq="M"
    )[:MAX_TREND_MONTHS]
    grouped = grouped.reindex(grouped.index.union(months), fill_value=0.0)
    grouped = grouped.sort_index().tail(MAX_TREND_MONTHS)

    return [
        MonthlyTrend(
            month=period.strftime("%b %Y"),
            income=_round(row["income"]),
            expenses=_round(row["expenses"]),
            profit=_round(row["income"] - row["expenses"]),
        )
        for period, row in grouped.iterrows()
    ]


def financial_charts(
    sales: List[SaleRecord],
    expenses: List[ExpenseRecord],
    trends: List[MonthlyTrend],
) -> List[ChartSeries]:
    charts: List[ChartSeries] = []
    if not sales and not expenses:
        return charts

    if trends:
        labels = [t.month for t in trends]
        charts.append(ChartSeries(
            type="bar",
            title="Monthly Income vs Expenses",
            labels=labels,
            series=[
                ChartDataset(label="Income", data=[t.income for t in trends]),
                ChartDataset(label="Expenses", data=[t.expenses for t in trends]),
            ],
        ))
        charts.append(ChartSeries(
            type="line",
            title="Profit Trend",
            labels=labels,
            series=[ChartDataset(label="Net Profit", data=[t.profit for t in trends])],
        ))

    if expenses:
        by_category = pd.Series(
            [e.amount for e in expenses], index=[e.category for e in expenses]
        ).groupby(level=0, sort=False).sum()
        charts.append(ChartSeries(
            type="pie",
            title="Expenses by Category",
            labels=[str(c) for c in by_category.index],
            series=[ChartDataset(label="Amount", data=[_round(v) for v in by_category.values])],
        ))

    if sales:
        top_customers = pd.Series(
            [s.total for s in sales], index=[s.customer for s in sales]
        ).groupby(level=0).sum().sort_values(ascending=False).head(5)
        charts.append(ChartSeries(
            type="doughnut",
            title="Top 5 Customers by Sales",
            labels=[str(c) for c in top_customers.index],
            series=[ChartDataset(label="Sales", data=[_round(v) for v in top_customers.values])],
        ))

    return charts


class FarmRecordsDataProvider(ReportDataProvider):
    """Aggregates farm records into report bundles."""

    def __init__(self, repository: FarmRecordsRepository, today=None):
        self.repository = repository
        # Injectable clock so projections are deterministic in tests
        self._today = today or dt.date.today

    def _period(self, parameters: ReportParameters) -> Tuple[dt.date, dt.date]:
        validate_parameters(parameters)
        return resolve_period(parameters, self._today())

    def _animal_codes(self) -> Dict[str, str]:
        return {a.id: a.code for a in self.repository.list("animals")}

    # ------------------------------------------------------------------
    # Financial
    # ------------------------------------------------------------------

    def fetch_financial(self, parameters: ReportParameters) -> FinancialBundle:
        logger.info(f"Generating financial report data: {parameters.model_dump(by_alias=True)}")
        period_from, period_to = self._period(parameters)
        category = parameters.filters.get("category")

        sales = []
        for sale in self.repository.between("sales", "date", period_from, period_to):
            quantity = len(sale.items)
            sales.append(SaleRecord(
                id=sale.id,
                date=sale.date,
                quantity=quantity,
                unit_price=_round(sum(i.unit_price for i in sale.items) / quantity) if quantity else 0.0,
                total=sale.total,
                customer=sale.customer or "Unknown customer",
                customer_phone=sale.customer_phone,
                notes=f"{quantity} animals sold",
            ))

        expenses = [
            ExpenseRecord(
                id=e.id,
                date=e.date,
                concept=e.concept,
                amount=e.amount,
                category=e.category,
                description=f"{e.category.lower()} expense",
            )
            for e in self.repository.between("expenses", "date", period_from, period_to)
            if not category or e.category == category
        ]
        sales.sort(key=lambda s: s.date, reverse=True)
        expenses.sort(key=lambda e: e.date, reverse=True)

        total_income = sum(s.total for s in sales)
        total_expenses = sum(e.amount for e in expenses)
        net_profit = total_income - total_expenses
        trends = monthly_trends(sales, expenses, period_from, period_to)

        bundle = FinancialBundle(
            parameters=parameters,
            period_from=period_from,
            period_to=period_to,
            summary=FinancialSummary(
                total_income=_round(total_income),
                total_expenses=_round(total_expenses),
                net_profit=_round(net_profit),
                profit_margin=_percent(net_profit, total_income),
                sales_count=len(sales),
                expenses_count=len(expenses),
            ),
            sales=sales,
            expenses=expenses,
            trends=trends,
            charts=financial_charts(sales, expenses, trends),
        )
        logger.info(
            f"Financial report data ready: {len(sales)} sales, {len(expenses)} expenses, "
            f"net profit {bundle.summary.net_profit}"
        )
        return bundle

    # ------------------------------------------------------------------
    # Inventory
    # ------------------------------------------------------------------

    def fetch_inventory(self, parameters: ReportParameters) -> InventoryBundle:
        logger.info(f"Generating inventory report data: {parameters.model_dump(by_alias=True)}")
        period_from, period_to = self._period(parameters)
        shed_filter = parameters.filters.get("shed")
        stage_filter = parameters.filters.get("life_stage")

        sheds = [
            s for s in self.repository.list("sheds")
            if not shed_filter or shed_filter in (s.id, s.name)
        ]
        shed_ids = {s.id for s in sheds}
        cages = {c.id: c for c in self.repository.list("cages") if c.shed_id in shed_ids}
        animals = [
            a for a in self.repository.list("animals")
            if a.shed_id in shed_ids
            and a.status not in INACTIVE_ANIMAL_STATUSES
            and (not stage_filter or a.life_stage == stage_filter)
        ]

        shed_rows = []
        alerts = []
        for shed in sheds:
            housed = [a for a in animals if a.shed_id == shed.id]
            rate = _percent(len(housed), shed.capacity)
            shed_rows.append(ShedRecord(
                id=shed.id,
                name=shed.name,
                capacity=shed.capacity,
                occupancy=len(housed),
                occupancy_rate=rate,
                cages_total=len([c for c in cages.values() if c.shed_id == shed.id]),
                cages_occupied=len({a.cage_id for a in housed if a.cage_id}),
            ))
            if shed.capacity and len(housed) > shed.capacity:
                alerts.append(AlertRecord(
                    type="error",
                    message=f"Shed {shed.name} is over capacity",
                    details=f"{len(housed)} animals for a capacity of {shed.capacity}",
                    shed_id=shed.id,
                ))
            elif rate > SHED_ALERT_THRESHOLD:
                alerts.append(AlertRecord(
                    type="warning",
                    message=f"Shed {shed.name} is nearly full",
                    details=f"Occupancy at {rate}%",
                    shed_id=shed.id,
                ))

        shed_names = {s.id: s.name for s in sheds}
        animal_rows = [
            AnimalRecord(
                id=a.id,
                code=a.code,
                sex=a.sex,
                birth_date=a.birth_date,
                weight=a.weight,
                status=a.status,
                shed=shed_names.get(a.shed_id, a.shed_id),
                cage=str(cages[a.cage_id].number) if a.cage_id in cages else None,
                life_stage=a.life_stage,
            )
            for a in animals
        ]

        stage_counts = Counter(a.life_stage for a in animals)
        distribution = [
            DistributionRecord(life_stage=stage, count=count, percentage=_percent(count, len(animals)))
            for stage, count in stage_counts.most_common()
        ]
        weights = [a.weight for a in animals if a.weight is not None]
        total_capacity = sum(s.capacity for s in sheds)

        charts = []
        if distribution:
            charts.append(ChartSeries(
                type="pie",
                title="Animals by Life Stage",
                labels=[d.life_stage for d in distribution],
                series=[ChartDataset(label="Animals", data=[d.count for d in distribution])],
            ))
        if shed_rows:
            charts.append(ChartSeries(
                type="bar",
                title="Shed Occupancy",
                labels=[s.name for s in shed_rows],
                series=[
                    ChartDataset(label="Occupancy", data=[s.occupancy for s in shed_rows]),
                    ChartDataset(label="Capacity", data=[s.capacity for s in shed_rows]),
                ],
            ))

        return InventoryBundle(
            parameters=parameters,
            period_from=period_from,
            period_to=period_to,
            summary=InventorySummary(
                total_animals=len(animals),
                total_sheds=len(sheds),
                total_cages=len(cages),
                occupancy_rate=_percent(len(animals), total_capacity),
                average_weight=_round(sum(weights) / len(weights)) if weights else 0.0,
            ),
            animals=animal_rows,
            sheds=shed_rows,
            distribution=distribution,
            alerts=alerts,
            charts=charts,
        )

    # ------------------------------------------------------------------
    # Reproductive
    # ------------------------------------------------------------------

    def fetch_reproductive(self, parameters: ReportParameters) -> ReproductiveBundle:
        logger.info(f"Generating reproductive report data: {parameters.model_dump(by_alias=True)}")
        period_from, period_to = self._period(parameters)
        status_filter = parameters.filters.get("status")
        today = self._today()
        codes = self._animal_codes()

        pregnancies = [
            p for p in self.repository.between("pregnancies", "service_date", period_from, period_to)
            if not status_filter or p.status == status_filter
        ]
        litters = self.repository.between("litters", "birth_date", period_from, period_to)

        pregnancy_rows = [
            PregnancyRecord(
                id=p.id,
                service_date=p.service_date,
                expected_birth_date=p.service_date + dt.timedelta(days=GESTATION_DAYS),
                status=p.status,
                mother_code=codes.get(p.mother_id, p.mother_id),
                father_code=codes.get(p.father_id, p.father_id) if p.father_id else None,
                gestation_days=max((today - p.service_date).days, 0),
            )
            for p in sorted(pregnancies, key=lambda p: p.service_date)
        ]
        litter_rows = [
            LitterRecord(
                id=l.id,
                birth_date=l.birth_date,
                total_offspring=l.total_offspring,
                alive=l.alive,
                dead=l.dead,
                mother_code=codes.get(l.mother_id, l.mother_id),
                father_code=codes.get(l.father_id, l.father_id) if l.father_id else None,
            )
            for l in sorted(litters, key=lambda l: l.birth_date)
        ]

        active = [p for p in pregnancy_rows if p.status == "active"]
        average_litter = (
            sum(l.total_offspring for l in litter_rows) / len(litter_rows) if litter_rows else 0.0
        )

        projections = []
        month_start = today.replace(day=1)
        for _ in range(PROJECTION_MONTHS):
            next_month = (month_start + dt.timedelta(days=32)).replace(day=1)
            births = len([
                p for p in active if month_start <= p.expected_birth_date < next_month
            ])
            projections.append(ProjectionRecord(
                month=month_start.strftime("%b %Y"),
                expected_births=births,
                expected_offspring=round(births * average_litter),
            ))
            month_start = next_month

        charts = []
        if litter_rows:
            per_month = Counter(l.birth_date.strftime("%Y-%m") for l in litter_rows)
            months = sorted(per_month)
            charts.append(ChartSeries(
                type="bar",
                title="Litters per Month",
                labels=months,
                series=[ChartDataset(label="Litters", data=[per_month[m] for m in months])],
            ))
        if active:
            charts.append(ChartSeries(
                type="line",
                title="Projected Births",
                labels=[p.month for p in projections],
                series=[ChartDataset(label="Expected births", data=[p.expected_births for p in projections])],
            ))

        return ReproductiveBundle(
            parameters=parameters,
            period_from=period_from,
            period_to=period_to,
            summary=ReproductiveSummary(
                active_pregnancies=len(active),
                expected_births=sum(p.expected_births for p in projections),
                fertility_rate=min(_percent(len(litter_rows), len(pregnancy_rows)), 100.0),
                average_litter_size=_round(average_litter),
                total_litters=len(litter_rows),
                total_offspring=sum(l.alive for l in litter_rows),
            ),
            pregnancies=pregnancy_rows,
            litters=litter_rows,
            projections=projections,
            charts=charts,
        )

    # ------------------------------------------------------------------
    # Health
    # ------------------------------------------------------------------

    def fetch_health(self, parameters: ReportParameters) -> HealthBundle:
        logger.info(f"Generating health report data: {parameters.model_dump(by_alias=True)}")
        period_from, period_to = self._period(parameters)
        shed_filter = parameters.filters.get("shed")

        animals = {
            a.id: a for a in self.repository.list("animals")
            if not shed_filter or a.shed_id == shed_filter
        }
        events = [
            e for e in self.repository.between("health_events", "date", period_from, period_to)
            if e.animal_id in animals
        ]
        treatments = [
            TreatmentRecord(
                id=e.id,
                date=e.date,
                type=e.type,
                description=e.description,
                treatment=e.treatment,
                cost=e.cost,
                animal_code=animals[e.animal_id].code,
                veterinarian=e.veterinarian,
            )
            for e in sorted(events, key=lambda e: e.date, reverse=True)
        ]

        issue_counts = Counter(t.type for t in treatments)
        dead = len([a for a in animals.values() if a.status == "dead"])

        charts = []
        if treatments:
            charts.append(ChartSeries(
                type="pie",
                title="Treatments by Type",
                labels=list(issue_counts.keys()),
                series=[ChartDataset(label="Treatments", data=list(issue_counts.values()))],
            ))
            cost_by_month = pd.Series(
                [t.cost for t in treatments],
                index=pd.to_datetime([t.date for t in treatments]).to_period("M"),
            ).groupby(level=0).sum().sort_index()
            charts.append(ChartSeries(
                type="bar",
                title="Treatment Cost per Month",
                labels=[p.strftime("%b %Y") for p in cost_by_month.index],
                series=[ChartDataset(label="Cost", data=[_round(v) for v in cost_by_month.values])],
            ))

        return HealthBundle(
            parameters=parameters,
            period_from=period_from,
            period_to=period_to,
            summary=HealthSummary(
                total_treatments=len(treatments),
                total_cost=_round(sum(t.cost for t in treatments)),
                mortality_rate=_percent(dead, len(animals)),
                common_issues=[issue for issue, _ in issue_counts.most_common(3)],
            ),
            treatments=treatments,
            charts=charts,
        )
