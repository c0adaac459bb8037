"""
Report Data Bundles

One concrete model per report template. Generators dispatch on the bundle
type instead of probing a loosely shaped dict.
"""

import datetime as dt
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field

from farm_exports.jobs.job_types import ReportParameters, utcnow


ChartType = Literal["bar", "line", "pie", "doughnut"]


class ChartDataset(BaseModel):
    label: str
    data: List[float] = Field(default_factory=list)


class ChartSeries(BaseModel):
    """Chart descriptor: one label per point, one dataset per plotted series."""
    type: ChartType
    title: str
    labels: List[str] = Field(default_factory=list)
    series: List[ChartDataset] = Field(default_factory=list)


# ============================================================================
# Record types
# ============================================================================

class SaleRecord(BaseModel):
    id: str
    date: dt.date
    quantity: int = 0
    unit_price: float = 0.0
    total: float = 0.0
    customer: str = "Unknown customer"
    customer_phone: Optional[str] = None
    notes: Optional[str] = None


class ExpenseRecord(BaseModel):
    id: str
    date: dt.date
    concept: str
    amount: float
    category: str
    description: Optional[str] = None


class MonthlyTrend(BaseModel):
    month: str
    income: float = 0.0
    expenses: float = 0.0
    profit: float = 0.0


class AnimalRecord(BaseModel):
    id: str
    code: str
    sex: str
    birth_date: Optional[dt.date] = None
    weight: Optional[float] = None
    status: str
    shed: str
    cage: Optional[str] = None
    life_stage: str


class ShedRecord(BaseModel):
    id: str
    name: str
    capacity: int
    occupancy: int
    occupancy_rate: float
    cages_total: int
    cages_occupied: int


class DistributionRecord(BaseModel):
    life_stage: str
    count: int
    percentage: float


class AlertRecord(BaseModel):
    type: Literal["warning", "error", "info"]
    message: str
    details: str
    shed_id: Optional[str] = None


class PregnancyRecord(BaseModel):
    id: str
    service_date: dt.date
    expected_birth_date: dt.date
    status: str
    mother_code: str
    father_code: Optional[str] = None
    gestation_days: int


class LitterRecord(BaseModel):
    id: str
    birth_date: dt.date
    total_offspring: int
    alive: int
    dead: int
    mother_code: str
    father_code: Optional[str] = None


class ProjectionRecord(BaseModel):
    month: str
    expected_births: int
    expected_offspring: int


class TreatmentRecord(BaseModel):
    id: str
    date: dt.date
    type: str
    description: str
    treatment: Optional[str] = None
    cost: float = 0.0
    animal_code: str
    veterinarian: Optional[str] = None


# ============================================================================
# Summaries
# ============================================================================

class FinancialSummary(BaseModel):
    total_income: float = 0.0
    total_expenses: float = 0.0
    net_profit: float = 0.0
    profit_margin: float = 0.0
    sales_count: int = 0
    expenses_count: int = 0


class InventorySummary(BaseModel):
    total_animals: int = 0
    total_sheds: int = 0
    total_cages: int = 0
    occupancy_rate: float = 0.0
    average_weight: float = 0.0


class ReproductiveSummary(BaseModel):
    active_pregnancies: int = 0
    expected_births: int = 0
    fertility_rate: float = 0.0
    average_litter_size: float = 0.0
    total_litters: int = 0
    total_offspring: int = 0


class HealthSummary(BaseModel):
    total_treatments: int = 0
    total_cost: float = 0.0
    mortality_rate: float = 0.0
    common_issues: List[str] = Field(default_factory=list)


# ============================================================================
# Bundles
# ============================================================================

class BundleBase(BaseModel):
    generated_at: dt.datetime = Field(default_factory=utcnow)
    parameters: ReportParameters = Field(default_factory=ReportParameters)
    period_from: Optional[dt.date] = None
    period_to: Optional[dt.date] = None
    charts: List[ChartSeries] = Field(default_factory=list)

    def summary_items(self) -> Dict[str, Any]:
        summary = getattr(self, "summary", None)
        if summary is None:
            return {}
        if isinstance(summary, BaseModel):
            return summary.model_dump()
        return dict(summary)


class FinancialBundle(BundleBase):
    template_id: Literal["financial"] = "financial"
    summary: FinancialSummary = Field(default_factory=FinancialSummary)
    sales: List[SaleRecord] = Field(default_factory=list)
    expenses: List[ExpenseRecord] = Field(default_factory=list)
    trends: List[MonthlyTrend] = Field(default_factory=list)


class InventoryBundle(BundleBase):
    template_id: Literal["inventory"] = "inventory"
    summary: InventorySummary = Field(default_factory=InventorySummary)
    animals: List[AnimalRecord] = Field(default_factory=list)
    sheds: List[ShedRecord] = Field(default_factory=list)
    distribution: List[DistributionRecord] = Field(default_factory=list)
    alerts: List[AlertRecord] = Field(default_factory=list)


class ReproductiveBundle(BundleBase):
    template_id: Literal["reproductive"] = "reproductive"
    summary: ReproductiveSummary = Field(default_factory=ReproductiveSummary)
    pregnancies: List[PregnancyRecord] = Field(default_factory=list)
    litters: List[LitterRecord] = Field(default_factory=list)
    projections: List[ProjectionRecord] = Field(default_factory=list)


class HealthBundle(BundleBase):
    template_id: Literal["health"] = "health"
    summary: HealthSummary = Field(default_factory=HealthSummary)
    treatments: List[TreatmentRecord] = Field(default_factory=list)


class GenericBundle(BundleBase):
    """Fallback for template ids with no dedicated provider method."""
    template_id: str
    summary: Dict[str, Any] = Field(default_factory=dict)
    details: List[Dict[str, Any]] = Field(default_factory=list)


ReportDataBundle = Union[
    FinancialBundle, InventoryBundle, ReproductiveBundle, HealthBundle, GenericBundle
]


# ============================================================================
# Template catalogue
# ============================================================================

class ReportTemplate(BaseModel):
    template_id: str
    name: str
    description: str
    optional_parameters: List[str] = Field(default_factory=list)
    supported_formats: List[str] = Field(default_factory=lambda: ["PDF", "EXCEL", "CSV"])
    estimated_generation_seconds: int = 30


REPORT_TEMPLATES: Dict[str, ReportTemplate] = {
    "financial": ReportTemplate(
        template_id="financial",
        name="Financial Report",
        description="Sales, expenses and income analysis",
        optional_parameters=["dateRange", "category"],
        estimated_generation_seconds=30,
    ),
    "inventory": ReportTemplate(
        template_id="inventory",
        name="Inventory Report",
        description="Full livestock inventory with shed occupancy",
        optional_parameters=["dateRange", "shed", "life_stage"],
        estimated_generation_seconds=45,
    ),
    "reproductive": ReportTemplate(
        template_id="reproductive",
        name="Reproduction Report",
        description="Pregnancy, litter and birth projection statistics",
        optional_parameters=["dateRange", "status"],
        estimated_generation_seconds=60,
    ),
    "health": ReportTemplate(
        template_id="health",
        name="Health Report",
        description="Treatments, costs and mortality",
        optional_parameters=["dateRange", "shed"],
        estimated_generation_seconds=40,
    ),
}
