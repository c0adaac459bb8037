"""
Report data: typed bundles, the provider contract and the farm records
repository it reads from.
"""

from farm_exports.reports.data_types import (
    ChartSeries,
    FinancialBundle,
    InventoryBundle,
    ReproductiveBundle,
    HealthBundle,
    GenericBundle,
    ReportDataBundle,
    REPORT_TEMPLATES,
)

from farm_exports.reports.data_provider import (
    ReportDataProvider,
    FarmRecordsDataProvider,
    validate_parameters,
)

from farm_exports.reports.records import (
    FarmRecordsRepository,
    InMemoryFarmRecords,
)

__all__ = [
    "ChartSeries",
    "FinancialBundle",
    "InventoryBundle",
    "ReproductiveBundle",
    "HealthBundle",
    "GenericBundle",
    "ReportDataBundle",
    "REPORT_TEMPLATES",
    "ReportDataProvider",
    "FarmRecordsDataProvider",
    "validate_parameters",
    "FarmRecordsRepository",
    "InMemoryFarmRecords",
]
