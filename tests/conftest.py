"""
Shared fixtures for the export pipeline tests.

Farm records are seeded in memory with a fixed "today" so periods, trends and
projections are deterministic.
"""

import datetime as dt

import pytest

from farm_exports.config import Settings
from farm_exports.files.validator import FileValidator
from farm_exports.generators.dispatcher import GeneratorDispatcher
from farm_exports.jobs.job_queue import ExportJobQueue
from farm_exports.jobs.job_store import InMemoryJobStore
from farm_exports.jobs.job_types import DateRange, ReportParameters
from farm_exports.reports.data_provider import FarmRecordsDataProvider
from farm_exports.reports.records import (
    Animal, Cage, Expense, HealthEvent, InMemoryFarmRecords, Litter, Pregnancy,
    Sale, SaleItem, Shed,
)

TODAY = dt.date(2024, 6, 15)


# =============================================================================
# FARM RECORDS
# =============================================================================

def seed_records() -> InMemoryFarmRecords:
    repo = InMemoryFarmRecords()

    repo.add("sheds", Shed(id="s1", name="North", capacity=10))
    repo.add("sheds", Shed(id="s2", name="South", capacity=2))
    repo.add("cages", Cage(id="c1", number=1, shed_id="s1", capacity=4))
    repo.add("cages", Cage(id="c2", number=2, shed_id="s1", capacity=4))
    repo.add("cages", Cage(id="c3", number=1, shed_id="s2", capacity=4))

    animals = [
        Animal(id="a1", code="M-001", sex="female", life_stage="adult", shed_id="s1", cage_id="c1", weight=3.5),
        Animal(id="a2", code="M-002", sex="male", life_stage="adult", shed_id="s1", cage_id="c1", weight=4.0),
        Animal(id="a3", code="M-003", sex="female", life_stage="young", shed_id="s1", cage_id="c2", weight=1.5),
        Animal(id="a4", code="S-001", sex="female", life_stage="adult", shed_id="s2", cage_id="c3", weight=3.0),
        Animal(id="a5", code="S-002", sex="male", life_stage="young", shed_id="s2", cage_id="c3"),
        Animal(id="a6", code="S-003", sex="female", life_stage="kit", shed_id="s2", cage_id="c3", weight=0.5),
        Animal(id="a7", code="S-004", sex="male", life_stage="adult", shed_id="s2", status="dead"),
    ]
    for animal in animals:
        repo.add("animals", animal)

    repo.add("sales", Sale(
        id="sale1", date=dt.date(2024, 6, 1), customer="Green Market", total=300.0,
        items=[SaleItem(animal_id="a9", unit_price=150.0), SaleItem(animal_id="a10", unit_price=150.0)],
    ))
    repo.add("sales", Sale(
        id="sale2", date=dt.date(2024, 5, 20), customer="Local Butcher", total=120.0,
        items=[SaleItem(animal_id="a11", unit_price=120.0)],
    ))
    repo.add("sales", Sale(id="sale-old", date=dt.date(2023, 1, 10), customer="Old", total=999.0))

    repo.add("expenses", Expense(id="e1", date=dt.date(2024, 6, 5), concept="Pellets", amount=80.0, category="Feed"))
    repo.add("expenses", Expense(id="e2", date=dt.date(2024, 5, 25), concept="Vaccines", amount=40.0, category="Health"))

    repo.add("pregnancies", Pregnancy(id="p1", service_date=dt.date(2024, 5, 1), mother_id="a1", father_id="a2"))
    repo.add("pregnancies", Pregnancy(id="p2", service_date=dt.date(2024, 5, 20), mother_id="a4", father_id="a2"))
    repo.add("litters", Litter(
        id="l1", birth_date=dt.date(2024, 6, 2), total_offspring=8, alive=7, dead=1, mother_id="a3",
    ))

    repo.add("health_events", HealthEvent(
        id="h1", date=dt.date(2024, 6, 3), type="Respiratory", description="Sneezing",
        treatment="Antibiotic", cost=15.0, animal_id="a1", veterinarian="Dr. Vega",
    ))
    repo.add("health_events", HealthEvent(
        id="h2", date=dt.date(2024, 6, 8), type="Digestive", description="Bloating",
        cost=10.0, animal_id="a4",
    ))
    repo.add("health_events", HealthEvent(
        id="h3", date=dt.date(2024, 6, 10), type="Respiratory", description="Cough",
        cost=12.5, animal_id="a5",
    ))
    return repo


def june_parameters(**filters) -> ReportParameters:
    return ReportParameters(
        date_range=DateRange(from_="2024-05-01", to="2024-06-15"),
        filters=filters,
    )


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def records():
    return seed_records()


@pytest.fixture
def provider(records):
    return FarmRecordsDataProvider(records, today=lambda: TODAY)


@pytest.fixture
def settings(tmp_path):
    return Settings(
        output_dir=str(tmp_path / "exports"),
        retry_base_delay=0,
        queue_poll_interval=0.05,
        max_active_jobs_per_user=3,
    )


@pytest.fixture
def store():
    return InMemoryJobStore()


@pytest.fixture
def dispatcher(settings):
    dispatcher = GeneratorDispatcher(settings.branding, FileValidator(settings.max_file_size_bytes))
    yield dispatcher
    dispatcher.close()


@pytest.fixture
def queue(store, provider, dispatcher, settings):
    queue = ExportJobQueue(store, provider, dispatcher, settings)
    yield queue
    queue.stop_processing()
