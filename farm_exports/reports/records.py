"""
Farm Records Repository

The report data provider reads farm entities through this interface only.
InMemoryFarmRecords is the default implementation; it can be seeded from a JSON
file with one list per collection:

    {"sheds": [...], "cages": [...], "animals": [...], "sales": [...],
     "expenses": [...], "pregnancies": [...], "litters": [...],
     "health_events": [...]}
"""

import datetime as dt
import json
import logging
import threading
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Type

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class Shed(BaseModel):
    id: str
    name: str
    capacity: int = Field(default=0, ge=0)


class Cage(BaseModel):
    id: str
    number: int
    shed_id: str
    capacity: int = Field(default=0, ge=0)


class Animal(BaseModel):
    id: str
    code: str
    sex: str
    birth_date: Optional[dt.date] = None
    weight: Optional[float] = None
    status: str = "active"
    life_stage: str
    shed_id: str
    cage_id: Optional[str] = None


class SaleItem(BaseModel):
    animal_id: Optional[str] = None
    unit_price: float = 0.0


class Sale(BaseModel):
    id: str
    date: dt.date
    customer: Optional[str] = None
    customer_phone: Optional[str] = None
    total: float = 0.0
    items: List[SaleItem] = Field(default_factory=list)


class Expense(BaseModel):
    id: str
    date: dt.date
    concept: str
    amount: float
    category: str


class Pregnancy(BaseModel):
    id: str
    service_date: dt.date
    status: str = "active"
    mother_id: str
    father_id: Optional[str] = None


class Litter(BaseModel):
    id: str
    birth_date: dt.date
    total_offspring: int = 0
    alive: int = 0
    dead: int = 0
    mother_id: str
    father_id: Optional[str] = None


class HealthEvent(BaseModel):
    id: str
    date: dt.date
    type: str
    description: str
    treatment: Optional[str] = None
    cost: float = 0.0
    animal_id: str
    veterinarian: Optional[str] = None


COLLECTIONS: Dict[str, Type[BaseModel]] = {
    "sheds": Shed,
    "cages": Cage,
    "animals": Animal,
    "sales": Sale,
    "expenses": Expense,
    "pregnancies": Pregnancy,
    "litters": Litter,
    "health_events": HealthEvent,
}


class FarmRecordsRepository(ABC):
    """CRUD access to farm entities, one collection per entity type."""

    @abstractmethod
    def add(self, collection: str, record: BaseModel) -> BaseModel: ...

    @abstractmethod
    def get(self, collection: str, record_id: str) -> Optional[BaseModel]: ...

    @abstractmethod
    def list(self, collection: str) -> List[BaseModel]: ...

    @abstractmethod
    def update(self, collection: str, record_id: str, patch: Dict) -> BaseModel: ...

    @abstractmethod
    def delete(self, collection: str, record_id: str) -> bool: ...

    def between(self, collection: str, field: str, date_from: dt.date, date_to: dt.date) -> List[BaseModel]:
        """Records whose ``field`` date falls inside the inclusive range."""
        return [
            r for r in self.list(collection)
            if date_from <= getattr(r, field) <= date_to
        ]


def _check_collection(collection: str) -> Type[BaseModel]:
    model = COLLECTIONS.get(collection)
    if model is None:
        raise KeyError(f"Unknown collection: {collection}")
    return model


class InMemoryFarmRecords(FarmRecordsRepository):

    def __init__(self):
        self._data: Dict[str, Dict[str, BaseModel]] = {name: {} for name in COLLECTIONS}
        self._lock = threading.Lock()

    def add(self, collection: str, record: BaseModel) -> BaseModel:
        model = _check_collection(collection)
        if not isinstance(record, model):
            record = model.model_validate(record)
        with self._lock:
            self._data[collection][record.id] = record
        return record

    def get(self, collection: str, record_id: str) -> Optional[BaseModel]:
        _check_collection(collection)
        with self._lock:
            return self._data[collection].get(record_id)

    def list(self, collection: str) -> List[BaseModel]:
        _check_collection(collection)
        with self._lock:
            return list(self._data[collection].values())

    def update(self, collection: str, record_id: str, patch: Dict) -> BaseModel:
        _check_collection(collection)
        with self._lock:
            record = self._data[collection].get(record_id)
            if record is None:
                raise KeyError(f"{collection} record {record_id} not found")
            updated = record.model_copy(update=patch)
            self._data[collection][record_id] = updated
            return updated

    def delete(self, collection: str, record_id: str) -> bool:
        _check_collection(collection)
        with self._lock:
            return self._data[collection].pop(record_id, None) is not None

    @classmethod
    def from_json(cls, path: str) -> "InMemoryFarmRecords":
        """Load a seed file; unknown top-level keys are ignored."""
        with open(path, "r", encoding="utf-8") as f:
            payload = json.load(f)

        repo = cls()
        for collection, model in COLLECTIONS.items():
            for row in payload.get(collection, []):
                repo.add(collection, model.model_validate(row))
        logger.info(
            f"Loaded farm records from {path}: "
            + ", ".join(f"{name}={len(repo._data[name])}" for name in COLLECTIONS)
        )
        return repo
