"""
Domain Models

Immutable records for the clinic data the reporting engine reads: branches,
patients, visits, payments and custom statistic definitions. Aggregations treat
these as a read-only snapshot; nothing in the reports package mutates them.
"""

from dataclasses import dataclass, asdict
from datetime import datetime
from typing import Optional, Dict, Any


@dataclass(frozen=True)
class Branch:
    """An independently operated clinic location"""
    id: int
    name: str
    location: Optional[str] = None


@dataclass(frozen=True)
class Patient:
    """A registered patient owned by exactly one branch"""
    id: int
    branch_id: int
    name: str
    age: Optional[int] = None
    medical_condition: Optional[str] = None
    is_amputee: bool = False
    amputation_site: Optional[str] = None
    is_physiotherapy: bool = False
    disease_type: Optional[str] = None
    treatment_type: Optional[str] = None
    is_medical_support: bool = False
    support_type: Optional[str] = None
    total_cost: int = 0
    registration_date: Optional[datetime] = None
    created_at: Optional[datetime] = None

    @property
    def registered_at(self) -> Optional[datetime]:
        """Instant used for the registration date axis"""
        return self.created_at or self.registration_date

    @property
    def condition(self) -> str:
        """
        Condition key: 'amputee', 'medical_support' or 'physiotherapy'.

        Records carrying neither the amputee nor the medical-support flag count
        as physiotherapy, which is also what the physiotherapy flag implies.
        """
        if self.is_amputee:
            return "amputee"
        if self.is_medical_support:
            return "medical_support"
        return "physiotherapy"


@dataclass(frozen=True)
class Visit:
    """A visit; visit_date is its own date axis"""
    id: int
    patient_id: int
    branch_id: int
    visit_date: Optional[datetime] = None
    treatment_type: Optional[str] = None
    notes: Optional[str] = None


@dataclass(frozen=True)
class Payment:
    """A payment received from a patient; date is its own date axis"""
    id: int
    patient_id: int
    branch_id: int
    amount: int
    notes: Optional[str] = None
    date: Optional[datetime] = None


@dataclass(frozen=True)
class CustomStat:
    """Declarative, operator-authored metric definition"""
    id: int
    name: str
    stat_type: str
    category: str
    description: Optional[str] = None
    filter_field: Optional[str] = None
    filter_value: Optional[str] = None
    is_global: bool = False
    branch_id: Optional[int] = None
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to camelCase dictionary for API responses"""
        data = asdict(self)
        return {
            'id': data['id'],
            'name': data['name'],
            'description': data['description'],
            'statType': data['stat_type'],
            'category': data['category'],
            'filterField': data['filter_field'],
            'filterValue': data['filter_value'],
            'isGlobal': data['is_global'],
            'branchId': data['branch_id'],
            'createdBy': data['created_by'],
            'createdAt': self.created_at.isoformat() if self.created_at else None,
            'updatedAt': self.updated_at.isoformat() if self.updated_at else None,
        }
