import logging
from datetime import date
from typing import List, Optional

from models.rate_table import RateTableEntry
from models.errors import GradeNotFound, PensionGradeNotFound, RateTableNotFound
from utils.dates import first_day_of_month, month_of

logger = logging.getLogger(__name__)


def resolve_grade(amount: int, tables: List[RateTableEntry]) -> RateTableEntry:
    """Return the first row whose bracket covers amount.

    tables must already be narrowed to one effective period.
    """
    for entry in tables:
        if entry.covers(amount):
            return entry
    raise GradeNotFound(amount)


def resolve_pension_grade(amount: int, tables: List[RateTableEntry]) -> RateTableEntry:
    """Like resolve_grade, but only rows that map to a pension grade count"""
    for entry in tables:
        if entry.pension_grade is not None and entry.covers(amount):
            return entry
    raise PensionGradeNotFound(amount)


def is_effective(entry: RateTableEntry, target: date) -> bool:
    """Effective window truncated to whole months contains target's month start"""
    target_month = month_of(target)
    if month_of(entry.effective_from) > target_month:
        return False
    return entry.effective_to is None or target_month <= month_of(entry.effective_to)


def select_effective_tables(organization_id: str, tables: List[RateTableEntry],
                            target: date) -> List[RateTableEntry]:
    """Rows of the organization effective in target's month, ordered by grade"""
    effective = [
        t for t in tables
        if t.organization_id == organization_id and is_effective(t, target)
    ]
    if not effective:
        raise RateTableNotFound(organization_id, target.year, target.month)
    return sorted(effective, key=lambda t: t.grade)


class RateTableResolver:
    """Rate table lookups against the organization's stored tables"""

    def __init__(self, rate_table_store):
        self.store = rate_table_store

    def tables_for(self, organization_id: str, year: int, month: int,
                   employee_number: Optional[str] = None) -> List[RateTableEntry]:
        tables = self.store.list_rate_tables(organization_id)
        try:
            effective = select_effective_tables(organization_id, tables, first_day_of_month(year, month))
        except RateTableNotFound:
            raise RateTableNotFound(organization_id, year, month, employee_number) from None
        logger.debug(f"{len(effective)} rate rows effective for {organization_id} {year}-{month:02d}")
        return effective

    @staticmethod
    def grade_for(amount: int, tables: List[RateTableEntry], employee_number: Optional[str] = None,
                  year: Optional[int] = None, month: Optional[int] = None) -> RateTableEntry:
        try:
            return resolve_grade(amount, tables)
        except GradeNotFound:
            raise GradeNotFound(amount, employee_number, year, month) from None

    @staticmethod
    def pension_grade_for(amount: int, tables: List[RateTableEntry], employee_number: Optional[str] = None,
                          year: Optional[int] = None, month: Optional[int] = None) -> RateTableEntry:
        try:
            return resolve_pension_grade(amount, tables)
        except PensionGradeNotFound:
            raise PensionGradeNotFound(amount, employee_number, year, month) from None
