from typing import Optional


def _period(year: Optional[int], month: Optional[int]) -> str:
    if year is None or month is None:
        return ""
    return f"{year}-{month:02d}"


class PremiumCalculationError(ValueError):
    """Base class for business-data errors raised by the premium engine.

    Each subclass carries a ``kind`` used as the error key by the HTTP
    layer and the bulk skip list.
    """

    kind = "PremiumCalculationError"

    def __init__(self, message: str, employee_number: Optional[str] = None,
                 year: Optional[int] = None, month: Optional[int] = None):
        self.employee_number = employee_number
        self.year = year
        self.month = month
        self.period = _period(year, month)
        super().__init__(message)

    @property
    def message(self) -> str:
        return self.args[0]


class MissingStandardReward(PremiumCalculationError):
    kind = "MissingStandardReward"

    def __init__(self, employee_number: str, year: int, month: int):
        super().__init__(
            f"Employee {employee_number} has no standard reward set ({_period(year, month)})",
            employee_number, year, month,
        )


class RateTableNotFound(PremiumCalculationError):
    kind = "RateTableNotFound"

    def __init__(self, organization_id: str, year: int, month: int,
                 employee_number: Optional[str] = None):
        self.organization_id = organization_id
        super().__init__(
            f"No premium rate table is effective for organization {organization_id} "
            f"in {_period(year, month)}",
            employee_number, year, month,
        )


class GradeNotFound(PremiumCalculationError):
    kind = "GradeNotFound"

    def __init__(self, amount, employee_number: Optional[str] = None,
                 year: Optional[int] = None, month: Optional[int] = None):
        self.amount = amount
        super().__init__(
            f"No health insurance grade covers a standard amount of {amount:,} yen"
            + (f" (employee {employee_number}, {_period(year, month)})" if employee_number else ""),
            employee_number, year, month,
        )


class PensionGradeNotFound(PremiumCalculationError):
    kind = "PensionGradeNotFound"

    def __init__(self, amount, employee_number: Optional[str] = None,
                 year: Optional[int] = None, month: Optional[int] = None):
        self.amount = amount
        super().__init__(
            f"No pension grade covers a standard amount of {amount:,} yen"
            + (f" (employee {employee_number}, {_period(year, month)})" if employee_number else ""),
            employee_number, year, month,
        )


class SalaryNotConfirmed(PremiumCalculationError):
    kind = "SalaryNotConfirmed"

    def __init__(self, employee_number: str, year: int, month: int):
        super().__init__(
            f"Salary data for employee {employee_number} in {_period(year, month)} is not confirmed",
            employee_number, year, month,
        )


class BonusNotConfirmed(PremiumCalculationError):
    kind = "BonusNotConfirmed"

    def __init__(self, employee_number: str, year: int, month: int):
        super().__init__(
            f"Bonus data for employee {employee_number} in {_period(year, month)} is not confirmed",
            employee_number, year, month,
        )


class OtherCompanyDataNotConfirmed(PremiumCalculationError):
    kind = "OtherCompanyDataNotConfirmed"

    def __init__(self, employee_number: str, year: int, month: int, what: str = "salary"):
        super().__init__(
            f"Other-company {what} data for employee {employee_number} in "
            f"{_period(year, month)} is missing or not confirmed",
            employee_number, year, month,
        )


class AlreadyFinalized(PremiumCalculationError):
    kind = "AlreadyFinalized"

    def __init__(self, employee_number: str, year: int, month: int, status: str):
        self.status = status
        super().__init__(
            f"A {status} calculation already exists for employee {employee_number} in "
            f"{_period(year, month)}; recalculate it instead",
            employee_number, year, month,
        )


class RecordNotFound(PremiumCalculationError):
    kind = "RecordNotFound"

    def __init__(self, what: str, key, employee_number: Optional[str] = None,
                 year: Optional[int] = None, month: Optional[int] = None):
        super().__init__(f"{what} {key} not found", employee_number, year, month)


class InvalidStatusTransition(PremiumCalculationError):
    kind = "InvalidStatusTransition"

    def __init__(self, calculation_id, current: str, action: str,
                 employee_number: Optional[str] = None,
                 year: Optional[int] = None, month: Optional[int] = None):
        self.current = current
        self.action = action
        super().__init__(
            f"Cannot {action} calculation {calculation_id} in status '{current}'"
            + (f" (employee {employee_number}, {_period(year, month)})" if employee_number else ""),
            employee_number, year, month,
        )
