from .rate_table_resolver import RateTableResolver
from .leave_eligibility import LeaveEligibilityEvaluator
from .premium_allocator import PremiumAllocator
from .monthly_premium_calculator import MonthlyPremiumCalculator
from .bonus_premium_calculator import BonusPremiumCalculator
from .calculation_lifecycle import CalculationLifecycleManager
from .calculation_exporter import CalculationExporter


__all__ = [
    'RateTableResolver',
    'LeaveEligibilityEvaluator',
    'PremiumAllocator',
    'MonthlyPremiumCalculator',
    'BonusPremiumCalculator',
    'CalculationLifecycleManager',
    'CalculationExporter'
]
