from decimal import Decimal

STATUS_LABELS = {
    'draft': 'Draft',
    'confirmed': 'Confirmed',
    'exported': 'Exported',
}


def format_currency(amount: Decimal, symbol: str = "¥") -> str:
    """Format yen amount (no minor unit unless the value has one)"""
    if amount == amount.to_integral_value():
        return f"{symbol}{amount:,.0f}"
    return f"{symbol}{amount:,.2f}"


def format_period(year: int, month: int) -> str:
    return f"{year}-{month:02d}"


def format_status(status: str) -> str:
    return STATUS_LABELS.get(status, status)
