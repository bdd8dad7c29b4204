from decimal import ROUND_HALF_UP, Decimal
from typing import Any


HOURS_PER_YEAR = 24 * 365


def annualize_rate(hourly_rate: float) -> float:
    """
    Converts an hourly lending rate into an annual percentage.

    Simple, non-compounding: 0.0001 (0.01%/h) becomes 87.6 (%).
    """
    return hourly_rate * HOURS_PER_YEAR * 100


def format_amount_currency(amount: Any, currency: str) -> str:
    """
    Formats a numerical value with its currency unit.

    - If currency is 'USD' or 'USDT', precision is set to 3 decimal places.
    - Otherwise, precision is set to 6 decimal places.
    - Trailing zeros and the decimal point are removed if not needed.

    Args:
        amount: The numerical value to format.
        currency: The currency unit (e.g., 'BTC', 'USD').

    Returns:
        A string in the format "XXX Currency".
    """
    if amount is None:
        return f"0 {currency}"

    currency_upper = currency.upper()
    precision = 3 if currency_upper in ("USD", "USDT") else 6

    d = Decimal(str(amount))
    rounded = d.quantize(Decimal(10) ** -precision, rounding=ROUND_HALF_UP)

    formatted = f"{rounded:f}".rstrip("0").rstrip(".")
    if not formatted or formatted == "-0":
        formatted = "0"

    return f"{formatted} {currency}"


def format_rate_pct(rate: Any) -> str:
    """
    Formats a decimal rate as a percentage string, e.g. 0.0001 -> "0.01000%".
    """
    precision = 5
    if rate is None:
        return f"{0:.{precision}f}%"
    return f"{float(rate) * 100:.{precision}f}%"
