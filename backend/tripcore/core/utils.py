"""
Utility functions for the application.
"""
from typing import Any, Dict
from datetime import datetime, timezone
from decimal import Decimal, ROUND_DOWN, ROUND_HALF_UP

# Smallest currency unit handled by the ledger (amounts are stored with 2 decimals)
MINOR_UNIT = Decimal("0.01")


def to_money(value: Any) -> Decimal:
    """Quantize a numeric value to the smallest currency unit."""
    return Decimal(str(value)).quantize(MINOR_UNIT, rounding=ROUND_HALF_UP)


def floor_money(value: Decimal) -> Decimal:
    """Round a Decimal down to the smallest currency unit."""
    return value.quantize(MINOR_UNIT, rounding=ROUND_DOWN)


def now_millis() -> int:
    """Current UTC time as epoch milliseconds (event timestamps)."""
    return int(datetime.now(timezone.utc).timestamp() * 1000)


def format_response(data: Any, message: str = "Success") -> Dict[str, Any]:
    """Format API response."""
    return {
        "message": message,
        "data": data
    }


def format_error(message: str, details: Any = None) -> Dict[str, Any]:
    """Format error response."""
    response = {"error": message}
    if details:
        response["details"] = details
    return response
