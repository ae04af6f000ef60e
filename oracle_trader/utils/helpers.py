"""
ORACLE TRADER — Common Utility Functions
"""
from datetime import datetime, timezone
from decimal import Decimal
import time


def utc_now() -> datetime:
    """Return current UTC datetime."""
    return datetime.now(timezone.utc)


def utc_timestamp() -> str:
    """Return current UTC timestamp as ISO string."""
    return utc_now().isoformat()


def wall_clock() -> float:
    """Unix seconds; the default injectable clock."""
    return time.time()


def safe_divide(numerator: float, denominator: float, default: float = 0.0) -> float:
    """Safe division avoiding ZeroDivisionError."""
    if denominator == 0:
        return default
    return numerator / denominator


def clamp(value: float, min_val: float = 0.0, max_val: float = 100.0) -> float:
    """Clamp a value between min and max."""
    return max(min_val, min(max_val, value))


def stable_hash(value: str) -> int:
    """
    Deterministic non-negative 32-bit string hash (h = 31*h + ord(c)).
    Unlike the builtin hash() it does not change between processes.
    """
    h = 0
    for ch in value:
        h = (h * 31 + ord(ch)) & 0xFFFFFFFF
    if h >= 0x80000000:
        h -= 0x100000000
    return abs(h)


def to_fixed_point(value: float, decimals: int = 18) -> int:
    """Convert a float price to an integer with `decimals` implied places."""
    return int(Decimal(str(value)) * (Decimal(10) ** decimals))


def from_fixed_point(value: int, decimals: int = 18) -> float:
    """Inverse of to_fixed_point."""
    return float(Decimal(value) / (Decimal(10) ** decimals))


def split_symbol(symbol: str) -> tuple:
    """Split a pair like AVAX/USDT or avax-usdt into ('AVAX', 'USDT')."""
    parts = symbol.upper().replace("-", "/").split("/")
    base = parts[0]
    quote = parts[1] if len(parts) > 1 and parts[1] else "USDT"
    return base, quote
