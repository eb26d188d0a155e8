from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from base import Base
from db import engine

PAISE_PER_RUPEE = 100
_TWO_PLACES = Decimal("0.01")
# Largest accepted amount, in rupees
MAX_AMOUNT = Decimal("1000000000000")


def to_minor(amount) -> int:
    """
    Converts a rupee amount received at the API boundary into integer paise.

    Args:
        amount: A number or numeric string such as 499, 499.5 or "499.50".

    Returns:
        The amount in paise, rounded half-up to the nearest paisa.

    Raises:
        ValueError: If the value is not a finite number or exceeds MAX_AMOUNT.
    """
    if isinstance(amount, bool):
        raise ValueError(f"Not a currency amount: {amount!r}")
    try:
        value = Decimal(str(amount).strip())
    except (InvalidOperation, AttributeError):
        raise ValueError(f"Not a currency amount: {amount!r}")
    if not value.is_finite() or abs(value) > MAX_AMOUNT:
        raise ValueError(f"Not a currency amount: {amount!r}")
    try:
        return int((value * PAISE_PER_RUPEE).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    except InvalidOperation:
        raise ValueError(f"Not a currency amount: {amount!r}")


def from_minor(paise):
    """Converts paise back into a rupee number for JSON responses."""
    if paise is None:
        return None
    rupees = Decimal(paise) / PAISE_PER_RUPEE
    if rupees == rupees.to_integral_value():
        return int(rupees)
    return float(rupees.quantize(_TWO_PLACES))


def format_amount(paise: int) -> str:
    """Renders paise as a compact rupee string, e.g. ₹500 or ₹499.50."""
    rupees = Decimal(paise) / PAISE_PER_RUPEE
    if rupees == rupees.to_integral_value():
        return f"₹{int(rupees)}"
    return f"₹{rupees.quantize(_TWO_PLACES)}"


def format_currency(paise: int) -> str:
    """
    Formats paise with Indian digit grouping and two decimals, e.g. ₹1,23,456.70.
    """
    sign = "-" if paise < 0 else ""
    rupees, fraction = divmod(abs(paise), PAISE_PER_RUPEE)
    digits = str(rupees)
    if len(digits) > 3:
        head, tail = digits[:-3], digits[-3:]
        groups = []
        while len(head) > 2:
            groups.insert(0, head[-2:])
            head = head[:-2]
        if head:
            groups.insert(0, head)
        digits = ",".join(groups + [tail])
    return f"{sign}₹{digits}.{fraction:02d}"


def utcnow() -> datetime:
    """Naive UTC timestamp, the form DateTime columns round-trip through SQLite."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def as_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def parse_timestamp(value) -> datetime:
    """
    Parses an ISO-8601 timestamp (a trailing 'Z' is accepted) into naive UTC.

    Raises:
        ValueError: If the value is not a valid timestamp string.
    """
    if isinstance(value, datetime):
        return as_naive_utc(value)
    if not isinstance(value, str) or not value:
        raise ValueError(f"Not a timestamp: {value!r}")
    return as_naive_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))


def clear_database():
    """
    Wipes all storefront data and recreates the schema.
    """
    import schema  # Ensure all models are registered with Base
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
