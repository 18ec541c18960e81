from decimal import Decimal, InvalidOperation

from felicity.exceptions import ValidationError
from felicity.utils.dates import parse_datetime


def parse_enum(enum_cls, value, field):
    try:
        return enum_cls(value)
    except ValueError:
        allowed = [member.value for member in enum_cls]
        raise ValidationError(f"Invalid {field}. Must be one of: {allowed}", [field])


def parse_int(value, field, minimum=0):
    if isinstance(value, bool):
        raise ValidationError(f"Invalid format for {field}, must be an integer", [field])
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid format for {field}, must be an integer", [field])
    if parsed != value and not isinstance(value, str):
        # 2.5 is not an integer even though int() accepts it
        raise ValidationError(f"Invalid format for {field}, must be an integer", [field])
    if parsed < minimum:
        raise ValidationError(f"{field} must be at least {minimum}", [field])
    return parsed


def parse_decimal(value, field):
    try:
        parsed = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"Invalid format for {field}", [field])
    if not parsed.is_finite() or parsed < 0:
        raise ValidationError(f"{field} must be a non-negative amount", [field])
    return parsed


def parse_date_field(value, field):
    try:
        return parse_datetime(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid date format for {field}", [field])


def parse_string_list(value, field):
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ValidationError(f"{field} must be a list of strings", [field])
    return value
