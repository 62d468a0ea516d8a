"""
Structural validation of transaction requests.

Runs before a unit of work is opened and performs no I/O. Anything it accepts
has every field the effect rules need, already coerced to its final type.
"""
import math
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Mapping, Optional

from foliotrack.core.config import settings
from foliotrack.core.exceptions import ValidationError
from foliotrack.models.transaction import ASSET_KINDS, TransactionKind

ZERO = Decimal("0")

# Kinds whose quantity must be strictly positive (for split it is the ratio)
POSITIVE_QUANTITY_KINDS = ASSET_KINDS

# Alternate spellings accepted from callers, mapped to canonical field names
FIELD_ALIASES = {
    "kind": "transaction_type",
    "action_type": "transaction_type",
    "fee": "fee_amount",
    "fees": "fee_amount",
    "transaction_currency": "currency",
}


@dataclass(frozen=True)
class TransactionRequest:
    """A validated transaction, ready to be recorded."""
    user_id: str
    portfolio_id: int
    platform_id: int
    kind: TransactionKind
    asset_id: Optional[int]
    quantity: Decimal
    price_per_unit: Decimal
    total_amount: Decimal
    currency: str
    fee_amount: Decimal
    transaction_date: date
    notes: Optional[str] = None


def validate_transaction(data: Mapping[str, Any]) -> TransactionRequest:
    """
    Validate a raw transaction payload.

    Raises:
        ValidationError: naming the first missing or invalid field.
    """
    fields = _canonicalize(data)

    kind = _parse_kind(fields.get("transaction_type"))
    portfolio_id = _parse_id(fields, "portfolio_id", required=True)
    user_id = _parse_user(fields.get("user_id"))
    platform_id = _parse_id(fields, "platform_id", required=True)

    asset_id = _parse_id(fields, "asset_id", required=False)
    if asset_id is None and (kind in ASSET_KINDS or kind == TransactionKind.DIVIDEND):
        raise ValidationError("asset_id", f"asset_id is required for {kind.value} transactions")

    quantity = _parse_decimal(fields, "quantity")
    price_per_unit = _parse_decimal(fields, "price_per_unit")
    fee_amount = _parse_decimal(fields, "fee_amount")
    if fields.get("total_amount") is None:
        total_amount = quantity * price_per_unit
    else:
        total_amount = _parse_decimal(fields, "total_amount")

    if kind in POSITIVE_QUANTITY_KINDS and quantity <= ZERO:
        name = "quantity" if kind != TransactionKind.SPLIT else "quantity (split ratio)"
        raise ValidationError("quantity", f"{name} must be greater than zero for {kind.value}")
    for field_name, value in (
        ("quantity", quantity),
        ("price_per_unit", price_per_unit),
        ("total_amount", total_amount),
        ("fee_amount", fee_amount),
    ):
        if value < ZERO:
            raise ValidationError(field_name, f"{field_name} must not be negative")

    return TransactionRequest(
        user_id=user_id,
        portfolio_id=portfolio_id,
        platform_id=platform_id,
        kind=kind,
        asset_id=asset_id,
        quantity=quantity,
        price_per_unit=price_per_unit,
        total_amount=total_amount,
        currency=_parse_currency(fields.get("currency")),
        fee_amount=fee_amount,
        transaction_date=_parse_date(fields.get("transaction_date")),
        notes=fields.get("notes") or None,
    )


def _canonicalize(data: Mapping[str, Any]) -> dict[str, Any]:
    if not isinstance(data, Mapping):
        raise ValidationError("transaction", "Transaction payload must be an object")
    fields: dict[str, Any] = {}
    for key, value in data.items():
        canonical = FIELD_ALIASES.get(key, key)
        # Canonical names win over aliases when both are present
        if canonical in fields and key != canonical:
            continue
        fields[canonical] = value
    return fields


def _parse_kind(value: Any) -> TransactionKind:
    if value is None or value == "":
        raise ValidationError("transaction_type", "transaction_type is required")
    if isinstance(value, TransactionKind):
        return value
    try:
        return TransactionKind(str(value).strip().lower())
    except ValueError:
        raise ValidationError("transaction_type", f"Unrecognized transaction_type: {value}") from None


def _parse_user(value: Any) -> str:
    user_id = str(value).strip() if value is not None else ""
    if not user_id:
        raise ValidationError("user_id", "user_id is required")
    return user_id


def _parse_id(fields: Mapping[str, Any], name: str, required: bool) -> Optional[int]:
    value = fields.get(name)
    if value is None or value == "":
        if required:
            raise ValidationError(name, f"{name} is required")
        return None
    if isinstance(value, bool):
        raise ValidationError(name, f"{name} must be an integer id")
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        raise ValidationError(name, f"{name} must be an integer id") from None
    if parsed <= 0:
        raise ValidationError(name, f"{name} must be a positive id")
    return parsed


def _parse_decimal(fields: Mapping[str, Any], name: str) -> Decimal:
    value = fields.get(name)
    if value is None or value == "":
        return ZERO
    if isinstance(value, bool):
        raise ValidationError(name, f"{name} must be a number")
    if isinstance(value, float):
        if math.isnan(value) or math.isinf(value):
            raise ValidationError(name, f"{name} must be a finite number")
        # str() keeps the shortest repr, so 0.1 stays 0.1
        value = str(value)
    try:
        parsed = Decimal(value) if not isinstance(value, Decimal) else value
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError(name, f"{name} must be a number") from None
    if not parsed.is_finite():
        raise ValidationError(name, f"{name} must be a finite number")
    return parsed


def _parse_currency(value: Any) -> str:
    if value is None or value == "":
        return settings.DEFAULT_CURRENCY
    currency = str(value).strip().upper()
    if len(currency) != 3 or not currency.isalpha():
        raise ValidationError("currency", f"currency must be a 3-letter code, got {value!r}")
    return currency


def _parse_date(value: Any) -> date:
    if value is None or value == "":
        return date.today()
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00")).date()
        except ValueError:
            pass
    raise ValidationError("transaction_date", f"transaction_date must be an ISO date, got {value!r}")
