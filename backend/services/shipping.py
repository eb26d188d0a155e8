import logging
from dataclasses import dataclass, asdict
from decimal import Decimal, ROUND_HALF_UP
from sqlalchemy.exc import IntegrityError
from schema import ShippingConfig, SHIPPING_CONFIG_ID
from services.errors import ValidationError
from utils import to_minor, from_minor, utcnow

logger = logging.getLogger(__name__)

STANDARD = "standard"
EXPRESS = "express"
SHIPPING_METHODS = (STANDARD, EXPRESS)

# camelCase API name -> (column, kind)
CONFIG_FIELDS = {
    "standardShippingCost": ("standard_shipping_cost", "money"),
    "freeShippingThreshold": ("free_shipping_threshold", "money"),
    "expressShippingCost": ("express_shipping_cost", "money"),
    "taxRate": ("tax_rate", "rate"),
    "freeShippingEnabled": ("free_shipping_enabled", "flag"),
    "expressShippingEnabled": ("express_shipping_enabled", "flag"),
}


@dataclass(frozen=True)
class ShippingSettings:
    """
    Immutable snapshot of the shipping configuration, loaded once per request
    and passed to the pricing functions. Money values are in paise.
    """
    standard_shipping_cost: int = 4000
    free_shipping_threshold: int = 50000
    express_shipping_cost: int = 8000
    tax_rate: float = 0.18
    free_shipping_enabled: bool = True
    express_shipping_enabled: bool = False

    @classmethod
    def from_row(cls, row: ShippingConfig) -> "ShippingSettings":
        return cls(**{column: getattr(row, column) for column, _ in CONFIG_FIELDS.values()})

    def to_json(self) -> dict:
        values = asdict(self)
        out = {}
        for name, (column, kind) in CONFIG_FIELDS.items():
            out[name] = from_minor(values[column]) if kind == "money" else values[column]
        return out


# Used by storefront clients when the configuration cannot be fetched:
# no shipping and no tax, so a provisional total is never overstated.
ZERO_SETTINGS = ShippingSettings(
    standard_shipping_cost=0,
    free_shipping_threshold=0,
    express_shipping_cost=0,
    tax_rate=0.0,
    free_shipping_enabled=False,
    express_shipping_enabled=False,
)


def parse_config_fields(data: dict) -> dict:
    """
    Validates a (possibly partial) camelCase config payload.

    Args:
        data: Request body. Unknown keys are ignored.

    Returns:
        A mapping of column name to validated value for every supplied field.

    Raises:
        ValidationError: If a supplied value has the wrong type or range.
    """
    updates = {}
    for name, (column, kind) in CONFIG_FIELDS.items():
        if name not in data:
            continue
        value = data[name]
        if kind == "flag":
            if not isinstance(value, bool):
                raise ValidationError(f"{name} must be a boolean")
            updates[column] = value
            continue
        try:
            if kind == "money":
                parsed = to_minor(value)
            else:
                if isinstance(value, bool):
                    raise ValueError(value)
                parsed = float(value)
        except (TypeError, ValueError):
            raise ValidationError(f"{name} must be a number")
        if kind == "rate" and not 0 <= parsed <= 1:
            raise ValidationError(f"{name} must be between 0 and 1")
        if parsed < 0:
            raise ValidationError(f"{name} must not be negative")
        updates[column] = parsed
    return updates


class ShippingConfigService:
    """
    Owns the single live shipping configuration row.
    """
    def __init__(self, db):
        self.db = db

    def _load_row(self, commit: bool = True) -> ShippingConfig:
        row = self.db.get(ShippingConfig, SHIPPING_CONFIG_ID)
        if row is not None:
            return row

        row = ShippingConfig(config_id=SHIPPING_CONFIG_ID, updated_at=utcnow())
        self.db.add(row)
        if not commit:
            self.db.flush()
            return row
        try:
            self.db.commit()
            logger.info("Created default shipping configuration")
        except IntegrityError:
            # Another request created the row first
            self.db.rollback()
            row = self.db.get(ShippingConfig, SHIPPING_CONFIG_ID)
        return row

    def get_config(self, commit: bool = True) -> ShippingSettings:
        """
        Returns the current configuration, creating the default row on first read.

        Args:
            commit: When False the default row is only flushed, so the caller's
                surrounding transaction decides whether it persists.
        """
        return ShippingSettings.from_row(self._load_row(commit=commit))

    def update_config(self, fields: dict) -> ShippingSettings:
        """
        Overwrites the supplied fields, leaving every other field untouched.

        Args:
            fields: Column name to value mapping from `parse_config_fields`.
        """
        row = self._load_row()
        for column, value in fields.items():
            setattr(row, column, value)
        row.updated_at = utcnow()
        self.db.commit()
        logger.info("Shipping configuration updated: %s", sorted(fields))
        return ShippingSettings.from_row(row)


def compute_shipping(items_price: int, config: ShippingSettings, method: str = STANDARD) -> int:
    """
    Shipping cost in paise for an order.

    Standard shipping is free when free shipping is enabled and the items
    price is strictly above the threshold. Express shipping always costs the
    configured express rate and is only available when enabled.

    Raises:
        ValidationError: For an unknown method or disabled express shipping.
    """
    if method == STANDARD:
        if config.free_shipping_enabled and items_price > config.free_shipping_threshold:
            return 0
        return config.standard_shipping_cost
    if method == EXPRESS:
        if not config.express_shipping_enabled:
            raise ValidationError("Express shipping is not available")
        return config.express_shipping_cost
    raise ValidationError(f"Unknown shipping method: {method}")


def compute_tax(items_price: int, config: ShippingSettings) -> int:
    """Tax in paise, levied on the items price only."""
    tax = Decimal(items_price) * Decimal(str(config.tax_rate))
    return int(tax.quantize(Decimal("1"), rounding=ROUND_HALF_UP))
