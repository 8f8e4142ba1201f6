"""Currency -- ISO 4217 registry for the currencies a shop can trade in."""

from dataclasses import dataclass
from decimal import Decimal
from typing import ClassVar


@dataclass(frozen=True)
class CurrencyInfo:
    """Minor-unit precision and display data for one ISO 4217 currency."""

    code: str
    decimal_places: int
    name: str
    symbol: str

    @property
    def minor_unit(self) -> Decimal:
        """Smallest representable amount (also the comparison tolerance)."""
        return Decimal(1).scaleb(-self.decimal_places)


class CurrencyRegistry:
    """Known currencies keyed by upper-case ISO code."""

    _CURRENCIES: ClassVar[dict[str, CurrencyInfo]] = {
        # South Asia, where the shop ledger is primarily run
        "BDT": CurrencyInfo("BDT", 2, "Bangladeshi Taka", "৳"),
        "INR": CurrencyInfo("INR", 2, "Indian Rupee", "₹"),
        "PKR": CurrencyInfo("PKR", 2, "Pakistani Rupee", "Rs"),
        "LKR": CurrencyInfo("LKR", 2, "Sri Lankan Rupee", "Rs"),
        "NPR": CurrencyInfo("NPR", 2, "Nepalese Rupee", "Rs"),
        "MYR": CurrencyInfo("MYR", 2, "Malaysian Ringgit", "RM"),
        "SGD": CurrencyInfo("SGD", 2, "Singapore Dollar", "S$"),
        "AED": CurrencyInfo("AED", 2, "UAE Dirham", "AED"),
        "SAR": CurrencyInfo("SAR", 2, "Saudi Riyal", "SAR"),
        # Majors
        "USD": CurrencyInfo("USD", 2, "US Dollar", "$"),
        "EUR": CurrencyInfo("EUR", 2, "Euro", "€"),
        "GBP": CurrencyInfo("GBP", 2, "Pound Sterling", "£"),
        # Non-two-decimal currencies
        "JPY": CurrencyInfo("JPY", 0, "Japanese Yen", "¥"),
        "KRW": CurrencyInfo("KRW", 0, "South Korean Won", "₩"),
        "KWD": CurrencyInfo("KWD", 3, "Kuwaiti Dinar", "KD"),
        "OMR": CurrencyInfo("OMR", 3, "Omani Rial", "OMR"),
    }

    DEFAULT_DECIMAL_PLACES: ClassVar[int] = 2

    @classmethod
    def is_valid(cls, code: str) -> bool:
        if not code or not isinstance(code, str):
            return False
        return code.upper().strip() in cls._CURRENCIES

    @classmethod
    def get_info(cls, code: str) -> CurrencyInfo | None:
        if not code or not isinstance(code, str):
            return None
        return cls._CURRENCIES.get(code.upper().strip())

    @classmethod
    def get_decimal_places(cls, code: str) -> int:
        info = cls.get_info(code)
        return info.decimal_places if info else cls.DEFAULT_DECIMAL_PLACES

    @classmethod
    def get_minor_unit(cls, code: str) -> Decimal:
        return Decimal(1).scaleb(-cls.get_decimal_places(code))

    @classmethod
    def validate(cls, code: str) -> str:
        """Validate and normalize a currency code.

        Raises:
            ValueError: unknown or malformed code.
        """
        if not code or not isinstance(code, str):
            raise ValueError(f"Invalid currency code: {code!r}")

        normalized = code.upper().strip()
        if len(normalized) != 3:
            raise ValueError(f"Currency code must be 3 characters: {code!r}")
        if normalized not in cls._CURRENCIES:
            raise ValueError(f"Unsupported currency code: {code!r}")
        return normalized
