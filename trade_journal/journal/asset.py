"""
Asset reference data — the instruments trades are opened in.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from trade_journal.journal.validation import (
    decimal_to_str, isoformat_or_none, to_decimal, validate_asset,
)


class AssetClass(str, Enum):
    STOCK = "STOCK"
    ETF = "ETF"
    FUND = "FUND"
    CERTIFICATE = "CERTIFICATE"
    CRYPTO = "CRYPTO"
    BOND = "BOND"
    INDEX = "INDEX"
    OPTION = "OPTION"
    FUTURE = "FUTURE"
    COMMODITY = "COMMODITY"
    REAL_ESTATE = "REAL_ESTATE"


class Exchange(str, Enum):
    NASDAQ = "NASDAQ"
    NYSE = "NYSE"
    STOCKHOLM = "STOCKHOLM"
    BINANCE = "BINANCE"
    XETRA = "XETRA"
    LONDON = "LONDON"
    OTHER = "OTHER"


class Sector(str, Enum):
    """Broad GICS/ICB-style economic sectors."""
    TECHNOLOGY = "TECHNOLOGY"
    HEALTHCARE = "HEALTHCARE"
    FINANCIALS = "FINANCIALS"
    ENERGY = "ENERGY"
    INDUSTRIALS = "INDUSTRIALS"
    UTILITIES = "UTILITIES"
    REAL_ESTATE = "REAL_ESTATE"
    CONSUMER_DEFENSIVE = "CONSUMER_DEFENSIVE"
    OTHER = "OTHER"


class Industry(str, Enum):
    """Finer-grained than Sector."""
    SEMICONDUCTORS = "SEMICONDUCTORS"
    SOFTWARE = "SOFTWARE"
    BIOTECHNOLOGY = "BIOTECHNOLOGY"
    PHARMACEUTICALS = "PHARMACEUTICALS"
    BANKING = "BANKING"
    INSURANCE = "INSURANCE"
    ECOMMERCE = "ECOMMERCE"
    TELECOMMUNICATIONS = "TELECOMMUNICATIONS"
    RENEWABLE_ENERGY = "RENEWABLE_ENERGY"
    OIL_GAS = "OIL_GAS"
    DEFENSE = "DEFENSE"
    AEROSPACE = "AEROSPACE"
    RETAIL = "RETAIL"
    TRANSPORTATION = "TRANSPORTATION"
    MANUFACTURING = "MANUFACTURING"
    CONSTRUCTION = "CONSTRUCTION"
    EDUCATION = "EDUCATION"
    ENTERTAINMENT = "ENTERTAINMENT"
    FOOD_BEVERAGE = "FOOD_BEVERAGE"
    AGRICULTURE = "AGRICULTURE"
    REAL_ESTATE_DEVELOPMENT = "REAL_ESTATE_DEVELOPMENT"
    OTHER = "OTHER"


_UNTRACKED = frozenset({"id", "last_updated"})


@dataclass(eq=False)
class Asset:
    """
    A tradable instrument (stock, ETF, certificate, ...).

    Shared by any number of trades and never owned by one. ``last_updated``
    moves forward on every attribute assignment; call :meth:`touch` after
    editing ``sectors`` or ``industries`` in place.
    """
    name: str
    ticker: str
    isin: str                       # unique across the store
    asset_class: AssetClass
    currency: str                   # ISO 4217, e.g. "SEK"
    exchange: Exchange
    id: Optional[int] = None
    is_leveraged: bool = False
    leverage_ratio: Optional[Decimal] = None   # 2.0 = 2x
    is_investment_company: bool = False
    dividend_yield: Optional[Decimal] = None   # 4.25 = 4.25 %
    sectors: List[Sector] = field(default_factory=list)
    industries: List[Industry] = field(default_factory=list)
    last_updated: Optional[datetime] = None

    def __post_init__(self):
        # object.__setattr__ keeps a loaded last_updated intact
        object.__setattr__(self, "asset_class", AssetClass(self.asset_class))
        object.__setattr__(self, "exchange", Exchange(self.exchange))
        object.__setattr__(self, "sectors", [Sector(s) for s in self.sectors])
        object.__setattr__(self, "industries", [Industry(i) for i in self.industries])
        object.__setattr__(self, "leverage_ratio", to_decimal(self.leverage_ratio, "leverage_ratio"))
        object.__setattr__(self, "dividend_yield", to_decimal(self.dividend_yield, "dividend_yield"))
        if self.last_updated is None:
            object.__setattr__(self, "last_updated", datetime.now())
        validate_asset(self)

    def __setattr__(self, name, value):
        object.__setattr__(self, name, value)
        if name not in _UNTRACKED and "last_updated" in self.__dict__:
            self.touch()

    def touch(self):
        object.__setattr__(self, "last_updated", datetime.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "ticker": self.ticker,
            "isin": self.isin,
            "asset_class": self.asset_class.value,
            "currency": self.currency,
            "exchange": self.exchange.value,
            "is_leveraged": self.is_leveraged,
            "leverage_ratio": decimal_to_str(self.leverage_ratio),
            "is_investment_company": self.is_investment_company,
            "dividend_yield": decimal_to_str(self.dividend_yield),
            "sectors": [s.value for s in self.sectors],
            "industries": [i.value for i in self.industries],
            "last_updated": isoformat_or_none(self.last_updated),
        }
