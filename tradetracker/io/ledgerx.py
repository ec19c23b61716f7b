# tradetracker/io/ledgerx.py
"""
Exchange API payloads.

Pydantic models for the raw JSON pages returned by the exchange's trading
and funds endpoints, plus the contract metadata lookup.
"""

import logging
from datetime import datetime
from enum import Enum
from typing import Annotated, Any, List, Optional

import requests
from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, ValidationError, model_validator

from tradetracker.domain.lot import Label
from tradetracker.errors import InvariantViolation, MalformedInputError, MissingDataError
from tradetracker.option import OptionSpec, PutCall
from tradetracker.units.asset import Asset, BudgetAsset, DepositAsset, TaxAsset, Underlying
from tradetracker.units.price import Price
from tradetracker.units.utc_time import parse_timestamp

logger = logging.getLogger(__name__)

CONTRACT_URL = "https://api.ledgerx.com/trading/contracts/{}"
REQUEST_TIMEOUT = 10


def _timestamp(value: Any) -> Any:
    if isinstance(value, str):
        try:
            return parse_timestamp(value)
        except MalformedInputError as e:
            raise ValueError(str(e)) from e
    return value


def _from_api(enum_cls):
    def validate(value: Any) -> Any:
        if isinstance(value, enum_cls):
            return value
        try:
            return enum_cls.from_api(value)
        except MalformedInputError as e:
            raise ValueError(str(e)) from e
    return BeforeValidator(validate)


Timestamp = Annotated[datetime, BeforeValidator(_timestamp)]
# Deposits say {"name": "CBTC"} where everything else says "CBTC"
ApiDepositAsset = Annotated[DepositAsset, _from_api(DepositAsset)]
ApiUnderlying = Annotated[Underlying, _from_api(Underlying)]
ContractId = Annotated[str, BeforeValidator(lambda v: str(v) if isinstance(v, int) else v)]


class ApiModel(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)


class DerivativeType(str, Enum):
    OPTION = "options_contract"
    NEXT_DAY = "day_ahead_swap"
    FUTURE = "future_contract"


class Contract(ApiModel):
    """A contract as described by the exchange."""
    id: int
    active: bool
    underlying_asset: ApiUnderlying
    derivative_type: DerivativeType
    date_expires: Timestamp
    date_exercise: Optional[Timestamp] = None
    # Cents
    strike_price: Optional[int] = None
    option_type: Optional[str] = Field(default=None, alias="type")
    multiplier: int
    label: str

    model_config = ConfigDict(extra="ignore", frozen=True, populate_by_name=True)

    @model_validator(mode="after")
    def _check_option_fields(self) -> "Contract":
        if self.derivative_type is DerivativeType.OPTION:
            for field in ("date_exercise", "strike_price", "option_type"):
                if getattr(self, field) is None:
                    raise ValueError(f"option contract {self.id} missing field '{field}'")
            if self.option_type not in ("put", "call"):
                raise ValueError(f"option contract {self.id} has unknown type {self.option_type!r}")
        return self

    @property
    def contract_id(self) -> str:
        return str(self.id)

    def expiry(self) -> datetime:
        return self.date_expires

    def is_option(self) -> bool:
        return self.derivative_type is DerivativeType.OPTION

    def is_next_day(self) -> bool:
        return self.derivative_type is DerivativeType.NEXT_DAY

    def as_option(self) -> Optional[OptionSpec]:
        if not self.is_option():
            return None
        pc = PutCall.CALL if self.option_type == "call" else PutCall.PUT
        return OptionSpec(pc, Price.from_cents(self.strike_price), self.date_expires)

    def asset(self) -> Asset:
        if self.is_option():
            return Asset.from_option(self.underlying_asset, self.as_option())
        if self.is_next_day():
            return Asset.next_day(self.underlying_asset, self.date_expires)
        return Asset.future(self.underlying_asset, self.date_expires)

    def tax_asset(self) -> Optional[TaxAsset]:
        if self.is_option():
            return TaxAsset.from_option(self.underlying_asset, self.as_option())
        if self.is_next_day() and self.underlying_asset is Underlying.BTC:
            return TaxAsset.bitcoin()
        return None

    def budget_asset(self) -> Optional[BudgetAsset]:
        tax_asset = self.tax_asset()
        if tax_asset is None:
            return None
        return BudgetAsset.from_tax_asset(tax_asset)

    def tax_label(self) -> Label:
        """The label this contract gets in the year-end tax CSV."""
        tax_asset = self.tax_asset()
        if tax_asset is None:
            raise InvariantViolation(f"no tax label for contract {self.id} ({self.label})")
        return Label.from_tax_asset(tax_asset)


class Side(str, Enum):
    BID = "bid"
    ASK = "ask"


class Meta(ApiModel):
    next: Optional[str] = None


class DepositAddress(ApiModel):
    address: str
    asset: ApiDepositAsset


class Deposit(ApiModel):
    # Satoshis for BTC, cents for USD
    amount: int
    asset: ApiDepositAsset
    deposit_address: DepositAddress
    created_at: Timestamp


class Withdrawal(ApiModel):
    amount: int
    asset: ApiDepositAsset
    created_at: Timestamp


class Trade(ApiModel):
    contract_id: ContractId
    execution_time: Timestamp
    # Cents
    filled_price: int
    filled_size: int
    side: Side
    # Cents
    fee: int


class Position(ApiModel):
    size: int
    assigned_size: int
    contract: Contract
    has_settled: bool


class Page(ApiModel):
    meta: Optional[Meta] = None

    def next_url(self) -> Optional[str]:
        return self.meta.next if self.meta is not None else None


class DepositsPage(Page):
    data: List[Deposit]


class WithdrawalsPage(Page):
    data: List[Withdrawal]


class TradesPage(Page):
    data: List[Trade]


class PositionsPage(Page):
    data: List[Position]


def parse_page(model, payload: Any, source: str):
    """Validate one raw API page, naming `source` in any error."""
    try:
        return model.model_validate(payload)
    except ValidationError as e:
        raise MalformedInputError(f"{source}: invalid {model.__name__}: {e}") from e


def fetch_contract(contract_id: str) -> Contract:
    """
    Look up a contract by id on the exchange's public API.

    Raises:
        MissingDataError: if the request fails
        MalformedInputError: if the response is not a contract
    """
    url = CONTRACT_URL.format(contract_id)
    logger.info("Fetching contract %s", contract_id)
    try:
        response = requests.get(url, timeout=REQUEST_TIMEOUT)
        response.raise_for_status()
        payload = response.json()
    except (requests.RequestException, ValueError) as e:
        raise MissingDataError(f"lookup of contract {contract_id} failed: {e}") from e

    if not isinstance(payload, dict) or "data" not in payload:
        raise MalformedInputError(f"contract {contract_id}: response has no 'data' field")
    return parse_page(Contract, payload["data"], f"contract {contract_id}")
