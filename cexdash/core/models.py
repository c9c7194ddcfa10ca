# /cexdash/core/models.py
from decimal import Decimal
from typing import Any, Generic, List, TypeVar
from pydantic import BaseModel, ConfigDict, Field

T = TypeVar("T")

class ReadResult(BaseModel, Generic[T]):
    """
    Outcome of a read against the exchange.

    Reads never raise. ``error`` is set when the data is a fallback (empty
    list or static prices) rather than what the exchange returned, so an
    empty ``data`` with ``ok`` true really means "nothing there".
    """
    data: T
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

class Balance(BaseModel):
    asset: str
    free: Decimal
    locked: Decimal
    usd_value: Decimal | None = None

    @property
    def total(self) -> Decimal:
        return self.free + self.locked

class Deposit(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str = ""
    coin: str
    amount: Decimal
    network: str = ""
    status: int = 0
    insert_time: int = Field(0, alias="insertTime")
    tx_id: str = Field("", alias="txId")
    confirm_times: str | None = Field(None, alias="confirmTimes")

class Withdrawal(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str = ""
    coin: str
    amount: Decimal
    network: str = ""
    status: int = 0
    apply_time: str | None = Field(None, alias="applyTime")
    tx_id: str = Field("", alias="txId")

class WithdrawRequest(BaseModel):
    coin: str = ""
    network: str = ""
    address: str = ""
    address_tag: str | None = Field(None, alias="addressTag")
    amount: Any = None

    model_config = ConfigDict(populate_by_name=True)

class WithdrawResult(BaseModel):
    id: str
    status: str
    message: str | None = None

class ApiKeyCapabilities(BaseModel):
    can_read: bool = Field(serialization_alias="canRead")
    can_withdraw: bool = Field(serialization_alias="canWithdraw")

class ValidationResult(BaseModel):
    valid: bool
    errors: List[str] = Field(default_factory=list)
