from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


ACTIVITY_LIMIT = 5


# ── Enums ─────────────────────────────────────────────────────────────────────


class Chain(str, Enum):
    BTC = "BTC"
    ETH = "ETH"
    SOL = "SOL"
    ADA = "ADA"


class AddressKind(str, Enum):
    STANDARD = "standard"
    EXTENDED_PUBLIC_KEY = "xpub"
    PAYMENT = "payment"
    STAKE = "stake"
    ACCOUNT = "account"
    INVALID = "invalid"


class ErrorKind(str, Enum):
    INVALID_FORMAT = "InvalidFormat"
    MALFORMED_ADDRESS = "MalformedAddress"
    INVALID_ADDRESS = "InvalidAddress"
    PROVIDER_UNAVAILABLE = "ProviderUnavailable"
    UNSUPPORTED_CHAIN = "UnsupportedChain"
    RESOLUTION_FAILED = "ResolutionFailed"


class ActivityStatus(str, Enum):
    CONFIRMED = "Confirmed"
    PENDING = "Pending"
    SUCCESS = "Success"
    FAIL = "Fail"
    INFO = "Info"
    MIXED = "Mixed"


class ResolutionState(str, Enum):
    OK = "ok"
    DEGRADED = "degraded"
    FAILED = "failed"


# ── Core Data Models ──────────────────────────────────────────────────────────


class WalletRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    chain: str
    address: str


class ActivityEntry(BaseModel):
    hash: str
    label: str
    date: str
    status: ActivityStatus


class WalletResult(BaseModel):
    """Per-wallet outcome: either a balance with activity, or an error."""

    chain: str
    address: str
    balance: Optional[float] = None
    activity: Optional[list[ActivityEntry]] = None
    error: Optional[ErrorKind] = None
    state: ResolutionState = ResolutionState.OK
    warnings: list[str] = []

    @model_validator(mode="after")
    def _one_arm_only(self):
        if (self.balance is None) == (self.error is None):
            raise ValueError("exactly one of balance or error must be set")
        if self.error is not None and self.activity is not None:
            raise ValueError("errored results carry no activity")
        if self.activity is not None and len(self.activity) > ACTIVITY_LIMIT:
            raise ValueError(f"at most {ACTIVITY_LIMIT} activity entries allowed")
        return self

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def resolved(
        cls,
        chain: str,
        address: str,
        balance: float,
        activity: list[ActivityEntry],
        state: ResolutionState = ResolutionState.OK,
        warnings: Optional[list[str]] = None,
    ) -> "WalletResult":
        return cls(
            chain=chain,
            address=address,
            balance=balance,
            activity=activity[:ACTIVITY_LIMIT],
            state=state,
            warnings=warnings or [],
        )

    @classmethod
    def failed(cls, chain: str, address: str, error: ErrorKind) -> "WalletResult":
        return cls(
            chain=chain,
            address=address,
            error=error,
            state=ResolutionState.FAILED,
        )


class FiatAmounts(BaseModel):
    usd: float = 0.0
    eur: float = 0.0
    chf: float = 0.0

    def scaled(self, amount: float) -> "FiatAmounts":
        return FiatAmounts(
            usd=amount * self.usd,
            eur=amount * self.eur,
            chf=amount * self.chf,
        )


class PortfolioEntry(WalletResult):
    price: Optional[FiatAmounts] = None
    value: Optional[FiatAmounts] = None


# ── API Models ────────────────────────────────────────────────────────────────


class HealthResponse(BaseModel):
    status: str
    version: str


class PortfolioRequest(BaseModel):
    wallets: list[WalletRequest] = Field(
        ..., description="Wallets to resolve, as {chain, address} pairs"
    )
