"""Domain models - pure Python dataclasses representing business entities"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional

CENT = Decimal("0.01")


def from_cents(cents: int) -> Decimal:
    """Display form of a cent amount"""
    return (Decimal(cents) / 100).quantize(CENT)


@dataclass(frozen=True)
class User:
    """Identity resolved from the current session"""

    id: str
    name: str
    email: str


@dataclass(frozen=True)
class LinkToken:
    """Short-lived token that opens the provider's linking UI"""

    link_token: str
    expiration: str


@dataclass(frozen=True)
class AccessCredential:
    """Durable provider credential returned by a completed link handshake"""

    access_token: str
    item_id: str


@dataclass(frozen=True)
class BankLink:
    """One institution connection owned by a user"""

    id: str
    user_id: str
    item_id: str
    access_token: str
    institution_name: str
    created_at: Optional[datetime] = None

    @property
    def credential(self) -> AccessCredential:
        return AccessCredential(access_token=self.access_token, item_id=self.item_id)


class AccountType(str, Enum):
    CHECKING = "checking"
    SAVINGS = "savings"
    CREDIT = "credit"
    OTHER = "other"


@dataclass(frozen=True)
class Account:
    """Normalized bank account; rebuilt from provider data on every fetch"""

    id: str
    link_id: str
    institution_name: str
    name: str
    type: AccountType
    current_balance_cents: int
    available_balance_cents: Optional[int] = None
    mask: Optional[str] = None


@dataclass(frozen=True)
class AggregateBalance:
    """Cross-account totals, kept in cents until displayed"""

    total_banks: int
    total_current_balance_cents: int

    @property
    def total_current_balance(self) -> Decimal:
        return from_cents(self.total_current_balance_cents)


@dataclass(frozen=True)
class Transaction:
    """Posted or pending transaction on one account"""

    id: str
    account_id: str
    amount_cents: int  # negative = debit
    description: str
    category: str
    posted_date: date
    pending: bool
    sequence: int  # provider order within the account


@dataclass(frozen=True)
class DateRange:
    """Inclusive calendar date window"""

    start: date
    end: date


@dataclass
class Page:
    """Window over the merged transaction feed"""

    page_number: int
    page_size: int
    total_item_count: int
    items: List[Transaction] = field(default_factory=list)

    @property
    def total_pages(self) -> int:
        return -(-self.total_item_count // self.page_size)


class RequestStatus(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    COMPLETED = "completed"
    PARTIALLY_FAILED = "partially_failed"
    FAILED = "failed"


@dataclass(frozen=True)
class LinkFailure:
    """Why one bank link could not be read"""

    link_id: str
    institution_name: str
    code: str
    reason: str
    retryable: bool


@dataclass
class AccountsResult:
    """Outcome of a "get my accounts" request"""

    status: RequestStatus
    accounts: List[Account] = field(default_factory=list)
    aggregate: AggregateBalance = field(default_factory=lambda: AggregateBalance(0, 0))
    failed_links: List[LinkFailure] = field(default_factory=list)


@dataclass
class TransactionsResult:
    """Outcome of a "get my transactions" request"""

    status: RequestStatus
    page: Optional[Page] = None
    failed_links: List[LinkFailure] = field(default_factory=list)
