"""Pydantic schemas for API request/response validation"""

from datetime import date
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field

from buho_gateway.domain.models import Account, LinkFailure, Transaction, from_cents


class AccountSchema(BaseModel):
    """Normalized bank account"""

    id: str
    link_id: str
    institution_name: str
    name: str
    type: str
    current_balance: Decimal
    available_balance: Optional[Decimal] = None
    mask: Optional[str] = None

    @classmethod
    def from_domain(cls, account: Account) -> "AccountSchema":
        return cls(
            id=account.id,
            link_id=account.link_id,
            institution_name=account.institution_name,
            name=account.name,
            type=account.type.value,
            current_balance=from_cents(account.current_balance_cents),
            available_balance=(
                from_cents(account.available_balance_cents)
                if account.available_balance_cents is not None
                else None
            ),
            mask=account.mask,
        )


class LinkFailureSchema(BaseModel):
    """Bank link that could not be read for this response"""

    link_id: str
    institution_name: str
    code: str
    reason: str
    retryable: bool

    @classmethod
    def from_domain(cls, failure: LinkFailure) -> "LinkFailureSchema":
        return cls(
            link_id=failure.link_id,
            institution_name=failure.institution_name,
            code=failure.code,
            reason=failure.reason,
            retryable=failure.retryable,
        )


class AccountsResponse(BaseModel):
    """Response for GET /v1/accounts"""

    status: str
    accounts: List[AccountSchema] = []
    total_banks: int = 0
    total_current_balance: Decimal = Decimal("0.00")
    failed_links: List[LinkFailureSchema] = []


class TransactionSchema(BaseModel):
    """Single entry in the merged transaction feed"""

    id: str
    account_id: str
    amount: Decimal
    description: str
    category: str
    posted_date: date
    pending: bool

    @classmethod
    def from_domain(cls, txn: Transaction) -> "TransactionSchema":
        return cls(
            id=txn.id,
            account_id=txn.account_id,
            amount=from_cents(txn.amount_cents),
            description=txn.description,
            category=txn.category,
            posted_date=txn.posted_date,
            pending=txn.pending,
        )


class TransactionsResponse(BaseModel):
    """Response for GET /v1/transactions"""

    status: str
    page: int
    page_size: int
    total_item_count: int = 0
    total_pages: int = 0
    items: List[TransactionSchema] = []
    failed_links: List[LinkFailureSchema] = []


class LinkTokenResponse(BaseModel):
    """Response for POST /v1/link/token"""

    link_token: str
    expiration: str


class ExchangeRequest(BaseModel):
    """Request body for POST /v1/link/exchange"""

    public_token: str = Field(..., min_length=1, description="Token returned by the linking UI")
    institution_name: str = Field(..., min_length=1, description="Institution chosen in the linking UI")


class BankLinkResponse(BaseModel):
    """Response for POST /v1/link/exchange"""

    link_id: str
    item_id: str
    institution_name: str
    created_at: Optional[str] = None
