"""Account normalizer - maps loosely shaped provider payloads onto domain models"""

import logging
from datetime import date
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Dict, List, Optional

from buho_gateway.domain.feed import feed_order_key
from buho_gateway.domain.models import (
    CENT,
    Account,
    AccountType,
    AggregateBalance,
    BankLink,
    Transaction,
)

logger = logging.getLogger(__name__)

_DEPOSITORY_SUBTYPES = {
    "checking": AccountType.CHECKING,
    "savings": AccountType.SAVINGS,
}

_DIRECT_TYPES = {
    "checking": AccountType.CHECKING,
    "savings": AccountType.SAVINGS,
    "credit": AccountType.CREDIT,
}


class MalformedRecord(ValueError):
    """A single provider record cannot be mapped"""

    pass


def to_cents(value: Any) -> int:
    """
    Convert a provider amount to integer cents.

    Goes through ``str`` so float payloads like 123.5 become exactly 12350.
    Rounds half up at the cent.
    """
    if value is None or isinstance(value, bool):
        raise MalformedRecord(f"not an amount: {value!r}")
    try:
        amount = Decimal(str(value))
    except InvalidOperation as e:
        raise MalformedRecord(f"not an amount: {value!r}") from e
    if not amount.is_finite():
        raise MalformedRecord(f"not an amount: {value!r}")
    try:
        return int(amount.quantize(CENT, rounding=ROUND_HALF_UP) * 100)
    except InvalidOperation as e:
        # more digits than the decimal context can hold
        raise MalformedRecord(f"amount out of range: {value!r}") from e


def map_account_type(raw_type: Optional[str], subtype: Optional[str] = None) -> AccountType:
    """Map provider type/subtype onto the closed AccountType set; unknown -> OTHER"""
    kind = (raw_type or "").strip().lower()
    if kind == "depository":
        return _DEPOSITORY_SUBTYPES.get((subtype or "").strip().lower(), AccountType.OTHER)
    return _DIRECT_TYPES.get(kind, AccountType.OTHER)


def _required(record: Dict[str, Any], key: str) -> Any:
    value = record.get(key)
    if value is None or value == "":
        raise MalformedRecord(f"missing {key}")
    return value


def _normalize_account(raw: Dict[str, Any], link: BankLink) -> Account:
    if not isinstance(raw, dict):
        raise MalformedRecord("account record is not an object")

    account_id = str(_required(raw, "account_id"))
    balances = raw.get("balances")
    if not isinstance(balances, dict):
        raise MalformedRecord("missing balances")

    current = to_cents(_required(balances, "current"))
    available_raw = balances.get("available")
    available = to_cents(available_raw) if available_raw is not None else None

    return Account(
        id=account_id,
        link_id=link.id,
        institution_name=link.institution_name,
        name=raw.get("name") or raw.get("official_name") or "Cuenta",
        type=map_account_type(raw.get("type"), raw.get("subtype")),
        current_balance_cents=current,
        available_balance_cents=available,
        mask=raw.get("mask") or None,
    )


def normalize(raw_accounts: List[Dict[str, Any]], link: BankLink) -> List[Account]:
    """
    Map raw provider account records onto Account for one bank link.

    A malformed record is logged and skipped; the rest of the batch is kept.
    Unknown account types become AccountType.OTHER.
    """
    accounts = []
    for index, raw in enumerate(raw_accounts):
        try:
            accounts.append(_normalize_account(raw, link))
        except MalformedRecord as e:
            logger.warning(
                f"Skipping malformed account record: {e}",
                extra={"link_id": link.id, "record_index": index},
            )
    return accounts


def _primary_category(raw_category: Any) -> str:
    if isinstance(raw_category, (list, tuple)):
        raw_category = raw_category[0] if raw_category else None
    if isinstance(raw_category, dict):
        raw_category = raw_category.get("primary")
    return str(raw_category) if raw_category else "uncategorized"


def _normalize_transaction(raw: Dict[str, Any], sequence: int) -> Transaction:
    if not isinstance(raw, dict):
        raise MalformedRecord("transaction record is not an object")

    try:
        posted = date.fromisoformat(str(_required(raw, "date")))
    except ValueError as e:
        raise MalformedRecord(f"bad date: {raw.get('date')!r}") from e

    return Transaction(
        id=str(_required(raw, "transaction_id")),
        account_id=str(_required(raw, "account_id")),
        # Provider reports money leaving the account as positive
        amount_cents=-to_cents(_required(raw, "amount")),
        description=raw.get("name") or raw.get("merchant_name") or "",
        category=_primary_category(raw.get("category")),
        posted_date=posted,
        pending=bool(raw.get("pending", False)),
        sequence=sequence,
    )


def normalize_transactions(raw_transactions: List[Dict[str, Any]]) -> Dict[str, List[Transaction]]:
    """
    Group raw provider transactions by account.

    Each per-account list comes back sorted by feed_order_key, ready for
    merging. Malformed records are logged and skipped.
    """
    per_account: Dict[str, List[Transaction]] = {}
    for sequence, raw in enumerate(raw_transactions):
        try:
            txn = _normalize_transaction(raw, sequence)
        except MalformedRecord as e:
            logger.warning(f"Skipping malformed transaction record: {e}", extra={"record_index": sequence})
            continue
        per_account.setdefault(txn.account_id, []).append(txn)

    return {account_id: sorted(txns, key=feed_order_key) for account_id, txns in per_account.items()}


def compute_aggregate(accounts: List[Account]) -> AggregateBalance:
    """
    Cross-account totals.

    total_banks counts distinct links that contributed at least one account;
    the balance is an exact integer sum in cents.
    """
    return AggregateBalance(
        total_banks=len({account.link_id for account in accounts}),
        total_current_balance_cents=sum(account.current_balance_cents for account in accounts),
    )
