"""Aggregation facade - one "get my accounts" / "get my transactions" request end to end"""

import asyncio
import logging
import time
from typing import Awaitable, Callable, Dict, List, Optional, Tuple, TypeVar

from buho_gateway.config import settings
from buho_gateway.domain.exceptions import AccountNotFound, InvalidArgument, ProviderError, Unauthenticated
from buho_gateway.domain.feed import check_page_args, feed_order_key, merge_and_sort, paginate
from buho_gateway.domain.models import (
    Account,
    AccountsResult,
    BankLink,
    DateRange,
    LinkFailure,
    LinkToken,
    RequestStatus,
    Transaction,
    TransactionsResult,
    User,
)
from buho_gateway.domain.normalizer import compute_aggregate, normalize, normalize_transactions
from buho_gateway.infrastructure.clients.aggregator import AggregatorClient
from buho_gateway.infrastructure.clients.identity import IdentityClient
from buho_gateway.infrastructure.database.repositories import BankLinkRepository
from buho_gateway.infrastructure.observability.logging import log_aggregation
from buho_gateway.infrastructure.observability.metrics import normalizer_rejected_counter, record_aggregation
from buho_gateway.utils.date_utils import trailing_window, validate_range

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _status_for(link_count: int, failures: List[LinkFailure]) -> RequestStatus:
    if not failures:
        return RequestStatus.COMPLETED
    if len(failures) == link_count:
        return RequestStatus.FAILED
    return RequestStatus.PARTIALLY_FAILED


class AggregationFacade:
    """
    Orchestrates identity, bank links and the provider for a single request.

    Every operation takes the caller's session token explicitly. Links are
    read concurrently; a ProviderError on one link is recorded as a
    LinkFailure and never cancels its siblings. Nothing is cached or stored
    except the BankLink created by link_bank.
    """

    def __init__(
        self,
        identity: IdentityClient,
        aggregator: AggregatorClient,
        links: BankLinkRepository,
        request_id: str = "unknown",
    ):
        self.identity = identity
        self.aggregator = aggregator
        self.links = links
        self.request_id = request_id

    async def _require_user(self, session_token: Optional[str]) -> User:
        user = await self.identity.resolve_current_user(session_token)
        if user is None:
            raise Unauthenticated("No valid session")
        return user

    async def _read_link(
        self, link: BankLink, fetch: Callable[[BankLink], Awaitable[T]]
    ) -> Tuple[Optional[T], Optional[LinkFailure]]:
        try:
            return await fetch(link), None
        except ProviderError as e:
            logger.warning(
                f"Bank link read failed: {e}",
                extra={
                    "request_id": self.request_id,
                    "link_id": link.id,
                    "code": e.code,
                    "retryable": e.retryable,
                },
            )
            failure = LinkFailure(
                link_id=link.id,
                institution_name=link.institution_name,
                code=e.code,
                reason=str(e),
                retryable=e.retryable,
            )
            return None, failure

    async def _fan_out(
        self, links: List[BankLink], fetch: Callable[[BankLink], Awaitable[T]]
    ) -> Tuple[List[T], List[LinkFailure]]:
        """Read every link concurrently; results keep link order"""
        outcomes = await asyncio.gather(*(self._read_link(link, fetch) for link in links))
        results = [value for value, failure in outcomes if failure is None]
        failures = [failure for _, failure in outcomes if failure is not None]
        return results, failures

    async def _fetch_accounts(self, link: BankLink) -> List[Account]:
        raw_accounts = await self.aggregator.fetch_raw_accounts(link.credential)
        accounts = normalize(raw_accounts, link)
        rejected = len(raw_accounts) - len(accounts)
        if rejected:
            normalizer_rejected_counter.labels(kind="account").inc(rejected)
        return accounts

    async def _load_accounts(self, user: User) -> Tuple[List[Account], List[LinkFailure], int]:
        links = self.links.list_links_by_user(user.id)
        per_link, failures = await self._fan_out(links, self._fetch_accounts)
        accounts = [account for link_accounts in per_link for account in link_accounts]
        return accounts, failures, len(links)

    def _finish(self, operation: str, user_id: str, status: RequestStatus, item_count: int,
                failures: List[LinkFailure], started: float) -> None:
        record_aggregation(operation, status.value, failures)
        log_aggregation(
            self.request_id,
            user_id,
            operation,
            status.value,
            item_count,
            len(failures),
            (time.time() - started) * 1000,
        )

    async def get_accounts(self, session_token: Optional[str], limit: Optional[int] = None) -> AccountsResult:
        """
        Accounts and totals for the session's user.

        Totals always cover every usable account; `limit` only caps the
        returned list (compact views show the first few accounts).

        Returns an UNAUTHENTICATED result when there is no user, FAILED when
        every link failed, PARTIALLY_FAILED when some did.
        """
        if limit is not None and limit < 1:
            raise InvalidArgument(f"limit must be >= 1, got {limit}")

        started = time.time()
        user = await self.identity.resolve_current_user(session_token)
        if user is None:
            record_aggregation("accounts", RequestStatus.UNAUTHENTICATED.value, [])
            return AccountsResult(status=RequestStatus.UNAUTHENTICATED)

        accounts, failures, link_count = await self._load_accounts(user)
        status = _status_for(link_count, failures)
        aggregate = compute_aggregate(accounts)

        self._finish("accounts", user.id, status, len(accounts), failures, started)
        return AccountsResult(
            status=status,
            accounts=accounts[:limit] if limit is not None else accounts,
            aggregate=aggregate,
            failed_links=failures,
        )

    async def get_account(self, session_token: Optional[str], account_id: str) -> Account:
        """
        One of the user's accounts.

        Raises:
            Unauthenticated: no valid session
            AccountNotFound: no readable link reports the account
            ProviderError: the account was not found and some links could not be read
        """
        user = await self._require_user(session_token)
        accounts, failures, _ = await self._load_accounts(user)

        for account in accounts:
            if account.id == account_id:
                return account

        if failures:
            raise ProviderError(
                f"Account {account_id} may belong to a link that could not be read",
                code="ACCOUNT_UNAVAILABLE",
                retryable=any(failure.retryable for failure in failures),
            )
        raise AccountNotFound(f"Account {account_id} not found")

    async def get_transactions(
        self,
        session_token: Optional[str],
        page: int,
        page_size: int,
        date_range: Optional[DateRange] = None,
    ) -> TransactionsResult:
        """
        One page of the merged transaction feed across all linked accounts.

        Raises:
            InvalidArgument: page < 1, page_size <= 0, or an inverted date range
        """
        check_page_args(page, page_size)
        date_range = validate_range(date_range) if date_range else trailing_window(settings.transaction_window_days)

        started = time.time()
        user = await self.identity.resolve_current_user(session_token)
        if user is None:
            record_aggregation("transactions", RequestStatus.UNAUTHENTICATED.value, [])
            return TransactionsResult(status=RequestStatus.UNAUTHENTICATED)

        async def fetch(link: BankLink) -> Dict[str, List[Transaction]]:
            raw = await self.aggregator.fetch_raw_transactions(link.credential, date_range)
            per_account = normalize_transactions(raw)
            rejected = len(raw) - sum(len(txns) for txns in per_account.values())
            if rejected:
                normalizer_rejected_counter.labels(kind="transaction").inc(rejected)
            return per_account

        links = self.links.list_links_by_user(user.id)
        per_link, failures = await self._fan_out(links, fetch)

        per_account: Dict[str, List[Transaction]] = {}
        for link_transactions in per_link:
            for account_id, txns in link_transactions.items():
                per_account.setdefault(account_id, []).extend(txns)
        # two links can report the same account; each stream must stay sorted
        per_account = {account_id: sorted(txns, key=feed_order_key) for account_id, txns in per_account.items()}

        feed = merge_and_sort(per_account)
        status = _status_for(len(links), failures)

        self._finish("transactions", user.id, status, len(feed), failures, started)
        return TransactionsResult(status=status, page=paginate(feed, page, page_size), failed_links=failures)

    async def create_link_token(self, session_token: Optional[str]) -> LinkToken:
        """Start a link handshake for the session's user"""
        user = await self._require_user(session_token)
        return await self.aggregator.create_link_token(user)

    async def link_bank(self, session_token: Optional[str], public_token: str, institution_name: str) -> BankLink:
        """
        Finish a link handshake and store the resulting BankLink.

        Raises:
            Unauthenticated: no valid session
            InvalidToken: public token expired or already exchanged
        """
        user = await self._require_user(session_token)
        credential = await self.aggregator.exchange_public_token(public_token)
        link = self.links.create_link(user.id, credential, institution_name)
        logger.info(
            "Bank link created",
            extra={"request_id": self.request_id, "user_id": user.id, "link_id": link.id, "item_id": link.item_id},
        )
        return link
