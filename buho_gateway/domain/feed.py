"""Transaction feed - k-way merge of per-account histories and pagination"""

import heapq
from typing import List, Mapping, Sequence

from buho_gateway.domain.exceptions import InvalidArgument
from buho_gateway.domain.models import Page, Transaction


def feed_order_key(txn: Transaction) -> tuple:
    """Newest first, then provider order, then account and transaction id"""
    return (-txn.posted_date.toordinal(), txn.sequence, txn.account_id, txn.id)


def merge_and_sort(per_account: Mapping[str, Sequence[Transaction]]) -> List[Transaction]:
    """
    Merge per-account transaction lists into one feed.

    Each input list must already be sorted by feed_order_key (what
    normalize_transactions returns). The merge is a heap-based k-way merge,
    so it costs O(n log k). Accounts are visited in id order, which keeps
    the result identical across calls with the same data.

    Example:
        {"a": [Jan 3, Jan 1], "b": [Jan 2]} -> [Jan 3, Jan 2, Jan 1]
    """
    streams = [per_account[account_id] for account_id in sorted(per_account)]
    return list(heapq.merge(*streams, key=feed_order_key))


def check_page_args(page_number: int, page_size: int) -> None:
    """Raise InvalidArgument unless page_number >= 1 and page_size > 0"""
    if page_number < 1:
        raise InvalidArgument(f"page_number must be >= 1, got {page_number}")
    if page_size <= 0:
        raise InvalidArgument(f"page_size must be > 0, got {page_size}")


def paginate(sequence: Sequence[Transaction], page_number: int, page_size: int) -> Page:
    """
    Slice one 1-based page out of the merged feed.

    Pages past the end are empty but still report the full item count.

    Raises:
        InvalidArgument: page_number < 1 or page_size <= 0
    """
    check_page_args(page_number, page_size)

    start = (page_number - 1) * page_size
    return Page(
        page_number=page_number,
        page_size=page_size,
        total_item_count=len(sequence),
        items=list(sequence[start:start + page_size]),
    )
