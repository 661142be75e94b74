"""GET /v1/transactions - paginated feed across all linked accounts"""

import logging
from fastapi import APIRouter, Depends, HTTPException, Query, Request

from buho_gateway.api.v1.schemas import LinkFailureSchema, TransactionSchema, TransactionsResponse
from buho_gateway.api.dependencies import get_facade, get_request_id, get_session_token
from buho_gateway.config import settings
from buho_gateway.domain.exceptions import InvalidArgument, ProviderError
from buho_gateway.domain.models import RequestStatus
from buho_gateway.services.aggregation import AggregationFacade

router = APIRouter()


@router.get("/transactions", response_model=TransactionsResponse)
async def get_transactions(
    request: Request,
    page: int = Query(1, description="1-based page number"),
    page_size: int = Query(settings.default_page_size, description="Items per page"),
    session_token: str | None = Depends(get_session_token),
    facade: AggregationFacade = Depends(get_facade),
):
    """
    One page of the user's transactions, newest first.

    Returns:
        Page window with total counts, plus any links that could not be read
    """
    request_id = get_request_id(request)

    try:
        result = await facade.get_transactions(session_token, page, page_size)

    except InvalidArgument as e:
        logging.warning(f"Invalid pagination: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=422, detail=str(e))

    except ProviderError as e:
        logging.error(f"Identity provider error: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=503, detail="Identity service unavailable")

    failed_links = [LinkFailureSchema.from_domain(f) for f in result.failed_links]

    if result.status == RequestStatus.UNAUTHENTICATED:
        return TransactionsResponse(status=result.status.value, page=page, page_size=page_size)

    if result.status == RequestStatus.FAILED:
        logging.error("All bank links failed", extra={"request_id": request_id, "failed_links": len(failed_links)})
        raise HTTPException(
            status_code=503,
            detail={
                "message": "Bank data unavailable",
                "failed_links": [f.model_dump() for f in failed_links],
            },
        )

    return TransactionsResponse(
        status=result.status.value,
        page=result.page.page_number,
        page_size=result.page.page_size,
        total_item_count=result.page.total_item_count,
        total_pages=result.page.total_pages,
        items=[TransactionSchema.from_domain(t) for t in result.page.items],
        failed_links=failed_links,
    )
