"""GET /v1/accounts - consolidated balances across linked banks"""

import logging
from fastapi import APIRouter, Depends, HTTPException, Query, Request

from buho_gateway.api.v1.schemas import AccountSchema, AccountsResponse, LinkFailureSchema
from buho_gateway.api.dependencies import get_facade, get_request_id, get_session_token
from buho_gateway.domain.exceptions import AccountNotFound, InvalidArgument, ProviderError, Unauthenticated
from buho_gateway.domain.models import RequestStatus
from buho_gateway.services.aggregation import AggregationFacade

router = APIRouter()


@router.get("/accounts", response_model=AccountsResponse)
async def get_accounts(
    request: Request,
    limit: int | None = Query(None, description="Return at most this many accounts; totals still cover all"),
    session_token: str | None = Depends(get_session_token),
    facade: AggregationFacade = Depends(get_facade),
):
    """
    Accounts, bank count and total current balance for the session's user.

    Guests get status "unauthenticated" with empty data. When only some
    links fail, the usable accounts are returned alongside failed_links.
    When every link fails the response is 503.
    """
    request_id = get_request_id(request)

    try:
        result = await facade.get_accounts(session_token, limit=limit)

    except InvalidArgument as e:
        raise HTTPException(status_code=422, detail=str(e))

    except ProviderError as e:
        logging.error(f"Identity provider error: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=503, detail="Identity service unavailable")

    failed_links = [LinkFailureSchema.from_domain(f) for f in result.failed_links]

    if result.status == RequestStatus.FAILED:
        logging.error("All bank links failed", extra={"request_id": request_id, "failed_links": len(failed_links)})
        raise HTTPException(
            status_code=503,
            detail={
                "message": "Bank data unavailable",
                "failed_links": [f.model_dump() for f in failed_links],
            },
        )

    return AccountsResponse(
        status=result.status.value,
        accounts=[AccountSchema.from_domain(a) for a in result.accounts],
        total_banks=result.aggregate.total_banks,
        total_current_balance=result.aggregate.total_current_balance,
        failed_links=failed_links,
    )


@router.get("/accounts/{account_id}", response_model=AccountSchema)
async def get_account(
    account_id: str,
    request: Request,
    session_token: str | None = Depends(get_session_token),
    facade: AggregationFacade = Depends(get_facade),
):
    """Single account from the user's linked banks"""
    request_id = get_request_id(request)

    try:
        account = await facade.get_account(session_token, account_id)

    except Unauthenticated:
        raise HTTPException(status_code=401, detail="Not signed in")

    except AccountNotFound:
        raise HTTPException(status_code=404, detail="Account not found")

    except ProviderError as e:
        logging.error(f"Provider error: {e}", extra={"request_id": request_id, "code": e.code})
        raise HTTPException(status_code=503, detail="Bank data unavailable")

    return AccountSchema.from_domain(account)
