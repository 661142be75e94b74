"""POST /v1/link/* - bank link handshake"""

import logging
from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from buho_gateway.api.v1.schemas import BankLinkResponse, ExchangeRequest, LinkTokenResponse
from buho_gateway.api.dependencies import get_facade, get_request_id, get_session_token
from buho_gateway.infrastructure.database.session import get_db
from buho_gateway.domain.exceptions import (
    InvalidToken,
    ProviderError,
    ProviderRejected,
    Unauthenticated,
)
from buho_gateway.services.aggregation import AggregationFacade

router = APIRouter()


@router.post("/link/token", response_model=LinkTokenResponse)
async def create_link_token(
    request: Request,
    session_token: str | None = Depends(get_session_token),
    facade: AggregationFacade = Depends(get_facade),
):
    """Short-lived token for opening the provider's linking UI"""
    request_id = get_request_id(request)

    try:
        token = await facade.create_link_token(session_token)

    except Unauthenticated:
        raise HTTPException(status_code=401, detail="Not signed in")

    except ProviderRejected as e:
        logging.warning(f"Link token rejected: {e}", extra={"request_id": request_id, "code": e.code})
        raise HTTPException(status_code=403, detail="Bank linking is not available for this user")

    except ProviderError as e:
        logging.error(f"Provider error: {e}", extra={"request_id": request_id, "code": e.code})
        raise HTTPException(status_code=503, detail="Bank link service unavailable")

    return LinkTokenResponse(link_token=token.link_token, expiration=token.expiration)


@router.post("/link/exchange", response_model=BankLinkResponse)
async def exchange_public_token(
    request_body: ExchangeRequest,
    request: Request,
    session_token: str | None = Depends(get_session_token),
    db: Session = Depends(get_db),
    facade: AggregationFacade = Depends(get_facade),
):
    """
    Complete the handshake and store the new bank link.

    Flow:
    1. Resolve the session's user
    2. Exchange the public token for a durable credential
    3. Persist the BankLink
    """
    request_id = get_request_id(request)

    try:
        link = await facade.link_bank(session_token, request_body.public_token, request_body.institution_name)
        db.commit()

    except Unauthenticated:
        raise HTTPException(status_code=401, detail="Not signed in")

    except InvalidToken as e:
        db.rollback()
        logging.warning(f"Invalid public token: {e}", extra={"request_id": request_id, "code": e.code})
        raise HTTPException(status_code=400, detail="Link expired or already used; please link the bank again")

    except ProviderRejected as e:
        db.rollback()
        logging.warning(f"Link rejected: {e}", extra={"request_id": request_id, "code": e.code})
        raise HTTPException(status_code=409, detail=str(e))

    except ProviderError as e:
        db.rollback()
        logging.error(f"Provider error: {e}", extra={"request_id": request_id, "code": e.code})
        raise HTTPException(status_code=503, detail="Bank link service unavailable")

    return BankLinkResponse(
        link_id=link.id,
        item_id=link.item_id,
        institution_name=link.institution_name,
        created_at=link.created_at.isoformat() if link.created_at else None,
    )
