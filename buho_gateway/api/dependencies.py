"""Dependency injection for FastAPI endpoints"""

from fastapi import Depends, Header, Request
from sqlalchemy.orm import Session

from buho_gateway.infrastructure.clients.aggregator import AggregatorClient
from buho_gateway.infrastructure.clients.identity import IdentityClient
from buho_gateway.infrastructure.database.repositories import BankLinkRepository
from buho_gateway.infrastructure.database.session import get_db
from buho_gateway.services.aggregation import AggregationFacade


def get_request_id(request: Request) -> str:
    """Extract request ID from request state"""
    return getattr(request.state, "request_id", "unknown")


def get_session_token(authorization: str | None = Header(default=None)) -> str | None:
    """Bearer session token, or None for guests"""
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def get_identity_client() -> IdentityClient:
    """Provide identity provider client instance"""
    return IdentityClient()


def get_aggregator_client() -> AggregatorClient:
    """Provide aggregation provider client instance"""
    return AggregatorClient()


def get_facade(
    request: Request,
    db: Session = Depends(get_db),
    identity: IdentityClient = Depends(get_identity_client),
    aggregator: AggregatorClient = Depends(get_aggregator_client),
) -> AggregationFacade:
    """Facade wired to this request's database session and request ID"""
    return AggregationFacade(identity, aggregator, BankLinkRepository(db), request_id=get_request_id(request))
