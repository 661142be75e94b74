"""Pytest fixtures for testing"""

import pytest
from datetime import date
from typing import Generator
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from buho_gateway.api.main import create_app
from buho_gateway.api.dependencies import get_aggregator_client, get_identity_client
from buho_gateway.infrastructure.database.models import Base
from buho_gateway.infrastructure.database.session import get_db
from buho_gateway.domain.exceptions import InvalidToken, ProviderRejected
from buho_gateway.domain.models import AccessCredential, BankLink, LinkToken, Transaction, User
from buho_gateway.services.aggregation import AggregationFacade


# Test database
TEST_DATABASE_URL = "sqlite:///./test.db"
engine = create_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class FakeIdentity:
    """Identity provider that knows exactly one session"""

    def __init__(self, user: User | None, session_token: str = "session-santi"):
        self.user = user
        self.session_token = session_token
        self.calls = 0

    async def resolve_current_user(self, session_token):
        self.calls += 1
        if session_token != self.session_token:
            return None
        return self.user


class FakeAggregator:
    """Provider keyed by access token; `failures` maps a token to the error it raises"""

    def __init__(self):
        self.accounts: dict = {}
        self.transactions: dict = {}
        self.failures: dict = {}
        self.exchanges: dict = {}
        self.transaction_ranges: list = []

    def _check(self, credential: AccessCredential) -> None:
        if credential.access_token in self.failures:
            raise self.failures[credential.access_token]

    async def fetch_raw_accounts(self, credential):
        self._check(credential)
        return self.accounts.get(credential.access_token, [])

    async def fetch_raw_transactions(self, credential, date_range):
        self._check(credential)
        self.transaction_ranges.append(date_range)
        return self.transactions.get(credential.access_token, [])

    async def create_link_token(self, user):
        return LinkToken(link_token=f"link-{user.id}", expiration="2030-01-01T00:00:00Z")

    async def exchange_public_token(self, public_token):
        if public_token not in self.exchanges:
            raise InvalidToken("public token is expired or already used")
        return self.exchanges.pop(public_token)


class FakeLinkRepository:
    """In-memory stand-in for BankLinkRepository"""

    def __init__(self, links: list[BankLink] | None = None):
        self.links = list(links or [])

    def list_links_by_user(self, user_id: str) -> list[BankLink]:
        return [link for link in self.links if link.user_id == user_id]

    def create_link(self, user_id: str, credential: AccessCredential, institution_name: str) -> BankLink:
        for link in self.links:
            if link.item_id == credential.item_id and link.user_id != user_id:
                raise ProviderRejected("already linked", code="ITEM_ALREADY_LINKED")
        link = BankLink(
            id=f"link_{len(self.links) + 1}",
            user_id=user_id,
            item_id=credential.item_id,
            access_token=credential.access_token,
            institution_name=institution_name,
        )
        self.links.append(link)
        return link


def _raw_account(account_id: str, current, account_type: str = "depository", subtype: str | None = "checking",
                 available=None, name: str = "Cuenta") -> dict:
    """Provider-shaped account record"""
    return {
        "account_id": account_id,
        "name": name,
        "type": account_type,
        "subtype": subtype,
        "balances": {"current": current, "available": available},
    }


def _raw_transaction(transaction_id: str, account_id: str, amount, posted: str, name: str = "Compra",
                     category=None, pending: bool = False) -> dict:
    """Provider-shaped transaction record (positive amount = money out)"""
    return {
        "transaction_id": transaction_id,
        "account_id": account_id,
        "amount": amount,
        "date": posted,
        "name": name,
        "category": category if category is not None else ["Shops"],
        "pending": pending,
    }


def _make_txn(txn_id: str, account_id: str, posted: date, sequence: int = 0, amount_cents: int = -100) -> Transaction:
    return Transaction(
        id=txn_id,
        account_id=account_id,
        amount_cents=amount_cents,
        description="Test",
        category="test",
        posted_date=posted,
        pending=False,
        sequence=sequence,
    )


@pytest.fixture
def db() -> Generator[Session, None, None]:
    """Create test database and session"""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def user() -> User:
    return User(id="user_santi", name="Santi", email="santi@example.com")


@pytest.fixture
def link_a(user: User) -> BankLink:
    return BankLink(id="link_a", user_id=user.id, item_id="item_a", access_token="access-a",
                    institution_name="Banco Andino")


@pytest.fixture
def link_b(user: User) -> BankLink:
    return BankLink(id="link_b", user_id=user.id, item_id="item_b", access_token="access-b",
                    institution_name="Tarjetas del Sur")


@pytest.fixture
def identity(user: User) -> FakeIdentity:
    return FakeIdentity(user)


@pytest.fixture
def aggregator() -> FakeAggregator:
    return FakeAggregator()


@pytest.fixture
def link_repository(link_a: BankLink, link_b: BankLink) -> FakeLinkRepository:
    return FakeLinkRepository([link_a, link_b])


@pytest.fixture
def facade(identity: FakeIdentity, aggregator: FakeAggregator, link_repository: FakeLinkRepository) -> AggregationFacade:
    return AggregationFacade(identity, aggregator, link_repository, request_id="test")


@pytest.fixture
def client(db: Session, identity: FakeIdentity, aggregator: FakeAggregator) -> TestClient:
    """Create FastAPI test client with test database and fake providers"""
    app = create_app()

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_identity_client] = lambda: identity
    app.dependency_overrides[get_aggregator_client] = lambda: aggregator
    return TestClient(app)


@pytest.fixture
def raw_account():
    return _raw_account


@pytest.fixture
def raw_transaction():
    return _raw_transaction


@pytest.fixture
def make_txn():
    return _make_txn
