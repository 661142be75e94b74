"""Data access layer for bank links"""

from typing import List
from sqlalchemy.orm import Session
from buho_gateway.infrastructure.database.models import BankLinkRecord
from buho_gateway.domain.exceptions import ProviderRejected
from buho_gateway.domain.models import AccessCredential, BankLink


def _to_domain(record: BankLinkRecord) -> BankLink:
    return BankLink(
        id=record.id,
        user_id=record.user_id,
        item_id=record.item_id,
        access_token=record.access_token,
        institution_name=record.institution_name,
        created_at=record.created_at,
    )


class BankLinkRepository:
    """Repository for bank links"""

    def __init__(self, db: Session):
        self.db = db

    def create_link(self, user_id: str, credential: AccessCredential, institution_name: str) -> BankLink:
        """
        Persist a completed link handshake.

        Re-linking an item the user already owns refreshes its credential
        instead of creating a second link.
        """
        record = (
            self.db.query(BankLinkRecord)
            .filter(BankLinkRecord.item_id == credential.item_id)
            .first()
        )
        if record is not None and record.user_id != user_id:
            raise ProviderRejected("Institution item is already linked to another user", code="ITEM_ALREADY_LINKED")
        if record is not None:
            record.access_token = credential.access_token
            record.institution_name = institution_name
        else:
            record = BankLinkRecord(
                user_id=user_id,
                item_id=credential.item_id,
                access_token=credential.access_token,
                institution_name=institution_name,
            )
            self.db.add(record)

        self.db.flush()  # Get ID without committing
        return _to_domain(record)

    def list_links_by_user(self, user_id: str) -> List[BankLink]:
        """All links owned by a user, oldest first"""
        records = (
            self.db.query(BankLinkRecord)
            .filter(BankLinkRecord.user_id == user_id)
            .order_by(BankLinkRecord.created_at, BankLinkRecord.id)
            .all()
        )
        return [_to_domain(record) for record in records]
