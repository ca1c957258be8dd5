import logging

from fastapi import Depends

from app.db.mongo import get_db
from app.repositories.account_repo import AccountRepository
from app.repositories.contact_repo import ContactRepository
from app.repositories.ledger_repo import LedgerRepository
from app.repositories.manual_journal_repo import ManualJournalRepository
from app.repositories.sequence_repo import SequenceRepository
from app.services.events import EventDispatcher
from app.services.manual_journal_service import ManualJournalService
from app.services.subscribers import ManualJournalSubscriber


def build_manual_journal_service(db) -> ManualJournalService:
    """Wire the service and its ledger subscriber against one database."""
    dispatcher = EventDispatcher()
    sequence_repo = SequenceRepository(db)

    service = ManualJournalService(
        account_repo=AccountRepository(db),
        contact_repo=ContactRepository(db),
        journal_repo=ManualJournalRepository(db),
        sequence_repo=sequence_repo,
        ledger_repo=LedgerRepository(db),
        event_sink=dispatcher,
        logger=logging.getLogger("app.services.manual_journal_service"),
    )
    ManualJournalSubscriber(service, sequence_repo).attach(dispatcher)
    return service


def get_manual_journal_service(db = Depends(get_db)) -> ManualJournalService:
    return build_manual_journal_service(db)
