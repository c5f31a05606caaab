"""Inbound sync: pull remote state that other clients may have changed."""

import logging

from pydantic import BaseModel

from ..api.client import ChatApiClient
from ..config import DEFAULT_PAGE_SIZE
from ..session.store import SessionStore, SetCurrentSession, SetError, UpsertSession
from ..settings.credentials import CredentialStore

logger = logging.getLogger(__name__)


class InboundReport(BaseModel):
    credentials: int = 0
    sessions_added: int = 0
    sessions_updated: int = 0


class InboundSync:
    """Refresh user credentials and the conversation index.

    Unlike the outbound pass this one raises on failure, so a
    ``PeriodicSync`` wrapping it can retry with backoff. Messages of
    sessions already in the store are kept; only session records are
    refreshed. The current session selection and any surfaced error
    never change.
    """

    def __init__(
        self,
        api: ChatApiClient,
        credentials: CredentialStore,
        store: SessionStore,
        page_size: int = DEFAULT_PAGE_SIZE,
    ):
        self._api = api
        self._credentials = credentials
        self._store = store
        self._page_size = page_size

    async def run(self) -> InboundReport:
        report = InboundReport()
        keys = await self._credentials.refresh(self._api)
        report.credentials = len(keys)

        records = await self._api.list_conversations(page=1, size=self._page_size)
        current_id = self._store.state.current_session_id
        error = self._store.state.error
        sessions = sorted((r.to_session() for r in records), key=lambda s: s.updated_at)
        for remote in sessions:
            existing = self._store.get_session(remote.id)
            if existing is None:
                report.sessions_added += 1
            else:
                remote = remote.model_copy(update={"messages": existing.messages})
                report.sessions_updated += 1
            self._store.dispatch(UpsertSession(remote))
        self._store.dispatch(SetCurrentSession(current_id))
        # upserts clear the error; keep one surfaced by an earlier failure
        if error is not None:
            self._store.dispatch(SetError(error))

        logger.debug(
            "Inbound sync: %d credential(s), %d new and %d refreshed session(s)",
            report.credentials, report.sessions_added, report.sessions_updated,
        )
        return report
