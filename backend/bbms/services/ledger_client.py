"""Client for the external append-only audit ledger.

Writes are retried on transient faults with bounded backoff. Reads replace a
local cache only once the ledger has answered: a failed refresh keeps serving
the previous documents and flags them as stale.
"""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

import requests

from bbms.core.exceptions import LedgerError, LedgerReadError, LedgerWriteError, TransientLedgerError
from bbms.schemas.document import AuditDocument, AuditRecord
from bbms.services.readings import AUDIT_EVENT_KEY, is_audit_event
from bbms.utils.retry import RetryPolicy

logger = logging.getLogger(__name__)


class LedgerState(str, Enum):
    IDLE = "idle"
    WRITING = "writing"
    WRITTEN = "written"
    REFRESHING = "refreshing"
    WRITE_FAILED = "write_failed"


_TRANSITIONS = {
    LedgerState.IDLE: {LedgerState.WRITING},
    LedgerState.WRITING: {LedgerState.WRITTEN, LedgerState.WRITE_FAILED},
    LedgerState.WRITTEN: {LedgerState.REFRESHING},
    LedgerState.REFRESHING: {LedgerState.IDLE},
    LedgerState.WRITE_FAILED: {LedgerState.IDLE},
}


@dataclass
class AuditCycle:
    """One append followed by a refresh."""

    state: LedgerState = LedgerState.IDLE
    history: List[LedgerState] = field(default_factory=lambda: [LedgerState.IDLE])
    document_id: Optional[str] = None
    error: Optional[LedgerError] = None

    def advance(self, new_state: LedgerState) -> None:
        if new_state not in _TRANSITIONS[self.state]:
            raise RuntimeError(f"illegal ledger transition {self.state.value} -> {new_state.value}")
        self.state = new_state
        self.history.append(new_state)

    @property
    def succeeded(self) -> bool:
        return self.document_id is not None


def _document_id(payload: Any) -> Optional[str]:
    if not isinstance(payload, dict):
        return None
    for candidate in (payload, payload.get("result"), payload.get("document")):
        if isinstance(candidate, dict):
            value = candidate.get("id") or candidate.get("documentId")
            if value:
                return str(value)
    return None


class AuditLedgerClient:
    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        token: str = "",
        session: Optional[requests.Session] = None,
        max_attempts: int = 3,
        backoff_base: float = 0.5,
        max_backoff: float = 8.0,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.token = token
        self.session = session or requests.Session()
        self.retry_policy = RetryPolicy(
            max_attempts=max_attempts,
            base_delay=backoff_base,
            max_delay=max_backoff,
            exceptions=(TransientLedgerError,),
        )
        self._post_with_retry = self.retry_policy.async_retry()(self._post_once)

        self._documents: List[AuditDocument] = []
        self._latest: Optional[AuditDocument] = None
        self._refresh_task: Optional[asyncio.Task] = None
        self.is_loading = False
        self.is_stale = False
        self.error_message: Optional[str] = None
        self.last_refreshed_at: Optional[datetime] = None
        self.last_cycle: Optional[AuditCycle] = None

    @property
    def documents(self) -> List[AuditDocument]:
        return list(self._documents)

    @property
    def latest_document(self) -> Optional[AuditDocument]:
        return self._latest

    def documents_for(self, core_id: str) -> List[AuditDocument]:
        return [doc for doc in self._documents if doc.core_id == core_id]

    def latest_for(self, core_id: str) -> Optional[AuditDocument]:
        matching = self.documents_for(core_id)
        if not matching:
            return None
        return max(matching, key=lambda doc: (doc.updated, doc.created))

    def readings_for(self, core_id: str) -> List[AuditDocument]:
        """Newest-first documents for ``core_id``, leaving out this service's own audit records."""
        return [doc for doc in self.documents_for(core_id) if not is_audit_event(doc.payload)]

    # writes

    async def append(self, record: AuditRecord) -> str:
        try:
            document_id = await self._post_with_retry(record.to_wire())
        except TransientLedgerError as exc:
            error = LedgerWriteError(
                f"Ledger write failed after {self.retry_policy.max_attempts} attempts: {exc}"
            )
            self.error_message = str(error)
            logger.error("Audit record for %s not written: %s", record.core_id, error)
            raise error from exc
        except LedgerWriteError as exc:
            self.error_message = str(exc)
            logger.error("Audit record for %s rejected: %s", record.core_id, exc)
            raise

        logger.info("Audit record %s written for %s", document_id, record.core_id)
        return document_id

    async def append_and_refresh(self, record: AuditRecord) -> AuditCycle:
        cycle = AuditCycle()
        self.last_cycle = cycle

        cycle.advance(LedgerState.WRITING)
        try:
            cycle.document_id = await self.append(record)
        except LedgerWriteError as exc:
            cycle.error = exc
            cycle.advance(LedgerState.WRITE_FAILED)
            cycle.advance(LedgerState.IDLE)
            return cycle

        cycle.advance(LedgerState.WRITTEN)
        cycle.advance(LedgerState.REFRESHING)
        try:
            await self.refresh(after_write=True)
        except LedgerReadError as exc:
            cycle.error = exc
        finally:
            cycle.advance(LedgerState.IDLE)
        return cycle

    async def append_temperature_alert(
        self,
        device_id: str,
        device_name: str,
        reading: float,
        limit: float,
        location: str,
        severity: str,
    ) -> AuditCycle:
        payload = {
            AUDIT_EVENT_KEY: "temperature_alert",
            "deviceId": device_id,
            "deviceName": device_name,
            "temp": f"{reading:.1f}°C",
            "limit": limit,
            "location": location,
            "severity": severity,
        }
        record = AuditRecord(
            core_id=device_id,
            name=f"Temperature alert - {device_name}",
            payload=json.dumps(payload, ensure_ascii=False),
        )
        return await self.append_and_refresh(record)

    async def append_alert_resolution(
        self,
        device_id: str,
        device_name: str,
        alert_id: str,
        resolved_at: Optional[datetime] = None,
    ) -> AuditCycle:
        resolved_at = resolved_at or datetime.now(timezone.utc)
        payload = {
            AUDIT_EVENT_KEY: "temperature_alert_resolved",
            "deviceId": device_id,
            "deviceName": device_name,
            "alertId": alert_id,
            "resolvedAt": resolved_at.isoformat(),
        }
        record = AuditRecord(
            core_id=device_id,
            name=f"Temperature alert resolved - {device_name}",
            payload=json.dumps(payload, ensure_ascii=False),
            published_at=resolved_at,
        )
        return await self.append_and_refresh(record)

    async def _post_once(self, body: Dict[str, Any]) -> str:
        return await asyncio.to_thread(self._post_document, body)

    def _post_document(self, body: Dict[str, Any]) -> str:
        try:
            response = self.session.post(
                f"{self.base_url}/documents", json=body, headers=self._headers(), timeout=self.timeout
            )
        except (requests.ConnectionError, requests.Timeout) as exc:
            raise TransientLedgerError(f"Network error: {exc}") from exc

        if response.status_code >= 500 or response.status_code == 429:
            raise TransientLedgerError(f"Ledger returned {response.status_code}")
        if response.status_code >= 400:
            raise LedgerWriteError(f"Ledger rejected document with status {response.status_code}")

        try:
            payload = response.json()
        except ValueError as exc:
            raise LedgerWriteError("Ledger returned an unreadable response") from exc

        document_id = _document_id(payload)
        if document_id is None:
            raise LedgerWriteError("Ledger response did not include a document id")
        return document_id

    # reads

    async def refresh(self, after_write: bool = False) -> List[AuditDocument]:
        # callers arriving while a refresh is in flight share its result
        in_flight = self._refresh_task
        if after_write and in_flight is not None and not in_flight.done():
            # that read may have been sent before the write landed
            await asyncio.wait({in_flight})
        if self._refresh_task is None or self._refresh_task.done():
            self._refresh_task = asyncio.get_running_loop().create_task(self._refresh())
        return await asyncio.shield(self._refresh_task)

    async def _refresh(self) -> List[AuditDocument]:
        self.is_loading = True
        try:
            raw_documents = await asyncio.to_thread(self._fetch_all)
            documents, skipped = self._decode(raw_documents)
        except LedgerReadError as exc:
            self.is_stale = True
            self.error_message = str(exc)
            logger.warning("Ledger refresh failed, keeping %d cached documents: %s", len(self._documents), exc)
            raise
        finally:
            self.is_loading = False

        self._documents = sorted(documents, key=lambda doc: (doc.updated, doc.created), reverse=True)
        self._latest = self._documents[0] if self._documents else None
        self.is_stale = False
        self.error_message = (
            f"Loaded {len(documents)}/{len(raw_documents)} documents (some had data issues)"
            if skipped
            else None
        )
        self.last_refreshed_at = datetime.now(timezone.utc)
        logger.info(
            "Ledger refreshed: %d documents, latest %s",
            len(self._documents), self._latest.id if self._latest else "none",
        )
        return self.documents

    def _fetch_all(self) -> List[Dict[str, Any]]:
        url = f"{self.base_url}/documents/all"
        try:
            response = self.session.get(url, headers=self._headers(), timeout=self.timeout)
        except requests.RequestException as exc:
            raise LedgerReadError(f"Network error: {exc}") from exc

        if response.status_code == 404:
            raise LedgerReadError("Ledger endpoint not found (404). Please check if the server is running.")
        if response.status_code != 200:
            raise LedgerReadError(f"Ledger error: {response.status_code}")

        try:
            payload = response.json()
        except ValueError as exc:
            raise LedgerReadError("Ledger returned an unreadable response") from exc

        result = payload.get("result") if isinstance(payload, dict) else payload
        if not isinstance(result, list):
            raise LedgerReadError("Ledger response has no document list")
        return result

    def _decode(self, raw_documents: List[Any]) -> Tuple[List[AuditDocument], int]:
        documents: List[AuditDocument] = []
        skipped = 0
        for index, raw in enumerate(raw_documents):
            try:
                documents.append(AuditDocument.from_wire(raw))
            except (KeyError, TypeError, ValueError, AttributeError) as exc:
                skipped += 1
                logger.warning("Skipping document %d due to parsing error: %s", index + 1, exc)

        if raw_documents and not documents:
            raise LedgerReadError(
                "Failed to decode response. Ledger documents may have inconsistent structure."
            )
        return documents, skipped

    # diagnostics

    async def test_connection(self) -> str:
        url = f"{self.base_url}/documents/test"
        try:
            response = await asyncio.to_thread(
                self.session.get, url, headers=self._headers(), timeout=self.timeout
            )
        except requests.RequestException as exc:
            return f"Network Error: {exc}"

        outcome = "OK" if response.status_code == 200 else "FAILED"
        return f"{outcome} Ledger Test Results:\nURL: {url}\nStatus Code: {response.status_code}\nResponse Body: {response.text[:1000]}"

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers
