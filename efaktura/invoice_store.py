from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional, Tuple
import hashlib
import json
import logging
import os
import tempfile

from efaktura.models import CanonicalRecord
from efaktura.parsing.codes import Direction, LocalStatus
from efaktura.utils import sanitize_folder_name

log = logging.getLogger(__name__)

# Statuses a reviewer may set by hand; ``imported`` is set by linking.
REVIEW_STATUSES = {LocalStatus.PENDING, LocalStatus.APPROVED, LocalStatus.REJECTED}


class InvoiceStoreError(Exception):
    """Base class for storage problems."""


class DuplicateRecordError(InvoiceStoreError):
    """A record with the same ``(tenant_id, source_id)`` already exists."""


class RecordNotFoundError(InvoiceStoreError):
    pass


def _now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


class InvoiceStore(ABC):
    """Canonical record storage keyed by ``(tenant_id, source_id)``.

    Subclasses provide the four primitives; status transitions and linking
    are shared so that financial fields are never rewritten.
    """

    @abstractmethod
    def get(self, tenant_id: str, source_id: str) -> Optional[CanonicalRecord]:
        """Return the stored record or ``None``."""

    @abstractmethod
    def insert(self, record: CanonicalRecord) -> CanonicalRecord:
        """Store a new record; raise :class:`DuplicateRecordError` if present."""

    @abstractmethod
    def _replace(self, record: CanonicalRecord) -> None:
        """Overwrite an existing record with ``record``."""

    @abstractmethod
    def delete(self, tenant_id: str, source_id: str) -> None:
        """Remove a record; raise :class:`RecordNotFoundError` if missing."""

    @abstractmethod
    def _all(self, tenant_id: str) -> List[CanonicalRecord]:
        """Return every record of ``tenant_id`` in any order."""

    def exists(self, tenant_id: str, source_id: str) -> bool:
        return self.get(tenant_id, source_id) is not None

    def list_records(
        self,
        tenant_id: str,
        *,
        direction: Direction | None = None,
        status: LocalStatus | None = None,
    ) -> List[CanonicalRecord]:
        """Return records newest issue date first, optionally filtered."""
        records = [
            r
            for r in self._all(tenant_id)
            if (direction is None or r.direction == direction)
            and (status is None or r.status == status)
        ]
        return sorted(
            records, key=lambda r: (r.issue_date or "", r.source_id), reverse=True
        )

    def _require(self, tenant_id: str, source_id: str) -> CanonicalRecord:
        record = self.get(tenant_id, source_id)
        if record is None:
            raise RecordNotFoundError(f"{tenant_id}/{source_id}")
        return record

    def update_status(
        self,
        tenant_id: str,
        source_id: str,
        status: LocalStatus | str,
        reason: str | None = None,
    ) -> CanonicalRecord:
        """Move a record to ``pending``, ``approved`` or ``rejected``.

        ``reason`` is kept only for rejections.
        """
        status = LocalStatus(status)
        if status not in REVIEW_STATUSES:
            raise InvoiceStoreError(
                f"Status {status.value} se postavlja povezivanjem fakture"
            )
        record = self._require(tenant_id, source_id)
        updated = replace(
            record,
            status=status,
            rejection_reason=reason if status == LocalStatus.REJECTED else None,
            processed_at=_now(),
        )
        self._replace(updated)
        log.info("%s/%s: status %s", tenant_id, source_id, status.value)
        return updated

    def link_local_invoice(
        self, tenant_id: str, source_id: str, invoice_id: str
    ) -> CanonicalRecord:
        """Attach the locally created invoice and mark the record imported."""
        record = self._require(tenant_id, source_id)
        updated = replace(
            record,
            linked_invoice_id=invoice_id,
            status=LocalStatus.IMPORTED,
            processed_at=_now(),
        )
        self._replace(updated)
        log.info("%s/%s povezan z %s", tenant_id, source_id, invoice_id)
        return updated


class MemoryInvoiceStore(InvoiceStore):
    """Dictionary backed store, mainly for tests and dry runs."""

    def __init__(self) -> None:
        self._records: Dict[Tuple[str, str], CanonicalRecord] = {}

    def get(self, tenant_id, source_id):
        return self._records.get((tenant_id, source_id))

    def insert(self, record):
        key = (record.tenant_id, record.source_id)
        if key in self._records:
            raise DuplicateRecordError(f"{record.tenant_id}/{record.source_id}")
        if record.fetched_at is None:
            record = replace(record, fetched_at=_now())
        self._records[key] = record
        return record

    def _replace(self, record):
        self._records[(record.tenant_id, record.source_id)] = record

    def delete(self, tenant_id, source_id):
        if self._records.pop((tenant_id, source_id), None) is None:
            raise RecordNotFoundError(f"{tenant_id}/{source_id}")

    def _all(self, tenant_id):
        return [r for (t, _), r in self._records.items() if t == tenant_id]


class JsonInvoiceStore(InvoiceStore):
    """One folder per tenant, one JSON file per record.

    Folder and file names are the sanitized ids plus a short SHA-1 of the raw
    id, so ids that sanitize to the same text (``a/b`` and ``a_b``) never
    share a folder or a file.

    Files are written to a temporary name and moved into place, so a crash
    never leaves a partially written record behind.
    """

    def __init__(self, root: Path | str) -> None:
        self.root = Path(root)

    @staticmethod
    def _key_name(value: str) -> str:
        # sanitizing can map different ids to one name; the digest keeps them apart
        digest = hashlib.sha1(value.encode("utf-8")).hexdigest()[:8]
        return f"{sanitize_folder_name(value)[:80]}-{digest}"

    def _tenant_dir(self, tenant_id: str) -> Path:
        return self.root / self._key_name(tenant_id)

    def _path(self, tenant_id: str, source_id: str) -> Path:
        return self._tenant_dir(tenant_id) / f"{self._key_name(source_id)}.json"

    def _load(self, path: Path) -> Optional[CanonicalRecord]:
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            log.error("Napaka pri branju %s: %s", path, exc)
            raise InvoiceStoreError(f"{path}: {exc}") from exc
        return CanonicalRecord.from_dict(data)

    def _write(self, record: CanonicalRecord) -> None:
        path = self._path(record.tenant_id, record.source_id)
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=path.parent, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(record.to_dict(), fh, ensure_ascii=False, indent=2)
            os.replace(tmp, path)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise

    def get(self, tenant_id, source_id):
        path = self._path(tenant_id, source_id)
        if not path.exists():
            return None
        record = self._load(path)
        if record.tenant_id != tenant_id or record.source_id != source_id:
            log.warning("%s ne pripada %s/%s, preskočen", path, tenant_id, source_id)
            return None
        return record

    def insert(self, record):
        if self._path(record.tenant_id, record.source_id).exists():
            raise DuplicateRecordError(f"{record.tenant_id}/{record.source_id}")
        if record.fetched_at is None:
            record = replace(record, fetched_at=_now())
        self._write(record)
        log.debug("Shranjen %s v %s", record.source_id, self.root)
        return record

    def _replace(self, record):
        self._write(record)

    def delete(self, tenant_id, source_id):
        path = self._path(tenant_id, source_id)
        if not path.exists():
            raise RecordNotFoundError(f"{tenant_id}/{source_id}")
        path.unlink()

    def _all(self, tenant_id):
        folder = self._tenant_dir(tenant_id)
        if not folder.exists():
            return []
        records = [self._load(p) for p in sorted(folder.glob("*.json"))]
        return [r for r in records if r.tenant_id == tenant_id]
