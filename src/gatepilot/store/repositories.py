"""
GatePilot Repositories

Typed access to partner and submission records held in the key-value
store.

Key components:
- PartnerRepository: read/write partner aggregates with a revision check
- SubmissionRepository: append-only submission records

Store failures are logged with the operation and key, then re-raised
unmodified.
"""
from __future__ import annotations

import logging
import threading
from dataclasses import replace
from typing import Any, Callable, Iterable, Optional, TypeVar

from ..exceptions import (
    PartnerNotFoundError,
    StaleWriteError,
    StoreError,
    SubmissionNotFoundError,
)
from ..models import PartnerRecord, Submission, utc_now
from .base import KeyValueStore

logger = logging.getLogger(__name__)

T = TypeVar("T")

PARTNER_PREFIX = "partners/"
SUBMISSION_PREFIX = "submissions/"

# Owner fields that older records carry and the current model dropped
DEPRECATED_PARTNER_FIELDS = ("tpm_owner", "tpmOwner")


def _logged(operation: str, key: str, fn: Callable[[], T]) -> T:
    try:
        return fn()
    except StoreError:
        logger.error("Store operation %s failed for %s", operation, key)
        raise


# =============================================================================
# Legacy Migration
# =============================================================================

def migrate_partner_record(data: dict[str, Any]) -> dict[str, Any]:
    """
    Bring a stored partner record up to the current shape.

    Drops deprecated owner fields (TPM ownership moved to the PDM) and
    logs a warning for each record migrated.
    """
    legacy = [f for f in DEPRECATED_PARTNER_FIELDS if f in data]
    if not legacy:
        return data
    migrated = {k: v for k, v in data.items() if k not in DEPRECATED_PARTNER_FIELDS}
    logger.warning(
        "Partner %s carries deprecated field(s) %s; removed during migration",
        data.get("id"), ", ".join(legacy),
    )
    return migrated


# =============================================================================
# Partner Repository
# =============================================================================

class PartnerRepository:
    """
    Partner aggregates keyed by id.

    save() increments the record's revision. When expected_revision is
    given, the write is refused with StaleWriteError if the stored
    revision differs, so concurrent completions cannot silently
    overwrite each other.
    """

    def __init__(self, store: KeyValueStore):
        self.store = store
        self._write_lock = threading.Lock()

    @staticmethod
    def key(partner_id: str) -> str:
        return f"{PARTNER_PREFIX}{partner_id}"

    def get(self, partner_id: str) -> Optional[PartnerRecord]:
        key = self.key(partner_id)
        data = _logged("get", key, lambda: self.store.get(key))
        if data is None:
            return None
        return PartnerRecord.from_dict(migrate_partner_record(data))

    def get_or_raise(self, partner_id: str) -> PartnerRecord:
        partner = self.get(partner_id)
        if partner is None:
            raise PartnerNotFoundError(
                message=f"Partner not found: {partner_id}",
                partner_id=partner_id,
            )
        return partner

    def exists(self, partner_id: str) -> bool:
        return self.get(partner_id) is not None

    def list(self) -> list[PartnerRecord]:
        records = _logged("list", PARTNER_PREFIX, lambda: self.store.list(PARTNER_PREFIX))
        partners = [PartnerRecord.from_dict(migrate_partner_record(r)) for r in records]
        return sorted(partners, key=lambda p: p.name.lower())

    def save(
        self,
        partner: PartnerRecord,
        expected_revision: Optional[int] = None,
    ) -> PartnerRecord:
        """
        Persist a partner record.

        Args:
            partner: Record to write
            expected_revision: Revision the caller read; None skips the check

        Returns:
            The stored record, with revision and updated_at bumped

        Raises:
            StaleWriteError: If the stored revision is not expected_revision
        """
        key = self.key(partner.id)
        with self._write_lock:
            stored = _logged("get", key, lambda: self.store.get(key))
            stored_revision = int(stored.get("revision", 0)) if stored else 0

            if expected_revision is not None and stored_revision != expected_revision:
                logger.warning(
                    "Stale write refused for partner %s: expected revision %s, found %s",
                    partner.id, expected_revision, stored_revision,
                )
                raise StaleWriteError(
                    message=(
                        f"Partner {partner.id} was modified concurrently "
                        f"(expected revision {expected_revision}, found {stored_revision})"
                    ),
                    partner_id=partner.id,
                    expected_revision=expected_revision,
                    actual_revision=stored_revision,
                )

            saved = replace(
                partner,
                revision=max(stored_revision, partner.revision) + 1,
                updated_at=utc_now(),
            )
            _logged("set", key, lambda: self.store.set(key, saved.to_dict()))
        return saved

    def delete(self, partner_id: str) -> bool:
        key = self.key(partner_id)
        return _logged("delete", key, lambda: self.store.delete(key))


# =============================================================================
# Submission Repository
# =============================================================================

class SubmissionRepository:
    """
    Append-only submission records.

    A submission is never edited; a new submission for the same
    questionnaire supersedes it on the gate.
    """

    def __init__(self, store: KeyValueStore):
        self.store = store

    @staticmethod
    def key(submission_id: str) -> str:
        return f"{SUBMISSION_PREFIX}{submission_id}"

    def add(self, submission: Submission) -> Submission:
        key = self.key(submission.id)
        existing = _logged("get", key, lambda: self.store.get(key))
        if existing is not None:
            raise ValueError(f"Submission {submission.id} already exists; submissions are append-only")
        _logged("set", key, lambda: self.store.set(key, submission.to_dict()))
        return submission

    def get(self, submission_id: str) -> Optional[Submission]:
        key = self.key(submission_id)
        data = _logged("get", key, lambda: self.store.get(key))
        return Submission.from_dict(data) if data is not None else None

    def get_or_raise(self, submission_id: str) -> Submission:
        submission = self.get(submission_id)
        if submission is None:
            raise SubmissionNotFoundError(
                message=f"Submission not found: {submission_id}",
                details={"submission_id": submission_id},
            )
        return submission

    def get_many(self, submission_ids: Iterable[str]) -> dict[str, Submission]:
        """submission id -> Submission for every id that exists."""
        found: dict[str, Submission] = {}
        for submission_id in submission_ids:
            submission = self.get(submission_id)
            if submission is not None:
                found[submission_id] = submission
        return found

    def list_for_partner(
        self,
        partner_id: str,
        questionnaire_id: Optional[str] = None,
    ) -> list[Submission]:
        """Partner's submissions, newest first."""
        records = _logged("list", SUBMISSION_PREFIX, lambda: self.store.list(SUBMISSION_PREFIX))
        submissions = [
            Submission.from_dict(r)
            for r in records
            if r.get("partner_id") == partner_id
            and (questionnaire_id is None or r.get("questionnaire_id") == questionnaire_id)
        ]
        return sorted(submissions, key=lambda s: s.created_at, reverse=True)

    def for_partner(self, partner: PartnerRecord) -> dict[str, Submission]:
        """Every submission referenced from the partner's gate progress."""
        ids = {sid for progress in partner.gates.values() for sid in progress.questionnaires.values()}
        return self.get_many(sorted(ids))
