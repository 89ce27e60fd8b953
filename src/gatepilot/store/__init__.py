"""
GatePilot Store

The key-value collaborator and the record repositories built on it.

Usage:
    from gatepilot.store import (
        InMemoryStore, RetryingStore,
        PartnerRepository, SubmissionRepository, TemplateVersionStore,
    )

    store = RetryingStore(InMemoryStore())
    partners = PartnerRepository(store)
    templates = TemplateVersionStore(store)
"""
from __future__ import annotations

from .base import (
    InMemoryStore,
    JsonFileStore,
    KeyValueStore,
    Record,
    RetryingStore,
)
from .repositories import (
    PartnerRepository,
    SubmissionRepository,
    migrate_partner_record,
)
from .template_store import (
    ResolvedSchema,
    TemplateVersionStore,
)

__all__ = [
    # Collaborator
    "InMemoryStore",
    "JsonFileStore",
    "KeyValueStore",
    "Record",
    "RetryingStore",
    # Repositories
    "PartnerRepository",
    "SubmissionRepository",
    "migrate_partner_record",
    # Templates
    "ResolvedSchema",
    "TemplateVersionStore",
]
