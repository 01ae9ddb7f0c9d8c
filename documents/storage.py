from __future__ import annotations

from typing import Protocol

from django.db import DatabaseError, transaction

from .models import DocumentRequest


class StorageError(Exception):
    """Raised when a document request cannot be persisted."""


class DocumentStore(Protocol):
    def save(self, document: DocumentRequest) -> None:
        ...


class OrmDocumentStore:
    """Stores document requests through the Django ORM."""

    def __init__(self, using: str = "default") -> None:
        self.using = using

    def save(self, document: DocumentRequest) -> None:
        try:
            with transaction.atomic(using=self.using):
                document.save(using=self.using)
        except DatabaseError as exc:
            raise StorageError(f"Could not store document '{document.name}': {exc}") from exc
