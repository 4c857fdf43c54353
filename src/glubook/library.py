"""In-memory document library: ordered snapshots, title search."""

from __future__ import annotations

import logging

from glubook.document import Document
from glubook.errors import NotFound

log = logging.getLogger(__name__)


class DocumentLibrary:
    """Documents the user has uploaded, in upload order.

    Holds snapshots by id. Updating a document means replacing its snapshot
    wholesale; readers holding the old value keep seeing the old value.
    """

    def __init__(self) -> None:
        self._docs: dict[str, Document] = {}

    def add(self, document: Document) -> None:
        if document.doc_id in self._docs:
            raise ValueError(f"Document {document.doc_id!r} is already in the library")
        self._docs[document.doc_id] = document
        log.info("Added document %s (%r, %d chars)", document.doc_id, document.title, len(document.content))

    def replace(self, document: Document) -> Document:
        """Swap in a newer snapshot of an existing document; returns the old one."""
        old = self._docs.get(document.doc_id)
        if old is None:
            raise NotFound(f"No document with id {document.doc_id!r}")
        self._docs[document.doc_id] = document
        log.debug("Replaced snapshot of document %s", document.doc_id)
        return old

    def upsert(self, document: Document) -> None:
        if document.doc_id in self._docs:
            self.replace(document)
        else:
            self.add(document)

    def get(self, doc_id: str) -> Document:
        doc = self._docs.get(doc_id)
        if doc is None:
            raise NotFound(f"No document with id {doc_id!r}")
        return doc

    def search(self, term: str) -> list[Document]:
        """Documents whose title contains ``term`` (case-insensitive). Blank matches all."""
        needle = term.strip().lower()
        return [d for d in self._docs.values() if needle in d.title.lower()]

    @property
    def documents(self) -> tuple[Document, ...]:
        return tuple(self._docs.values())

    def __contains__(self, doc_id: object) -> bool:
        return doc_id in self._docs

    def __len__(self) -> int:
        return len(self._docs)
