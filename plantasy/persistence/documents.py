from __future__ import annotations

from copy import deepcopy
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable, Sequence

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from plantasy.core.timeutil import now_utc
from plantasy.persistence.models import DocumentModel

WhereClause = tuple[str, str, Any]

_MISSING = object()


class DocumentNotFoundError(LookupError):
    pass


class DocumentExistsError(ValueError):
    pass


@dataclass(frozen=True)
class DocumentSnapshot:
    id: str
    data: dict[str, Any]
    created_at: datetime
    updated_at: datetime


def get_path(data: dict[str, Any], path: str, default: Any = None) -> Any:
    current: Any = data
    for part in path.split("."):
        if isinstance(current, dict) and part in current:
            current = current[part]
        else:
            return default
    return current


def _set_path(data: dict[str, Any], path: str, value: Any) -> None:
    parts = path.split(".")
    current = data
    for part in parts[:-1]:
        nested = current.get(part)
        if not isinstance(nested, dict):
            nested = {}
            current[part] = nested
        current = nested
    current[parts[-1]] = value


def _matches(data: dict[str, Any], clause: WhereClause) -> bool:
    path, op, right = clause
    left = get_path(data, path, _MISSING)
    if left is _MISSING:
        return False
    if op == "==":
        return left == right
    if op == "!=":
        return left != right
    if op == "in":
        return left in (right or [])
    if op == "array-contains":
        return isinstance(left, list) and right in left
    if left is None:
        return False
    if op == ">":
        return left > right
    if op == ">=":
        return left >= right
    if op == "<":
        return left < right
    if op == "<=":
        return left <= right
    raise ValueError(f"unsupported where operator: {op}")


class DocumentStore:
    """Collection/document access over the ``documents`` table.

    Documents are plain JSON dicts. Writes never span more than one document,
    so callers that need several writes get no atomicity between them.
    Queries filter and order in Python after loading the collection.
    """

    def __init__(self, session: Session):
        self.session = session

    def _row(self, collection: str, doc_id: str) -> DocumentModel | None:
        # Session autoflush is disabled globally; flush so rows written earlier
        # in this unit of work are visible to the lookup.
        self.session.flush()
        stmt = select(DocumentModel).where(
            DocumentModel.collection == collection,
            DocumentModel.doc_id == doc_id,
        )
        return self.session.scalar(stmt)

    @staticmethod
    def _snapshot(row: DocumentModel) -> DocumentSnapshot:
        return DocumentSnapshot(
            id=row.doc_id,
            data=deepcopy(row.data or {}),
            created_at=row.created_at,
            updated_at=row.updated_at,
        )

    def get(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        row = self._row(collection, doc_id)
        if row is None:
            return None
        return deepcopy(row.data or {})

    def exists(self, collection: str, doc_id: str) -> bool:
        return self._row(collection, doc_id) is not None

    def set(self, collection: str, doc_id: str, data: dict[str, Any], merge: bool = False) -> None:
        now = now_utc()
        row = self._row(collection, doc_id)
        if row is None:
            row = DocumentModel(
                collection=collection,
                doc_id=doc_id,
                data=deepcopy(data),
                created_at=now,
                updated_at=now,
            )
            self.session.add(row)
        else:
            merged = deepcopy(row.data or {}) if merge else {}
            merged.update(deepcopy(data))
            row.data = merged
            row.updated_at = now
        self.session.flush()

    def create(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        if self.exists(collection, doc_id):
            raise DocumentExistsError(f"{collection}/{doc_id} already exists")
        self.set(collection, doc_id, data)

    def update(self, collection: str, doc_id: str, fields: dict[str, Any]) -> None:
        """Partial update; keys may be dot-paths into nested maps."""
        row = self._row(collection, doc_id)
        if row is None:
            raise DocumentNotFoundError(f"{collection}/{doc_id} not found")
        data = deepcopy(row.data or {})
        for path, value in fields.items():
            _set_path(data, path, deepcopy(value))
        row.data = data
        row.updated_at = now_utc()
        self.session.flush()

    def array_union(self, collection: str, doc_id: str, path: str, *values: Any) -> None:
        row = self._row(collection, doc_id)
        if row is None:
            raise DocumentNotFoundError(f"{collection}/{doc_id} not found")
        current = get_path(row.data or {}, path)
        items = list(current) if isinstance(current, list) else []
        for value in values:
            if value not in items:
                items.append(value)
        self.update(collection, doc_id, {path: items})

    def delete(self, collection: str, doc_id: str) -> bool:
        row = self._row(collection, doc_id)
        if row is None:
            return False
        self.session.delete(row)
        self.session.flush()
        return True

    def _scan(self, collection: str, where: Iterable[WhereClause]) -> list[DocumentSnapshot]:
        self.session.flush()
        stmt = select(DocumentModel).where(DocumentModel.collection == collection).order_by(DocumentModel.id.asc())
        clauses = list(where)
        snapshots = []
        for row in self.session.scalars(stmt).all():
            data = row.data or {}
            if all(_matches(data, clause) for clause in clauses):
                snapshots.append(self._snapshot(row))
        return snapshots

    def query(
        self,
        collection: str,
        where: Sequence[WhereClause] = (),
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
        start_after: str | None = None,
    ) -> list[DocumentSnapshot]:
        docs = self._scan(collection, where)

        if order_by:
            # Documents without the ordering field are excluded, as in Firestore.
            docs = [doc for doc in docs if get_path(doc.data, order_by) is not None]
            docs.sort(key=lambda doc: (get_path(doc.data, order_by), doc.id), reverse=descending)

        if start_after is not None:
            docs = self._after_cursor(collection, docs, start_after, order_by, descending)

        if limit is not None:
            docs = docs[:limit]
        return docs

    def _after_cursor(
        self,
        collection: str,
        docs: list[DocumentSnapshot],
        cursor_id: str,
        order_by: str | None,
        descending: bool,
    ) -> list[DocumentSnapshot]:
        for index, doc in enumerate(docs):
            if doc.id == cursor_id:
                return docs[index + 1 :]

        # The cursor fell out of the filtered set; resume by its ordering value.
        cursor = self.get(collection, cursor_id)
        if cursor is None or not order_by:
            return []
        cursor_key = (get_path(cursor, order_by), cursor_id)
        if cursor_key[0] is None:
            return []
        if descending:
            return [doc for doc in docs if (get_path(doc.data, order_by), doc.id) < cursor_key]
        return [doc for doc in docs if (get_path(doc.data, order_by), doc.id) > cursor_key]

    def count(self, collection: str, where: Sequence[WhereClause] = ()) -> int:
        if not where:
            stmt = select(func.count()).select_from(DocumentModel).where(DocumentModel.collection == collection)
            self.session.flush()
            return int(self.session.scalar(stmt) or 0)
        return len(self._scan(collection, where))
