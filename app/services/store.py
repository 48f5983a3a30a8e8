# app/services/store.py
"""
Entity store adapter.

Wraps the SQLAlchemy session factory with the primitives the lifecycle engines
rely on: transactional multi-document writes, array union/remove on JSON array
fields, transactional reads (SELECT ... FOR UPDATE) and snapshot subscriptions
that are re-published after every successful commit.
"""

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Set, Tuple

from sqlalchemy import event
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.database import SessionLocal
from app.exceptions import NotFoundError, StoreError, WorkflowError
from app.models import Feature, Task, User
from app.schemas import FeatureOut, TaskOut, UserOut

logger = logging.getLogger(__name__)


@dataclass
class DocumentSnapshot:
    data: Any = None
    loading: bool = False
    error: Optional[Exception] = None
    epoch: int = 0


@dataclass
class QuerySnapshot:
    data: List[Any] = field(default_factory=list)
    loading: bool = False
    error: Optional[Exception] = None
    epoch: int = 0


Listener = Callable[[Any], None]

# table name -> (model, read schema)
DOCUMENT_KINDS = {
    "tasks": (Task, TaskOut),
    "features": (Feature, FeatureOut),
    "users": (User, UserOut),
}


@dataclass
class _QuerySubscription:
    kind: str
    project_id: str
    feature_id: Optional[str]
    listener: Listener


class _TouchedDocuments:
    """Documents written by one transaction, collected at flush time"""

    def __init__(self):
        self.documents: Set[Tuple[str, str]] = set()
        self.projects: Set[Tuple[str, str]] = set()

    def record(self, obj) -> None:
        kind = getattr(obj, "__tablename__", None)
        doc_id = getattr(obj, "id", None)
        if kind is None or doc_id is None:
            return
        self.documents.add((kind, doc_id))
        project_id = getattr(obj, "project_id", None)
        if project_id:
            self.projects.add((kind, project_id))


def _collect_touched(session: Session, flush_context) -> None:
    touched = session.info.get("touched")
    if touched is None:
        return
    for obj in list(session.new) + list(session.dirty) + list(session.deleted):
        touched.record(obj)


class EntityStore:
    """Reactive read/write facade over the relational store"""

    def __init__(self, session_factory: Callable[[], Session] = SessionLocal):
        self._session_factory = session_factory
        self._lock = threading.RLock()
        self._epoch = 0
        self._document_listeners: Dict[Tuple[str, str], List[Listener]] = {}
        self._query_listeners: List[_QuerySubscription] = []

    @property
    def epoch(self) -> int:
        return self._epoch

    def session(self) -> Session:
        """Plain session for reads and fire-and-forget writes"""
        return self._session_factory()

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        """All writes made through the yielded session commit together or not at all"""
        session = self._session_factory()
        touched = _TouchedDocuments()
        session.info["touched"] = touched
        event.listen(session, "after_flush", _collect_touched)
        try:
            yield session
            session.commit()
        except WorkflowError:
            session.rollback()
            raise
        except SQLAlchemyError as exc:
            session.rollback()
            logger.error(f"Store transaction failed: {exc}")
            raise StoreError() from exc
        except Exception:
            session.rollback()
            raise
        else:
            with self._lock:
                self._epoch += 1
                epoch = self._epoch
            self._publish(touched, epoch)
        finally:
            event.remove(session, "after_flush", _collect_touched)
            session.close()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def _get(self, session: Session, model, kind: str, doc_id: str, project_id: Optional[str], for_update: bool):
        query = session.query(model).filter(model.id == doc_id)
        if project_id is not None and hasattr(model, "project_id"):
            query = query.filter(model.project_id == project_id)
        if for_update:
            query = query.with_for_update()
        doc = query.first()
        if doc is None:
            raise NotFoundError(kind, doc_id)
        return doc

    def get_task(self, session: Session, task_id: str, project_id: Optional[str] = None, for_update: bool = False) -> Task:
        return self._get(session, Task, "task", task_id, project_id, for_update)

    def get_feature(self, session: Session, feature_id: str, project_id: Optional[str] = None, for_update: bool = False) -> Feature:
        return self._get(session, Feature, "feature", feature_id, project_id, for_update)

    def get_user(self, session: Session, user_id: str, for_update: bool = False) -> User:
        return self._get(session, User, "user", user_id, None, for_update)

    def tasks_for_feature(self, session: Session, project_id: str, feature_id: str, for_update: bool = False) -> List[Task]:
        query = session.query(Task).filter(Task.project_id == project_id, Task.feature_id == feature_id)
        if for_update:
            query = query.with_for_update()
        return query.order_by(Task.created_at, Task.id).all()

    def tasks_by_ids(self, session: Session, task_ids: Iterable[str]) -> List[Task]:
        ids = list(task_ids)
        if not ids:
            return []
        return session.query(Task).filter(Task.id.in_(ids)).all()

    def list_tasks(self, project_id: str, feature_id: Optional[str] = None) -> List[TaskOut]:
        session = self.session()
        try:
            return self._query_data(session, "tasks", project_id, feature_id)
        finally:
            session.close()

    def list_features(self, project_id: str) -> List[FeatureOut]:
        session = self.session()
        try:
            return self._query_data(session, "features", project_id, None)
        finally:
            session.close()

    def read_task(self, task_id: str, project_id: Optional[str] = None) -> TaskOut:
        session = self.session()
        try:
            return TaskOut.model_validate(self.get_task(session, task_id, project_id))
        finally:
            session.close()

    def read_feature(self, feature_id: str, project_id: Optional[str] = None) -> FeatureOut:
        session = self.session()
        try:
            return FeatureOut.model_validate(self.get_feature(session, feature_id, project_id))
        finally:
            session.close()

    def read_user(self, user_id: str) -> UserOut:
        session = self.session()
        try:
            return UserOut.model_validate(self.get_user(session, user_id))
        finally:
            session.close()

    # ------------------------------------------------------------------
    # Array field mutations
    # ------------------------------------------------------------------

    @staticmethod
    def array_union(doc, field_name: str, *items) -> None:
        """Append each item that is not already present (by equality)"""
        current = list(getattr(doc, field_name) or [])
        for item in items:
            if item not in current:
                current.append(item)
        setattr(doc, field_name, current)

    @staticmethod
    def array_remove(doc, field_name: str, *items) -> None:
        """Remove every element equal to one of the items"""
        current = list(getattr(doc, field_name) or [])
        setattr(doc, field_name, [element for element in current if element not in items])

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def subscribe_document(self, kind: str, doc_id: str, listener: Listener) -> Callable[[], None]:
        """Listen to one document. The current snapshot is delivered immediately."""
        if kind not in DOCUMENT_KINDS:
            raise ValueError(f"Unknown document kind: {kind}")
        key = (kind, doc_id)
        with self._lock:
            self._document_listeners.setdefault(key, []).append(listener)
            epoch = self._epoch
        self._deliver(listener, self._document_snapshot(kind, doc_id, epoch))

        def unsubscribe():
            with self._lock:
                listeners = self._document_listeners.get(key, [])
                if listener in listeners:
                    listeners.remove(listener)
                if not listeners:
                    self._document_listeners.pop(key, None)

        return unsubscribe

    def subscribe_query(
        self,
        kind: str,
        project_id: str,
        listener: Listener,
        feature_id: Optional[str] = None,
    ) -> Callable[[], None]:
        """Listen to a project's tasks or features. The current snapshot is delivered immediately."""
        if kind not in ("tasks", "features"):
            raise ValueError(f"Unknown query kind: {kind}")
        subscription = _QuerySubscription(kind, project_id, feature_id, listener)
        with self._lock:
            self._query_listeners.append(subscription)
            epoch = self._epoch
        self._deliver(listener, self._query_snapshot(subscription, epoch))

        def unsubscribe():
            with self._lock:
                if subscription in self._query_listeners:
                    self._query_listeners.remove(subscription)

        return unsubscribe

    def _query_data(self, session: Session, kind: str, project_id: str, feature_id: Optional[str]) -> list:
        model, schema = DOCUMENT_KINDS[kind]
        query = session.query(model).filter(model.project_id == project_id)
        if feature_id is not None:
            query = query.filter(model.feature_id == feature_id)
        rows = query.order_by(model.created_at, model.id).all()
        return [schema.model_validate(row) for row in rows]

    def _document_snapshot(self, kind: str, doc_id: str, epoch: int) -> DocumentSnapshot:
        model, schema = DOCUMENT_KINDS[kind]
        session = self.session()
        try:
            doc = session.get(model, doc_id)
            if doc is None:
                return DocumentSnapshot(error=NotFoundError(kind.rstrip("s"), doc_id), epoch=epoch)
            return DocumentSnapshot(data=schema.model_validate(doc), epoch=epoch)
        except SQLAlchemyError as exc:
            logger.error(f"Failed to read {kind}/{doc_id} for snapshot: {exc}")
            return DocumentSnapshot(error=StoreError(), epoch=epoch)
        finally:
            session.close()

    def _query_snapshot(self, subscription: _QuerySubscription, epoch: int) -> QuerySnapshot:
        session = self.session()
        try:
            data = self._query_data(session, subscription.kind, subscription.project_id, subscription.feature_id)
            return QuerySnapshot(data=data, epoch=epoch)
        except SQLAlchemyError as exc:
            logger.error(f"Failed to run {subscription.kind} query for snapshot: {exc}")
            return QuerySnapshot(data=[], error=StoreError(), epoch=epoch)
        finally:
            session.close()

    def _publish(self, touched: _TouchedDocuments, epoch: int) -> None:
        with self._lock:
            document_targets = [
                (key, list(self._document_listeners.get(key, [])))
                for key in touched.documents
                if key in self._document_listeners
            ]
            query_targets = [
                sub for sub in self._query_listeners
                if (sub.kind, sub.project_id) in touched.projects
            ]

        for (kind, doc_id), listeners in document_targets:
            snapshot = self._document_snapshot(kind, doc_id, epoch)
            for listener in listeners:
                self._deliver(listener, snapshot)

        for subscription in query_targets:
            self._deliver(subscription.listener, self._query_snapshot(subscription, epoch))

    @staticmethod
    def _deliver(listener: Listener, snapshot) -> None:
        try:
            listener(snapshot)
        except Exception as exc:
            logger.exception(f"Snapshot listener failed: {exc}")
