"""
Collection Gateway - document-style access to the shared store

Every client talks to the store through this gateway: per-document merge
updates, full writes, idempotent deletes, atomic batched writes and push
subscriptions. Subscribers receive the full collection snapshot after each
committed write, or once per coalesced block of writes.
"""
import logging
from collections import defaultdict
from contextlib import contextmanager
from typing import Callable, Dict, List, Optional, Set, Type

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from dispatch.config import settings
from dispatch.models import Order, User, AuditLog, Counter

logger = logging.getLogger(__name__)

COLLECTIONS: Dict[str, Type] = {
    "orders": Order,
    "users": User,
    "audit_logs": AuditLog,
    "counters": Counter,
}

Subscriber = Callable[[List[dict]], None]


class GatewayError(Exception):
    """
    A store call was rejected
    
    applied is how many documents of the call are known to be written
    (0 when the transaction rolled back, None when the commit outcome is unknown).
    """
    
    def __init__(self, message: str, applied: Optional[int] = 0):
        self.applied = applied
        super().__init__(message)


class UnknownCollectionError(GatewayError):
    pass


def to_document(instance) -> dict:
    """Convert a model instance into a plain document"""
    return {column.name: getattr(instance, column.name) for column in instance.__table__.columns}


class CollectionGateway:
    """Reactive document store backed by SQLAlchemy"""
    
    def __init__(self, session_factory: sessionmaker, batch_ceiling: int = settings.BATCH_CEILING):
        self.session_factory = session_factory
        self.batch_ceiling = batch_ceiling
        self._subscribers: Dict[str, List[Subscriber]] = defaultdict(list)
        self._held: Dict[str, int] = defaultdict(int)
        self._dirty: Set[str] = set()
    
    # Subscriptions
    
    def subscribe(self, collection: str, on_change: Subscriber) -> Callable[[], None]:
        """
        Register a callback receiving the collection snapshot after every write
        
        Returns:
            Function that removes the subscription
        """
        self._model(collection)
        self._subscribers[collection].append(on_change)
        
        def unsubscribe():
            if on_change in self._subscribers[collection]:
                self._subscribers[collection].remove(on_change)
        
        return unsubscribe
    
    @contextmanager
    def coalesced(self, collection: str):
        """
        Hold back snapshots for writes made inside the block
    
        Subscribers receive one snapshot when the outermost block exits,
        and only if something was written.
        """
        self._model(collection)
        self._held[collection] += 1
        try:
            yield
        finally:
            self._held[collection] -= 1
            if self._held[collection] == 0 and collection in self._dirty:
                self._dirty.discard(collection)
                self._publish(collection)
    
    def _changed(self, collection: str):
        if self._held[collection]:
            self._dirty.add(collection)
        else:
            self._publish(collection)
    
    def _publish(self, collection: str):
        listeners = list(self._subscribers.get(collection, ()))
        if not listeners:
            return
        
        docs = self._read_all(collection)
        for listener in listeners:
            try:
                listener(docs)
            except Exception:
                logger.exception("✗ Subscriber for %s failed", collection)
    
    # Reads
    
    async def list(self, collection: str) -> List[dict]:
        """Snapshot of every document in the collection"""
        return self._read_all(collection)
    
    async def get(self, collection: str, doc_id: str) -> Optional[dict]:
        model = self._model(collection)
        with self._session() as db:
            instance = db.get(model, doc_id)
            return to_document(instance) if instance else None
    
    # Writes
    
    async def update(self, collection: str, doc_id: str, fields: dict) -> None:
        """Merge fields into an existing document; unspecified fields are untouched"""
        model = self._model(collection)
        
        def apply(db: Session) -> int:
            instance = db.get(model, doc_id)
            if instance is None:
                raise GatewayError(f"{collection}/{doc_id} does not exist")
            self._assign(model, instance, fields)
            return 1
        
        self._write(collection, apply)
    
    async def set(self, collection: str, doc_id: str, fields: dict) -> None:
        """Write the whole document, creating it when missing"""
        self._write(collection, lambda db: self._put(db, collection, doc_id, fields))
    
    async def delete(self, collection: str, doc_id: str) -> None:
        """Delete a document; deleting a missing document is a no-op"""
        model = self._model(collection)
        
        def apply(db: Session) -> int:
            instance = db.get(model, doc_id)
            if instance is None:
                return 0
            db.delete(instance)
            return 1
        
        self._write(collection, apply)
    
    async def batch_update(self, collection: str, updates: Dict[str, dict]) -> None:
        """Merge many partial updates as one atomic write"""
        model = self._model(collection)
        
        def apply(db: Session) -> int:
            for doc_id, fields in updates.items():
                instance = db.get(model, doc_id)
                if instance is None:
                    raise GatewayError(f"{collection}/{doc_id} does not exist")
                self._assign(model, instance, fields)
            return len(updates)
        
        if updates:
            self._write(collection, apply)
    
    async def batch_set(self, collection: str, documents: Dict[str, dict]) -> None:
        """Write many whole documents as one atomic write"""
        def apply(db: Session) -> int:
            for doc_id, fields in documents.items():
                self._put(db, collection, doc_id, fields)
            return len(documents)
        
        if documents:
            self._write(collection, apply)
    
    async def increment(self, collection: str, doc_id: str, field: str = "value", amount: int = 1) -> int:
        """
        Atomically add to a numeric field, creating the document at zero when missing
        
        Returns:
            The value after the increment
        """
        model = self._model(collection)
        result = {}
        
        def apply(db: Session) -> int:
            instance = db.query(model).filter(model.id == doc_id).with_for_update().first()
            if instance is None:
                instance = model(id=doc_id, **{field: 0})
                db.add(instance)
            setattr(instance, field, (getattr(instance, field) or 0) + amount)
            result["value"] = getattr(instance, field)
            return 1
        
        self._write(collection, apply)
        return result["value"]
    
    # Internals
    
    def _model(self, collection: str) -> Type:
        try:
            return COLLECTIONS[collection]
        except KeyError:
            raise UnknownCollectionError(f"Unknown collection: {collection}")
    
    @contextmanager
    def _session(self):
        db = self.session_factory()
        try:
            yield db
        finally:
            db.close()
    
    def _read_all(self, collection: str) -> List[dict]:
        model = self._model(collection)
        with self._session() as db:
            return [to_document(instance) for instance in db.query(model).all()]
    
    def _put(self, db: Session, collection: str, doc_id: str, fields: dict) -> int:
        model = self._model(collection)
        instance = db.get(model, doc_id)
        if instance is None:
            instance = model(id=doc_id)
            db.add(instance)
        values = {k: v for k, v in fields.items() if k != "id"}
        self._assign(model, instance, values)
        return 1
    
    def _assign(self, model, instance, fields: dict):
        columns = model.__table__.columns
        for key, value in fields.items():
            if key not in columns:
                raise GatewayError(f"Unknown field {key} for {model.__tablename__}")
            setattr(instance, key, value)
    
    def _write(self, collection: str, apply: Callable[[Session], int]) -> int:
        with self._session() as db:
            try:
                written = apply(db)
                db.flush()
            except GatewayError:
                db.rollback()
                raise
            except SQLAlchemyError as e:
                db.rollback()
                raise GatewayError(f"Write to {collection} rejected: {e}", applied=0)
            
            try:
                db.commit()
            except SQLAlchemyError as e:
                db.rollback()
                raise GatewayError(f"Commit to {collection} failed: {e}", applied=None)
        
        self._changed(collection)
        return written
