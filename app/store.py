"""Generic record store over a SQLAlchemy session.

The engine only talks to persistence through ``get`` / ``query`` /
``create`` / ``update``. Filters are plain SQL fragments with named
parameters, the same way the routers used to build their queries.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import DateTime, bindparam, select, text, update as sql_update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.errors import ConflictError, NotFoundError
from app.models import Amenity, Reservation, User, utcnow

logger = logging.getLogger(__name__)

COLLECTIONS = {
    "amenities": Amenity,
    "reservations": Reservation,
    "users": User,
}


def _bind(name: str, value: Any):
    if isinstance(value, (list, tuple, set, frozenset)):
        return bindparam(name, list(value), expanding=True)
    if isinstance(value, datetime):
        # typed so SQLite compares against the stored string format
        return bindparam(name, value, type_=DateTime())
    return bindparam(name, value)


class RecordStore:
    def __init__(self, db: Session):
        self.db = db

    def _model(self, collection: str):
        try:
            return COLLECTIONS[collection]
        except KeyError:
            raise ValueError(f"Unknown collection: {collection}") from None

    def get(self, collection: str, item_id: str):
        return self.db.get(self._model(collection), item_id)

    def query(
        self,
        collection: str,
        where: Optional[str] = None,
        params: Optional[Dict[str, Any]] = None,
        order_by: Optional[str] = None,
    ) -> List[Any]:
        """
        Select rows of ``collection`` matching the SQL fragment ``where``.
        List values are expanded, so ``status IN :statuses`` takes a list.
        """
        stmt = select(self._model(collection))
        if where:
            clause = text(where)
            if params:
                clause = clause.bindparams(*[_bind(k, v) for k, v in params.items()])
            stmt = stmt.where(clause)
        if order_by:
            stmt = stmt.order_by(text(order_by))
        try:
            return list(self.db.execute(stmt).scalars().all())
        except SQLAlchemyError:
            self.db.rollback()
            raise

    def create(self, collection: str, item: Dict[str, Any]):
        row = self._model(collection)(**item)
        self.db.add(row)
        try:
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            raise ConflictError(f"{collection} item {item.get('id')} conflicts with an existing record") from exc
        self.db.refresh(row)
        return row

    def update(
        self,
        collection: str,
        item_id: str,
        changes: Dict[str, Any],
        expected: Optional[Dict[str, Any]] = None,
    ):
        """
        Write ``changes`` to one row, only if its columns still equal
        ``expected``. A row that moved on raises ConflictError.
        """
        model = self._model(collection)
        values = dict(changes)
        if hasattr(model, "updated_at"):
            values.setdefault("updated_at", utcnow())

        stmt = sql_update(model).where(model.id == item_id)
        for column, value in (expected or {}).items():
            stmt = stmt.where(getattr(model, column) == value)
        res = self.db.execute(stmt.values(**values).execution_options(synchronize_session=False))

        if res.rowcount != 1:
            self.db.rollback()
            if self.db.get(model, item_id) is None:
                raise NotFoundError(f"{collection} item {item_id} not found")
            logger.info("Conditional update of %s %s skipped: expected %s", collection, item_id, expected)
            raise ConflictError(f"{collection} item {item_id} was modified concurrently")

        self.db.commit()
        row = self.db.get(model, item_id)
        self.db.refresh(row)
        return row
