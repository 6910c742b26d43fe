# healthpass/store.py
"""
Thin data-access layer over a SQLAlchemy session.

Every call is one independent request: it commits on success, rolls back on
failure and translates database errors into the error taxonomy. Nothing is
retried.
"""
import logging
from typing import Any, List, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from healthpass.errors import ConstraintViolation, StoreError

logger = logging.getLogger(__name__)


class Store:
    def __init__(self, db: Session):
        self.db = db

    def select(self, model, order_by=None, descending: bool = False, limit: Optional[int] = None, **filters) -> List[Any]:
        """Filtered select: equality predicates on columns, optional ordering."""
        try:
            query = self.db.query(model).filter_by(**filters)
            if order_by is not None:
                column = getattr(model, order_by)
                query = query.order_by(column.desc() if descending else column.asc())
            if limit is not None:
                query = query.limit(limit)
            return query.all()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("select on %s failed: %s", model.__tablename__, e)
            raise StoreError(f"failed to read {model.__tablename__}") from e

    def first(self, model, order_by=None, descending: bool = False, **filters):
        rows = self.select(model, order_by=order_by, descending=descending, limit=1, **filters)
        return rows[0] if rows else None

    def get(self, model, key):
        try:
            return self.db.get(model, key)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("get on %s failed: %s", model.__tablename__, e)
            raise StoreError(f"failed to read {model.__tablename__}") from e

    def insert(self, row):
        try:
            self.db.add(row)
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            logger.info("insert into %s violated a constraint", row.__tablename__)
            raise ConstraintViolation(f"{row.__tablename__} constraint violated") from e
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("insert into %s failed: %s", row.__tablename__, e)
            raise StoreError(f"failed to write {row.__tablename__}") from e
        self.db.refresh(row)
        return row

    def update(self, row, **patch):
        try:
            for key, value in patch.items():
                setattr(row, key, value)
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            raise ConstraintViolation(f"{row.__tablename__} constraint violated") from e
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("update of %s failed: %s", row.__tablename__, e)
            raise StoreError(f"failed to update {row.__tablename__}") from e
        self.db.refresh(row)
        return row

    def update_where(self, model, criteria, values) -> int:
        """Single UPDATE guarded by `criteria`; returns the number of rows it touched."""
        try:
            count = self.db.query(model).filter(*criteria).update(values, synchronize_session=False)
            self.db.commit()
            return count
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("update of %s failed: %s", model.__tablename__, e)
            raise StoreError(f"failed to update {model.__tablename__}") from e

    def delete(self, model, **filters) -> int:
        """Delete matching rows; returns how many were removed (zero is fine)."""
        try:
            count = self.db.query(model).filter_by(**filters).delete(synchronize_session=False)
            self.db.commit()
            return count
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("delete from %s failed: %s", model.__tablename__, e)
            raise StoreError(f"failed to delete from {model.__tablename__}") from e
