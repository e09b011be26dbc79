from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from uuid import uuid4

from loguru import logger
from sqlalchemy import create_engine, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from .records import CustomerRecord, GateRecord
from .sql_models import Base, CustomerRow, GateRow

# Felder, die ein Update nicht ueberschreibt
_IMMUTABLE = {"id", "customer_id", "created_at"}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _row_values(record: GateRecord) -> Dict[str, Any]:
    return record.model_dump(exclude=_IMMUTABLE | {"updated_at"})


class SqlGateStorage:
    """
    GateStorage backed by SQLAlchemy (customers + gates tables).

    Sync ORM calls run in a worker thread so the event loop only suspends
    at this boundary. Backend errors are logged and reported as None/False.
    """

    def __init__(self, database_url: Optional[str] = None, *, engine: Optional[Engine] = None):
        if engine is None:
            if not database_url:
                raise ValueError("database_url or engine required")
            connect_args = (
                {"check_same_thread": False} if database_url.startswith("sqlite") else {}
            )
            engine = create_engine(database_url, connect_args=connect_args)
        self.engine = engine
        self.SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)

    def create_all(self) -> None:
        Base.metadata.create_all(bind=self.engine)

    def add_customer(self, owner_id: str, name: str, **fields: Any) -> CustomerRecord:
        """Seeding helper; customer CRUD itself lives outside this package."""
        with self.SessionLocal() as db:
            row = CustomerRow(
                id=str(fields.pop("id", None) or uuid4().hex),
                user_id=owner_id,
                name=name,
                created_at=fields.pop("created_at", None) or _utcnow(),
                **fields,
            )
            db.add(row)
            db.commit()
            return CustomerRecord.model_validate(
                {**self._customer_dict(row), "gates": []}
            )

    # ------------------------------------------------------------------
    # GateStorage
    # ------------------------------------------------------------------

    async def load_customers(self, owner_id: str) -> List[CustomerRecord]:
        return await asyncio.to_thread(self._load_customers, owner_id)

    async def load_gate(self, gate_id: str) -> Optional[GateRecord]:
        return await asyncio.to_thread(self._load_gate, gate_id)

    async def save_gate(self, customer_id: str, record: GateRecord) -> Optional[GateRecord]:
        return await asyncio.to_thread(self._save_gate, customer_id, record)

    async def update_gate(self, gate_id: str, record: GateRecord) -> bool:
        return await asyncio.to_thread(self._update_gate, gate_id, record)

    async def delete_gate(self, gate_id: str) -> bool:
        return await asyncio.to_thread(self._delete_gate, gate_id)

    # ------------------------------------------------------------------
    # Sync implementation
    # ------------------------------------------------------------------

    @staticmethod
    def _customer_dict(row: CustomerRow) -> Dict[str, Any]:
        return {
            "id": row.id,
            "name": row.name,
            "company": row.company,
            "address": row.address,
            "city": row.city,
            "phone": row.phone,
            "email": row.email,
        }

    def _gates_for_customer(self, db: Session, customer_id: str) -> List[GateRecord]:
        rows = db.scalars(
            select(GateRow)
            .where(GateRow.customer_id == customer_id)
            .order_by(GateRow.created_at.desc())
        ).all()
        return [GateRecord.model_validate(r) for r in rows]

    def _load_customers(self, owner_id: str) -> List[CustomerRecord]:
        try:
            with self.SessionLocal() as db:
                rows = db.scalars(
                    select(CustomerRow)
                    .where(CustomerRow.user_id == owner_id)
                    .order_by(CustomerRow.created_at.desc())
                ).all()
                customers = [
                    CustomerRecord.model_validate(
                        {**self._customer_dict(r), "gates": self._gates_for_customer(db, r.id)}
                    )
                    for r in rows
                ]
        except SQLAlchemyError as e:
            logger.error("Error loading customers: {}", e)
            return []
        logger.info("Loaded {} customers for owner {}", len(customers), owner_id)
        return customers

    def _load_gate(self, gate_id: str) -> Optional[GateRecord]:
        try:
            with self.SessionLocal() as db:
                row = db.get(GateRow, gate_id)
                return GateRecord.model_validate(row) if row is not None else None
        except SQLAlchemyError as e:
            logger.error("Error loading gate {}: {}", gate_id, e)
            return None

    def _save_gate(self, customer_id: str, record: GateRecord) -> Optional[GateRecord]:
        now = _utcnow()
        try:
            with self.SessionLocal() as db:
                row = GateRow(
                    id=record.id,
                    customer_id=customer_id,
                    created_at=record.created_at or now,
                    updated_at=now,
                    **_row_values(record),
                )
                db.add(row)
                db.commit()
                db.refresh(row)
                saved = GateRecord.model_validate(row)
        except SQLAlchemyError as e:
            logger.error("Error saving gate {}: {}", record.id, e)
            return None
        logger.info("Gate {} saved for customer {}", saved.id, customer_id)
        return saved

    def _update_gate(self, gate_id: str, record: GateRecord) -> bool:
        try:
            with self.SessionLocal() as db:
                row = db.get(GateRow, gate_id)
                if row is None:
                    logger.warning("Gate {} not found for update", gate_id)
                    return False
                for key, value in _row_values(record).items():
                    setattr(row, key, value)
                row.updated_at = _utcnow()
                db.commit()
        except SQLAlchemyError as e:
            logger.error("Error updating gate {}: {}", gate_id, e)
            return False
        logger.info("Gate {} updated", gate_id)
        return True

    def _delete_gate(self, gate_id: str) -> bool:
        try:
            with self.SessionLocal() as db:
                row = db.get(GateRow, gate_id)
                if row is None:
                    return False
                db.delete(row)
                db.commit()
        except SQLAlchemyError as e:
            logger.error("Error deleting gate {}: {}", gate_id, e)
            return False
        logger.info("Gate {} deleted", gate_id)
        return True
