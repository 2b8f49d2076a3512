#!/usr/bin/env python3
"""
Persistence for saved solar estimates (SQLAlchemy, table solar_calculations)
"""

import logging
import uuid
from datetime import datetime
from typing import List, Optional, Dict, Any

from sqlalchemy import select

from db import CalculationDB, SessionLocal, ping
from models import CalculationInput, CalculationResult

logger = logging.getLogger(__name__)


class CalculationStore:
    """Saves, lists and deletes calculations; one session per operation"""

    def __init__(self, session_factory=SessionLocal):
        self.session_factory = session_factory

    def generate_id(self) -> str:
        return str(uuid.uuid4())

    # Writes
    def save(self, calculation_input: CalculationInput, result: CalculationResult,
             user_id: Optional[str] = None, address: Optional[str] = None,
             created_at: Optional[datetime] = None) -> str:
        """Stores one calculation and returns its id. `created_at` defaults to now (UTC)."""
        calculation_id = self.generate_id()
        row = CalculationDB(
            id=calculation_id,
            user_id=user_id,
            address=address,
            calculation_type=result.tier.value,
            monthly_bill=calculation_input.monthly_bill_usd,
            roof_area=calculation_input.roof_area_sq_ft,
            system_size=result.system_size_kw,
            annual_production=result.annual_production_kwh,
            annual_savings=result.annual_savings_usd,
            payback_period=result.payback_period_years,
            total_cost=result.total_cost_usd,
            net_cost=result.net_cost_usd,
            payload=calculation_input.to_dict(),
            result=result.to_dict(),
        )
        if created_at is not None:
            row.created_at = created_at
        db = self.session_factory()
        try:
            db.add(row)
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()
        logger.info("Calculation %s saved (user=%s)", calculation_id, user_id)
        return calculation_id

    def delete(self, calculation_id: str) -> bool:
        db = self.session_factory()
        try:
            row = db.get(CalculationDB, calculation_id)
            if row is None:
                return False
            db.delete(row)
            db.commit()
            return True
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    # Reads
    def get(self, calculation_id: str) -> Optional[Dict[str, Any]]:
        db = self.session_factory()
        try:
            row = db.get(CalculationDB, calculation_id)
            return row.to_dict() if row else None
        finally:
            db.close()

    def list(self, user_id: Optional[str] = None, limit: int = 50) -> List[Dict[str, Any]]:
        """Newest first, optionally only one user's calculations"""
        stmt = select(CalculationDB).order_by(CalculationDB.created_at.desc()).limit(limit)
        if user_id:
            stmt = stmt.where(CalculationDB.user_id == user_id)
        db = self.session_factory()
        try:
            return [row.to_dict() for row in db.scalars(stmt)]
        finally:
            db.close()

    def ping(self) -> bool:
        return ping(self.session_factory)
