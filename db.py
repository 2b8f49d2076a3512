import os
from pathlib import Path
from datetime import datetime
from sqlalchemy import create_engine, Column, String, Float, DateTime, JSON, Text, text
from sqlalchemy.orm import declarative_base, sessionmaker

from config import DATABASE_URL


def _build_connect_args(url: str) -> dict:
    # SQLite needs check_same_thread flag
    if url.startswith('sqlite'):
        return {"check_same_thread": False}

    # Postgres (incl. Supabase) with SSL
    if url.startswith('postgresql'):
        sslmode = os.getenv('PGSSLMODE', 'verify-full')
        default_ca = Path(__file__).parent / 'certs' / 'prod-ca-2021.crt'
        ca_path = os.getenv('PGSSLROOTCERT') or os.getenv('SUPABASE_CA_CERT') or str(default_ca)
        args = {"sslmode": sslmode}
        if Path(ca_path).exists():
            args["sslrootcert"] = ca_path
        return args

    return {}


def make_engine(url: str = DATABASE_URL):
    return create_engine(url, connect_args=_build_connect_args(url), future=True)


engine = make_engine(DATABASE_URL)

SessionLocal = sessionmaker(bind=engine, autoflush=False, future=True)
Base = declarative_base()


class CalculationDB(Base):
    __tablename__ = 'solar_calculations'

    id = Column(String(36), primary_key=True)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)

    user_id = Column(String(128), nullable=True, index=True)
    address = Column(Text)
    calculation_type = Column(String(16))

    # Inputs
    monthly_bill = Column(Float)
    roof_area = Column(Float)

    # Headline results
    system_size = Column(Float)
    annual_production = Column(Float)
    annual_savings = Column(Float)
    payback_period = Column(Float, nullable=True)
    total_cost = Column(Float)
    net_cost = Column(Float)

    # Full request/response for reference/audit
    payload = Column(JSON)
    result = Column(JSON)

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'createdAt': self.created_at.isoformat() if self.created_at else None,
            'userId': self.user_id,
            'address': self.address,
            'calculationType': self.calculation_type,
            'monthlyBill': self.monthly_bill,
            'roofArea': self.roof_area,
            'systemSize': self.system_size,
            'annualProduction': self.annual_production,
            'annualSavings': self.annual_savings,
            'paybackPeriod': self.payback_period,
            'totalCost': self.total_cost,
            'netCost': self.net_cost,
            'input': self.payload,
            'result': self.result,
        }


def init_db(bind=None):
    Base.metadata.create_all(bind=bind or engine)


def ping(session_factory=SessionLocal) -> bool:
    db = session_factory()
    try:
        db.execute(text('SELECT 1'))
        return True
    finally:
        db.close()
