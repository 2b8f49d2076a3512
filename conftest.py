import os
import tempfile

import pytest

# Must run before db/config are imported anywhere
_TMP_DIR = tempfile.mkdtemp(prefix='solar_grind_test_')
os.environ['DATABASE_URL'] = f"sqlite:///{os.path.join(_TMP_DIR, 'test.db')}"
os.environ['NREL_API_KEY'] = ''
os.environ.setdefault('LOG_LEVEL', 'WARNING')


@pytest.fixture
def client():
    from server import app
    app.config['TESTING'] = True
    with app.test_client() as c:
        yield c


@pytest.fixture
def store(tmp_path):
    from sqlalchemy.orm import sessionmaker
    from calculation_store import CalculationStore
    from db import init_db, make_engine

    engine = make_engine(f"sqlite:///{tmp_path / 'store.db'}")
    init_db(bind=engine)
    yield CalculationStore(sessionmaker(bind=engine, autoflush=False, future=True))
    engine.dispose()


@pytest.fixture
def scenario_payload():
    """$150/month, 1000 sq ft, mono + optimizer, roof mount, south"""
    return {
        'monthlyBillUSD': 150,
        'roofAreaSqFt': 1000,
        'equipment': {
            'panelType': 'monocrystalline',
            'inverterType': 'power_optimizer',
            'mountingType': 'roof_mount',
            'orientation': 'south',
        },
        'shadingFactorPct': 100,
    }
