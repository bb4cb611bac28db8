# precast_pricing/tests/conftest.py
import os
import tempfile
from datetime import date
from decimal import Decimal
from uuid import uuid4

os.environ.setdefault("LOG_DIR", os.path.join(tempfile.gettempdir(), "precast_pricing_test_logs"))

import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from precast_pricing.db.init_db import init_db
from precast_pricing.db.session import configure_engine, enable_sqlite_savepoints, get_session
from precast_pricing.models.formula_line import FormulaLine
from precast_pricing.models.material import Material
from precast_pricing.models.material_zone_price import MaterialZonePrice
from precast_pricing.models.piece import Piece
from precast_pricing.models.process_parameters import ProcessParameters
from precast_pricing.models.zone import Zone
from precast_pricing.routes.common import build_services


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    enable_sqlite_savepoints(engine)
    init_db(engine)
    configure_engine(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine):
    session = get_session()
    yield session
    session.rollback()
    session.close()


@pytest.fixture
def services(db):
    return build_services(db)


class Seed:
    """Creates collaborator-owned rows and ledger rows directly, committed."""

    def __init__(self, db):
        self.db = db

    def _save(self, obj):
        self.db.add(obj)
        self.db.commit()
        return obj

    def zone(self, code="Z1", name=None, display_order=0):
        return self._save(Zone(id=str(uuid4()), code=code, name=name or f"Zone {code}", display_order=display_order))

    def material(self, code="A", name=None, unit="kg", category="general", is_active=True):
        return self._save(Material(
            id=str(uuid4()), code=code, name=name or f"Material {code}",
            unit=unit, category=category, is_active=is_active,
        ))

    def piece(self, code="P1", kg_steel=None, m3_concrete=None, tons=None):
        return self._save(Piece(
            id=str(uuid4()), code=code, name=f"Piece {code}",
            kg_steel_per_unit=kg_steel, m3_concrete_per_unit=m3_concrete, ton_weight_per_unit=tons,
        ))

    def line(self, piece, material, qty, waste="0"):
        return self._save(FormulaLine(
            id=str(uuid4()), piece_id=piece.id, material_id=material.id,
            quantity_per_unit=Decimal(str(qty)), waste_factor=Decimal(str(waste)),
        ))

    def price(self, material, zone, price, valid_from, valid_until=None, is_active=True):
        return self._save(MaterialZonePrice(
            id=str(uuid4()), material_id=material.id, zone_id=zone.id,
            price=Decimal(str(price)), valid_from=valid_from, valid_until=valid_until,
            is_active=is_active, created_by="seed",
        ))

    def parameters(self, zone, month_date, **values):
        row = ProcessParameters(id=str(uuid4()), zone_id=zone.id, month_date=month_date)
        for key, value in values.items():
            setattr(row, key, Decimal(str(value)))
        return self._save(row)


@pytest.fixture
def seed(db):
    return Seed(db)


@pytest.fixture
def example(seed):
    '''
    Piece P with material A (qty 2, waste 0.1) and B (qty 1, waste 0),
    A = 10.00 and B = 5.00 in zone Z from 2024-01-01.
    '''
    zone = seed.zone("Z")
    a = seed.material("A", category="cement")
    b = seed.material("B", category="steel")
    piece = seed.piece("P", kg_steel=50, m3_concrete=1, tons=2)
    seed.line(piece, a, 2, "0.1")
    seed.line(piece, b, 1, "0")
    seed.price(a, zone, "10.00", date(2024, 1, 1))
    seed.price(b, zone, "5.00", date(2024, 1, 1))
    return {"zone": zone, "a": a, "b": b, "piece": piece}
