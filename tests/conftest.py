import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app import app, get_ledger
from config import LedgerSettings
from database import Base
from ledger import ProvenanceLedger

ADMIN = "deployer"
SUPPLIER = "supplier"
DISTRIBUTOR = "distributor"
FEE = 10**15

KOPI = dict(
    name="Kopi Arabica",
    origin="Toraja, Sulawesi Selatan",
    batch_number="1",
    quantity_kg=100,
    metadata_uri="ipfs://bafybeicw5okhl2hng2oqwnqsrrtd62unewcr3gjdry2msofdnyfcnng3vq/0.json",
)


@pytest.fixture
def ledger():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    session_factory = sessionmaker(autoflush=False, bind=engine)
    ledger = ProvenanceLedger(session_factory, LedgerSettings(admin=ADMIN, mint_fee=FEE))
    ledger.initialize()
    yield ledger
    engine.dispose()


@pytest.fixture
def minted(ledger):
    """Ledger with SUPPLIER registered and token 1 minted by it."""
    ledger.add_supplier(ADMIN, SUPPLIER)
    ledger.mint_product(SUPPLIER, paid_amount=FEE, **KOPI)
    return ledger


@pytest.fixture
def client(ledger):
    app.dependency_overrides[get_ledger] = lambda: ledger
    yield TestClient(app)
    app.dependency_overrides.clear()
