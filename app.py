import io
import logging
from typing import Optional

from fastapi import FastAPI, Depends, Header, Request, Response, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

import qrcode

from config import settings
from database import Base, engine, SessionLocal
from errors import LedgerError, Unauthorized, InvalidPayment, NotFound, OwnerMismatch
from ledger import ProvenanceLedger
import schemas
from schemas import (
    AddSupplier, MintProduct, StatusUpdate, TransferRequest, ApprovalRequest,
    OperatorRequest, ProductRecord,
)

# ---------- Config ----------
logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("supplychain")

ERROR_STATUS = {
    Unauthorized: 403,
    InvalidPayment: 402,
    NotFound: 404,
    OwnerMismatch: 409,
}

app = FastAPI(title="SupplyChainNFT Ledger", version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # restrict in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

@app.exception_handler(LedgerError)
async def ledger_error_handler(request: Request, exc: LedgerError):
    return JSONResponse(
        status_code=ERROR_STATUS.get(type(exc), 400),
        content={"detail": str(exc), "error": exc.kind},
    )

# ---------- Ledger ----------
@app.on_event("startup")
def on_startup():
    Base.metadata.create_all(bind=engine)
    app.state.ledger = ProvenanceLedger(SessionLocal, settings)
    info = app.state.ledger.initialize()
    logger.info("%s (%s) ready, admin=%s, next token id %d",
                info.name, info.symbol, info.admin, info.next_token_id)

def get_ledger(request: Request) -> ProvenanceLedger:
    return request.app.state.ledger

def get_caller(x_caller: str = Header(..., min_length=1, description="caller identity")) -> str:
    return x_caller

# ---------- APIs: ledger & suppliers ----------
@app.get("/api/ledger", response_model=schemas.LedgerInfo)
def ledger_info(ledger: ProvenanceLedger = Depends(get_ledger)):
    return ledger.info()

@app.post("/api/suppliers", response_model=schemas.SupplierStatus)
def add_supplier(body: AddSupplier, caller: str = Depends(get_caller),
                 ledger: ProvenanceLedger = Depends(get_ledger)):
    ledger.add_supplier(caller, body.identity)
    return schemas.SupplierStatus(identity=body.identity, verified=True)

@app.get("/api/suppliers/{identity}", response_model=schemas.SupplierStatus)
def supplier_status(identity: str, ledger: ProvenanceLedger = Depends(get_ledger)):
    return schemas.SupplierStatus(identity=identity, verified=ledger.is_supplier(identity))

@app.post("/api/operators")
def set_operator(body: OperatorRequest, caller: str = Depends(get_caller),
                 ledger: ProvenanceLedger = Depends(get_ledger)):
    ledger.set_operator(caller, body.operator, body.approved)
    return {"holder": caller, "operator": body.operator, "approved": body.approved}

@app.get("/api/holders/{identity}/balance", response_model=schemas.Balance)
def balance_of(identity: str, ledger: ProvenanceLedger = Depends(get_ledger)):
    return schemas.Balance(identity=identity, balance=ledger.balance_of(identity))

# ---------- APIs: one product ----------
@app.post("/api/products", response_model=ProductRecord, status_code=201)
def mint_product(body: MintProduct, caller: str = Depends(get_caller),
                 ledger: ProvenanceLedger = Depends(get_ledger)):
    return ledger.mint(
        caller,
        name=body.name,
        origin=body.origin,
        batch_number=body.batch_number,
        quantity_kg=body.quantity_kg,
        metadata_uri=body.metadata_uri,
        paid_amount=body.paid_amount,
    )

@app.get("/api/products/{token_id}", response_model=ProductRecord)
def get_product(token_id: int, ledger: ProvenanceLedger = Depends(get_ledger)):
    return ledger.get_product(token_id)

@app.get("/api/products/{token_id}/owner", response_model=schemas.OwnerOf)
def owner_of(token_id: int, ledger: ProvenanceLedger = Depends(get_ledger)):
    return schemas.OwnerOf(token_id=token_id, owner=ledger.owner_of(token_id))

@app.put("/api/products/{token_id}/status", response_model=ProductRecord)
def update_status(token_id: int, body: StatusUpdate, caller: str = Depends(get_caller),
                  ledger: ProvenanceLedger = Depends(get_ledger)):
    return ledger.update_status(caller, token_id, body.status)

@app.post("/api/products/{token_id}/transfer", response_model=ProductRecord)
def transfer(token_id: int, body: TransferRequest, caller: str = Depends(get_caller),
             ledger: ProvenanceLedger = Depends(get_ledger)):
    return ledger.transfer(caller, token_id, body.from_identity, body.to_identity)

@app.post("/api/products/{token_id}/approval")
def approve(token_id: int, body: ApprovalRequest, caller: str = Depends(get_caller),
            ledger: ProvenanceLedger = Depends(get_ledger)):
    return {"token_id": token_id, "delegate": ledger.approve(caller, token_id, body.delegate)}

@app.get("/api/products/{token_id}/history", response_model=schemas.ProductHistory)
def product_history(token_id: int, ledger: ProvenanceLedger = Depends(get_ledger)):
    return ledger.history(token_id)

@app.get("/api/products/{token_id}/verify")
def verify_product(token_id: int, ledger: ProvenanceLedger = Depends(get_ledger)):
    history = ledger.history(token_id)
    return {"verified": history.verified, "events": history.total_events}

@app.get("/api/products/{token_id}/qrcode")
def product_qrcode(token_id: int, ledger: ProvenanceLedger = Depends(get_ledger)):
    ledger.get_product(token_id)
    url = f"{settings.base_url}/api/products/{token_id}"
    img = qrcode.make(url)
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return Response(content=buf.getvalue(), media_type="image/png")

# ---------- Products listing & search ----------
@app.get("/api/products", response_model=schemas.ProductList)
def list_products(
    owner: Optional[str] = Query(None, description="current holder"),
    supplier: Optional[str] = Query(None, description="minting supplier"),
    q: Optional[str] = Query(None, description="search name/origin/batch_number"),
    page: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1, le=100),
    ledger: ProvenanceLedger = Depends(get_ledger),
):
    return ledger.list_products(owner=owner, supplier=supplier, q=q, page=page, page_size=page_size)

# ---------- Demo data ----------
DEMO_SUPPLIER = "supplier-demo"
DEMO_DISTRIBUTOR = "distributor-demo"

@app.get("/api/seed")
def seed(ledger: ProvenanceLedger = Depends(get_ledger)):
    info = ledger.info()
    if info.next_token_id > 1:
        return {"status": "exists", "next_token_id": info.next_token_id}

    ledger.add_supplier(info.admin, DEMO_SUPPLIER)
    token_id = ledger.mint_product(
        DEMO_SUPPLIER,
        name="Kopi Arabica",
        origin="Toraja, Sulawesi Selatan",
        batch_number="1",
        quantity_kg=100,
        metadata_uri="ipfs://bafybeicw5okhl2hng2oqwnqsrrtd62unewcr3gjdry2msofdnyfcnng3vq/0.json",
        paid_amount=info.mint_fee,
    )
    ledger.update_status(DEMO_SUPPLIER, token_id, "Shipped to distributor")
    ledger.transfer(DEMO_SUPPLIER, token_id, DEMO_SUPPLIER, DEMO_DISTRIBUTOR)
    ledger.update_status(DEMO_DISTRIBUTOR, token_id, "Stored at distributor warehouse")
    return {"status": "seeded", "token_id": token_id}

@app.get("/")
def root():
    return {"name": app.title, "version": app.version, "docs": "/docs"}
