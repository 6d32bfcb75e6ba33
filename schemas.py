from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, Any, Dict, List

from models import MAX_INT

class AddSupplier(BaseModel):
    identity: str = Field(..., min_length=1, max_length=255)

class SupplierStatus(BaseModel):
    identity: str
    verified: bool

class MintProduct(BaseModel):
    name: str = Field(..., max_length=255)
    origin: str = Field(..., max_length=255)
    batch_number: str = Field(..., max_length=64)
    quantity_kg: int = Field(..., ge=0, le=MAX_INT)
    metadata_uri: str
    paid_amount: int = Field(..., ge=0, le=MAX_INT)  # smallest currency unit

class StatusUpdate(BaseModel):
    status: str

class TransferRequest(BaseModel):
    from_identity: str = Field(..., min_length=1, max_length=255)
    to_identity: str = Field(..., min_length=1, max_length=255)

class ApprovalRequest(BaseModel):
    delegate: Optional[str] = Field(None, max_length=255)  # None clears

class OperatorRequest(BaseModel):
    operator: str = Field(..., min_length=1, max_length=255)
    approved: bool = True

class ProductRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    origin: str
    batch_number: str
    quantity_kg: int
    metadata_uri: str
    current_status: str
    supplier: str
    owner: str

class ProductList(BaseModel):
    items: List[ProductRecord]
    total: int
    page: int
    page_size: int

class OwnerOf(BaseModel):
    token_id: int
    owner: str

class Balance(BaseModel):
    identity: str
    balance: int

class LedgerInfo(BaseModel):
    name: str
    symbol: str
    admin: str
    next_token_id: int
    mint_fee: int
    admin_balance: int

class HistoryEvent(BaseModel):
    id: int
    type: str
    payload: Dict[str, Any]
    timestamp: str
    prev_hash: str
    hash: str

class ProductHistory(BaseModel):
    token_id: int
    verified: bool
    total_events: int
    chain: List[HistoryEvent]
