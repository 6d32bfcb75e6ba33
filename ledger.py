"""Provenance ledger for product batch tokens.

A token stands for one physical batch. Registered suppliers mint tokens
against a fixed fee, the holder of a token may rewrite its status line, and
tokens move between holders by transfer. Everything else about a product is
written once at mint time.

All operations, reads included, run under one lock and one database
transaction, so they apply in submission order and a rejected call leaves
nothing behind.
"""
import json
import logging
import threading
from contextlib import contextmanager
from typing import Callable, Iterator, List, Optional

from sqlalchemy import select, func, or_
from sqlalchemy.orm import Session

import schemas
from config import LedgerSettings
from errors import LedgerError, Unauthorized, NotFound, OwnerMismatch
from models import MAX_INT, LedgerState, Supplier, Product, OperatorApproval, Event
from payments import ensure_exact_fee
from utils import GENESIS, compute_hash, verify_chain, utcnow_iso

logger = logging.getLogger(__name__)

INITIAL_STATUS = "Created by supplier"
STATE_ID = 1


class ProvenanceLedger:
    def __init__(self, session_factory: Callable[[], Session], settings: LedgerSettings):
        self._session_factory = session_factory
        self.settings = settings
        self._lock = threading.Lock()

    @contextmanager
    def _transaction(self, op: str) -> Iterator[Session]:
        with self._lock:
            db = self._session_factory()
            try:
                yield db
                db.commit()
            except LedgerError as exc:
                db.rollback()
                logger.warning("%s rejected: %s: %s", op, exc.kind, exc)
                raise
            except Exception:
                db.rollback()
                raise
            finally:
                db.close()

    # ---------- Helpers ----------
    def _state(self, db: Session) -> LedgerState:
        state = db.get(LedgerState, STATE_ID)
        if state is None:
            state = LedgerState(
                id=STATE_ID,
                name=self.settings.token_name,
                symbol=self.settings.token_symbol,
                admin=self.settings.admin,
                next_token_id=1,
                mint_fee=self.settings.mint_fee,
                admin_balance=0,
            )
            db.add(state)
            db.flush()
            logger.info("ledger initialized: admin=%s fee=%d", state.admin, state.mint_fee)
        return state

    def _product(self, db: Session, token_id: int) -> Product:
        # ids outside the column range were never minted
        product = db.get(Product, token_id) if 1 <= token_id <= MAX_INT else None
        if product is None:
            raise NotFound(f"token {token_id} does not exist")
        return product

    def _is_supplier(self, db: Session, identity: str) -> bool:
        return db.scalar(select(Supplier.id).where(Supplier.identity == identity)) is not None

    def _is_operator(self, db: Session, holder: str, operator: str) -> bool:
        row = db.scalar(
            select(OperatorApproval.id).where(
                OperatorApproval.holder == holder,
                OperatorApproval.operator == operator,
            )
        )
        return row is not None

    def _may_move(self, db: Session, product: Product, holder: str, spender: str) -> bool:
        return (
            spender == holder
            or (product.approved is not None and spender == product.approved)
            or self._is_operator(db, holder, spender)
        )

    def _append_event(self, db: Session, product: Product, ev_type: str, payload: dict) -> Event:
        prev = db.scalar(
            select(Event).where(Event.token_id == product.id).order_by(Event.id.desc())
        )
        prev_hash = prev.hash if prev else GENESIS
        ts = utcnow_iso()
        ev = Event(
            token_id=product.id,
            type=ev_type,
            payload=json.dumps(payload),
            timestamp=ts,
            prev_hash=prev_hash,
            hash=compute_hash(prev_hash, payload, ts),
        )
        db.add(ev)
        db.flush()
        return ev

    @staticmethod
    def _chain(events: List[Event]) -> List[schemas.HistoryEvent]:
        return [schemas.HistoryEvent(
            id=e.id,
            type=e.type,
            payload=json.loads(e.payload),
            timestamp=e.timestamp,
            prev_hash=e.prev_hash,
            hash=e.hash,
        ) for e in events]

    @staticmethod
    def _info(state: LedgerState) -> schemas.LedgerInfo:
        return schemas.LedgerInfo(
            name=state.name,
            symbol=state.symbol,
            admin=state.admin,
            next_token_id=state.next_token_id,
            mint_fee=state.mint_fee,
            admin_balance=state.admin_balance,
        )

    # ---------- Administration ----------
    def initialize(self) -> schemas.LedgerInfo:
        """Create the ledger state on first start. An existing ledger keeps its admin and fee."""
        with self._transaction("initialize") as db:
            return self._info(self._state(db))

    def info(self) -> schemas.LedgerInfo:
        with self._transaction("info") as db:
            return self._info(self._state(db))

    def add_supplier(self, caller: str, identity: str) -> None:
        with self._transaction("add_supplier") as db:
            state = self._state(db)
            if caller != state.admin:
                raise Unauthorized("only the administrator can add suppliers")
            if self._is_supplier(db, identity):
                return
            db.add(Supplier(identity=identity, added_at=utcnow_iso()))
            logger.info("supplier added: %s", identity)

    def is_supplier(self, identity: str) -> bool:
        with self._transaction("is_supplier") as db:
            return self._is_supplier(db, identity)

    # ---------- Tokens ----------
    def mint_product(
        self,
        caller: str,
        name: str,
        origin: str,
        batch_number: str,
        quantity_kg: int,
        metadata_uri: str,
        paid_amount: int,
    ) -> int:
        """Mint a token for a new batch and return its id.

        The caller must be a registered supplier and ``paid_amount`` must be
        exactly the mint fee. The fee is credited to the administrator.
        """
        return self.mint(caller, name, origin, batch_number, quantity_kg, metadata_uri, paid_amount).id

    def mint(self, caller, name, origin, batch_number, quantity_kg, metadata_uri, paid_amount) -> schemas.ProductRecord:
        """Same as :meth:`mint_product` but returns the new record.

        ``quantity_kg`` outside ``0..MAX_INT`` is a programming error and
        raises ``ValueError``; the HTTP schema rejects such values first.
        """
        if not 0 <= quantity_kg <= MAX_INT:
            raise ValueError(f"quantity_kg must be between 0 and {MAX_INT}")
        with self._transaction("mint_product") as db:
            state = self._state(db)
            if not self._is_supplier(db, caller):
                raise Unauthorized(f"{caller} is not a verified supplier")
            fee = ensure_exact_fee(paid_amount, state.mint_fee)
            product = self._mint(db, state, caller, name, origin, batch_number, quantity_kg, metadata_uri)
            state.admin_balance += fee
            logger.info("token %d minted by %s (%s, batch %s)", product.id, caller, name, batch_number)
            return schemas.ProductRecord.model_validate(product)

    def _mint(self, db, state, caller, name, origin, batch_number, quantity_kg, metadata_uri) -> Product:
        # payment already settled by the caller of this method
        token_id = state.next_token_id
        state.next_token_id = token_id + 1
        product = Product(
            id=token_id,
            name=name,
            origin=origin,
            batch_number=batch_number,
            quantity_kg=quantity_kg,
            metadata_uri=metadata_uri,
            current_status=INITIAL_STATUS,
            supplier=caller,
            owner=caller,
            approved=None,
            created_at=utcnow_iso(),
        )
        db.add(product)
        db.flush()
        self._append_event(db, product, "minted", {
            "name": name,
            "origin": origin,
            "batch_number": batch_number,
            "quantity_kg": quantity_kg,
            "metadata_uri": metadata_uri,
            "supplier": caller,
            "status": INITIAL_STATUS,
        })
        return product

    def update_status(self, caller: str, token_id: int, new_status: str) -> schemas.ProductRecord:
        with self._transaction("update_status") as db:
            product = self._product(db, token_id)
            if caller != product.owner:
                raise Unauthorized(f"only the owner of token {token_id} can update its status")
            previous = product.current_status
            product.current_status = new_status
            self._append_event(db, product, "status_updated", {
                "status": new_status,
                "previous": previous,
                "by": caller,
            })
            logger.info("token %d status: %r", token_id, new_status)
            return schemas.ProductRecord.model_validate(product)

    def transfer(self, caller: str, token_id: int, from_identity: str, to_identity: str) -> schemas.ProductRecord:
        """Move a token from ``from_identity`` to ``to_identity``.

        The caller must be ``from_identity``, the token's approved delegate,
        or an operator approved by ``from_identity``; only then is
        ``from_identity`` compared with the owner. The token approval is
        cleared.
        """
        with self._transaction("transfer") as db:
            product = self._product(db, token_id)
            if not self._may_move(db, product, from_identity, caller):
                raise Unauthorized(f"{caller} may not transfer token {token_id}")
            if from_identity != product.owner:
                raise OwnerMismatch(f"{from_identity} does not own token {token_id}")
            product.owner = to_identity
            product.approved = None
            self._append_event(db, product, "transferred", {
                "from": from_identity,
                "to": to_identity,
                "by": caller,
            })
            logger.info("token %d transferred %s -> %s", token_id, from_identity, to_identity)
            return schemas.ProductRecord.model_validate(product)

    def approve(self, caller: str, token_id: int, delegate: Optional[str]) -> Optional[str]:
        """Set or clear the token's approved delegate and return it."""
        with self._transaction("approve") as db:
            product = self._product(db, token_id)
            if caller != product.owner and not self._is_operator(db, product.owner, caller):
                raise Unauthorized(f"{caller} may not approve delegates for token {token_id}")
            product.approved = delegate or None
            self._append_event(db, product, "approved", {"delegate": product.approved, "by": caller})
            return product.approved

    def set_operator(self, caller: str, operator: str, approved: bool) -> None:
        with self._transaction("set_operator") as db:
            row = db.scalar(
                select(OperatorApproval).where(
                    OperatorApproval.holder == caller,
                    OperatorApproval.operator == operator,
                )
            )
            if approved and row is None:
                db.add(OperatorApproval(holder=caller, operator=operator))
            elif not approved and row is not None:
                db.delete(row)
            logger.info("operator %s for %s: %s", operator, caller, approved)

    def is_operator(self, holder: str, operator: str) -> bool:
        with self._transaction("is_operator") as db:
            return self._is_operator(db, holder, operator)

    # ---------- Reads ----------
    def get_product(self, token_id: int) -> schemas.ProductRecord:
        with self._transaction("get_product") as db:
            return schemas.ProductRecord.model_validate(self._product(db, token_id))

    def owner_of(self, token_id: int) -> str:
        with self._transaction("owner_of") as db:
            return self._product(db, token_id).owner

    def approved_for(self, token_id: int) -> Optional[str]:
        with self._transaction("approved_for") as db:
            return self._product(db, token_id).approved

    def balance_of(self, identity: str) -> int:
        with self._transaction("balance_of") as db:
            return db.scalar(select(func.count()).select_from(Product).where(Product.owner == identity)) or 0

    def list_products(
        self,
        owner: Optional[str] = None,
        supplier: Optional[str] = None,
        q: Optional[str] = None,
        page: int = 1,
        page_size: int = 10,
    ) -> schemas.ProductList:
        with self._transaction("list_products") as db:
            base = select(Product)
            if owner:
                base = base.where(Product.owner == owner)
            if supplier:
                base = base.where(Product.supplier == supplier)
            if q:
                like = f"%{q}%"
                base = base.where(or_(
                    Product.name.ilike(like),
                    Product.origin.ilike(like),
                    Product.batch_number.ilike(like),
                ))

            total = db.scalar(select(func.count()).select_from(base.subquery()))
            rows = db.scalars(
                base.order_by(Product.id.desc())
                    .offset((page - 1) * page_size)
                    .limit(page_size)
            ).all()
            return schemas.ProductList(
                items=[schemas.ProductRecord.model_validate(p) for p in rows],
                total=total or 0,
                page=page,
                page_size=page_size,
            )

    def history(self, token_id: int) -> schemas.ProductHistory:
        with self._transaction("history") as db:
            product = self._product(db, token_id)
            chain = self._chain(product.events)
            return schemas.ProductHistory(
                token_id=token_id,
                verified=verify_chain([e.model_dump() for e in chain]),
                total_events=len(chain),
                chain=chain,
            )

    def verify(self, token_id: int) -> bool:
        return self.history(token_id).verified
