from __future__ import annotations

import json
from dataclasses import dataclass, field, replace
from datetime import datetime
from pathlib import Path
from typing import Literal, Mapping

from okupsell.store.types import Transaction

RecordState = Literal["purchased", "pending", "revoked"]
RECORD_STATES: tuple[RecordState, ...] = ("purchased", "pending", "revoked")


class LedgerError(RuntimeError):
    pass


def _parse_dt(raw: object, key: str) -> datetime | None:
    if raw is None:
        return None
    if not isinstance(raw, str):
        raise LedgerError(f"Expected ISO timestamp for {key}")
    try:
        return datetime.fromisoformat(raw)
    except ValueError as e:
        raise LedgerError(f"Invalid timestamp for {key}: {raw}") from e


@dataclass(frozen=True)
class LedgerRecord:
    transaction_id: str
    original_id: str
    product_id: str
    purchase_date: datetime
    state: RecordState = "purchased"
    revocation_date: datetime | None = None
    finished: bool = False
    signature: str = ""

    @staticmethod
    def from_dict(d: Mapping[str, object]) -> "LedgerRecord":
        tid = d.get("transaction_id")
        pid = d.get("product_id")
        if not isinstance(tid, str) or not isinstance(pid, str):
            raise LedgerError("Invalid ledger record")
        state = d.get("state", "purchased")
        if state not in RECORD_STATES:
            raise LedgerError(f"Unknown record state: {state}")
        purchase_date = _parse_dt(d.get("purchase_date"), "purchase_date")
        if purchase_date is None:
            raise LedgerError(f"Record {tid} has no purchase_date")
        original = d.get("original_id", tid)
        signature = d.get("signature", "")
        return LedgerRecord(
            transaction_id=tid,
            original_id=str(original),
            product_id=pid,
            purchase_date=purchase_date,
            state=state,  # type: ignore[arg-type]
            revocation_date=_parse_dt(d.get("revocation_date"), "revocation_date"),
            finished=bool(d.get("finished", False)),
            signature=str(signature) if signature is not None else "",
        )

    def to_dict(self) -> dict[str, object]:
        return {
            "transaction_id": self.transaction_id,
            "original_id": self.original_id,
            "product_id": self.product_id,
            "purchase_date": self.purchase_date.isoformat(),
            "state": self.state,
            "revocation_date": self.revocation_date.isoformat() if self.revocation_date else None,
            "finished": self.finished,
            "signature": self.signature,
        }

    def to_transaction(self) -> Transaction:
        return Transaction(
            id=self.transaction_id,
            original_id=self.original_id,
            product_id=self.product_id,
            purchase_date=self.purchase_date,
            revocation_date=self.revocation_date,
        )


@dataclass
class Ledger:
    version: int = 1
    next_seq: int = 1
    records: list[LedgerRecord] = field(default_factory=list)

    @staticmethod
    def from_dict(d: Mapping[str, object]) -> "Ledger":
        try:
            version = int(d.get("version", 1))  # type: ignore[arg-type]
        except (TypeError, ValueError):
            version = 1
        records_raw = d.get("records", [])
        if not isinstance(records_raw, list):
            raise LedgerError("ledger.records must be a list")
        records: list[LedgerRecord] = []
        for i, r in enumerate(records_raw):
            if not isinstance(r, dict):
                raise LedgerError(f"ledger.records[{i}] must be an object")
            records.append(LedgerRecord.from_dict(r))
        seq_raw = d.get("next_seq")
        next_seq = seq_raw if isinstance(seq_raw, int) and seq_raw > len(records) else len(records) + 1
        return Ledger(version=version, next_seq=next_seq, records=records)

    def to_dict(self) -> dict[str, object]:
        return {
            "version": self.version,
            "next_seq": self.next_seq,
            "records": [r.to_dict() for r in self.records],
        }


class LedgerService:
    """Transaction ledger of the local storefront.

    Persisted as JSON when a path is given, in memory otherwise.
    """

    def __init__(self, path: Path | None = None) -> None:
        self._path = path
        self.ledger = self._load_or_create()

    def _load_or_create(self) -> Ledger:
        if self._path is None:
            return Ledger()
        if not self._path.exists():
            ledger = Ledger()
            self._write(ledger)
            return ledger
        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise LedgerError(f"Invalid JSON in {self._path}: {e}") from e
        if not isinstance(raw, dict):
            raise LedgerError(f"{self._path} must contain an object")
        return Ledger.from_dict(raw)

    def _write(self, ledger: Ledger) -> None:
        if self._path is None:
            return
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(json.dumps(ledger.to_dict(), indent=2), encoding="utf-8")

    def save(self) -> None:
        self._write(self.ledger)

    def reload(self) -> None:
        # An in-memory ledger has no backing store to reread.
        if self._path is None:
            return
        self.ledger = self._load_or_create()

    # -------- Records --------
    def records(self) -> list[LedgerRecord]:
        return list(self.ledger.records)

    def get(self, transaction_id: str) -> LedgerRecord | None:
        for r in self.ledger.records:
            if r.transaction_id == transaction_id:
                return r
        return None

    def next_transaction_id(self) -> str:
        tid = f"txn_{self.ledger.next_seq:06d}"
        self.ledger.next_seq += 1
        return tid

    def append(self, record: LedgerRecord) -> None:
        if self.get(record.transaction_id) is not None:
            raise LedgerError(f"Duplicate transaction id {record.transaction_id}")
        self.ledger.records.append(record)
        try:
            self.save()
        except OSError:
            self.ledger.records.pop()
            raise

    def update(self, record: LedgerRecord) -> None:
        for i, r in enumerate(self.ledger.records):
            if r.transaction_id == record.transaction_id:
                self.ledger.records[i] = record
                try:
                    self.save()
                except OSError:
                    self.ledger.records[i] = r
                    raise
                return
        raise LedgerError(f"Transaction {record.transaction_id} not found.")

    def mark_finished(self, transaction_id: str) -> None:
        record = self.get(transaction_id)
        if record is None:
            raise LedgerError(f"Transaction {transaction_id} not found.")
        if not record.finished:
            self.update(replace(record, finished=True))

    def unfinished(self) -> list[LedgerRecord]:
        return [r for r in self.ledger.records if not r.finished and r.state != "pending"]

    def pending_for(self, product_id: str) -> LedgerRecord | None:
        for r in self.ledger.records:
            if r.product_id == product_id and r.state == "pending":
                return r
        return None
