from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Iterator, Literal

from receiptflow.base.exceptions import InvalidTransitionError

TaxRateType = Literal["10", "8", "none"]
PaymentMethod = Literal["cash", "card"]

TAX_RATE_TYPES: tuple[str, ...] = ("10", "8", "none")
PAYMENT_METHODS: tuple[str, ...] = ("cash", "card")

DEFAULT_TAX_RATE_TYPE: TaxRateType = "10"
DEFAULT_PAYMENT_METHOD: PaymentMethod = "cash"
DEFAULT_CURRENCY = "JPY"


class RecordStatus(str, Enum):
    """Lifecycle state of a receipt record."""

    PROCESSING = "processing"
    SUCCESS = "success"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self is not RecordStatus.PROCESSING


@dataclass
class LineItem:
    """A single purchased item printed on a receipt."""

    name: str
    price: int = 0
    quantity: int = 1

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "price": self.price, "quantity": self.quantity}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> LineItem:
        return cls(
            name=str(data.get("name", "")),
            price=_to_int(data.get("price")),
            quantity=_to_int(data.get("quantity"), default=1),
        )


@dataclass
class ReceiptFields:
    """Structured receipt data produced by analysis and edited during review.

    Attributes:
        shop_name: Name of the issuing shop
        transaction_date: ISO calendar date (YYYY-MM-DD), empty when unknown
        amount: Gross amount in whole currency units
        tax_amount: Tax amount in whole currency units
        tax_rate_type: Tax-rate category, one of "10", "8" or "none"
        currency: ISO currency code
        items: Free-form line items
        account_title: Recommended account category
        payment_method: "cash" or "card"
        invoice_id: Qualified invoice registration number (T + 13 digits)
        people_count: Number of participants, at least 1
        participants: Comma separated participant names
        remarks: Free-form remarks used in the ledger description
        tag: Ledger tag column
        memo: Free-form memo returned by the analysis service
    """

    shop_name: str
    transaction_date: str = ""
    amount: int = 0
    tax_amount: int = 0
    tax_rate_type: TaxRateType = DEFAULT_TAX_RATE_TYPE
    currency: str = DEFAULT_CURRENCY
    items: list[LineItem] = field(default_factory=list)
    account_title: str = ""
    payment_method: PaymentMethod = DEFAULT_PAYMENT_METHOD
    invoice_id: str | None = None
    people_count: int = 1
    participants: str | None = None
    remarks: str | None = None
    tag: str | None = None
    memo: str | None = None

    def __post_init__(self) -> None:
        if self.tax_rate_type not in TAX_RATE_TYPES:
            raise ValueError(f"tax_rate_type must be one of {TAX_RATE_TYPES}, got {self.tax_rate_type!r}")
        if self.payment_method not in PAYMENT_METHODS:
            raise ValueError(f"payment_method must be one of {PAYMENT_METHODS}, got {self.payment_method!r}")

    def updated(self, **changes: Any) -> ReceiptFields:
        """Return a copy with the given fields replaced."""
        return replace(self, **changes)

    def to_dict(self) -> dict[str, Any]:
        return {
            "shopName": self.shop_name,
            "transactionDate": self.transaction_date,
            "amount": self.amount,
            "taxAmount": self.tax_amount,
            "taxRateType": self.tax_rate_type,
            "currency": self.currency,
            "items": [item.to_dict() for item in self.items],
            "accountTitle": self.account_title,
            "paymentMethod": self.payment_method,
            "invoiceId": self.invoice_id,
            "peopleCount": self.people_count,
            "participants": self.participants,
            "remarks": self.remarks,
            "tag": self.tag,
            "memo": self.memo,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ReceiptFields:
        """Build fields from the camelCase mapping used by the analysis service.

        Unknown tax-rate and payment values fall back to the defaults instead of failing,
        since they come from free-form model output.
        """
        tax_rate_type = str(data.get("taxRateType") or DEFAULT_TAX_RATE_TYPE)
        if tax_rate_type not in TAX_RATE_TYPES:
            tax_rate_type = DEFAULT_TAX_RATE_TYPE
        payment_method = str(data.get("paymentMethod") or DEFAULT_PAYMENT_METHOD).lower()
        if payment_method not in PAYMENT_METHODS:
            payment_method = DEFAULT_PAYMENT_METHOD

        return cls(
            shop_name=str(data.get("shopName") or ""),
            transaction_date=str(data.get("transactionDate") or ""),
            amount=_to_int(data.get("amount")),
            tax_amount=_to_int(data.get("taxAmount")),
            tax_rate_type=tax_rate_type,  # type: ignore[arg-type]
            currency=str(data.get("currency") or DEFAULT_CURRENCY),
            items=[LineItem.from_dict(item) for item in data.get("items") or []],
            account_title=str(data.get("accountTitle") or ""),
            payment_method=payment_method,  # type: ignore[arg-type]
            invoice_id=_optional_str(data.get("invoiceId")),
            people_count=max(1, _to_int(data.get("peopleCount"), default=1)),
            participants=_optional_str(data.get("participants")),
            remarks=_optional_str(data.get("remarks")),
            tag=_optional_str(data.get("tag")),
            memo=_optional_str(data.get("memo")),
        )


@dataclass
class ReceiptRecord:
    """One tracked receipt item.

    Records start in ``processing`` and move exactly once to ``success`` (with fields)
    or ``error`` (with a message). Only the orchestrator creates records.
    """

    source_name: str
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    status: RecordStatus = RecordStatus.PROCESSING
    fields: ReceiptFields | None = None
    error_message: str | None = None
    source_timestamp_seconds: float | None = None
    archival_frame: bytes | None = field(default=None, repr=False)

    @classmethod
    def from_video_candidate(
        cls, source_name: str, fields: ReceiptFields, timestamp: float, frame: bytes
    ) -> ReceiptRecord:
        """Create an already successful record for a receipt found in a video."""
        return cls(
            source_name=f"{source_name} ({timestamp:.1f}s)",
            status=RecordStatus.SUCCESS,
            fields=fields,
            source_timestamp_seconds=timestamp,
            archival_frame=frame,
        )

    @property
    def is_video_derived(self) -> bool:
        return self.source_timestamp_seconds is not None

    def succeed(self, fields: ReceiptFields, archival_frame: bytes) -> None:
        self._ensure_processing()
        self.status = RecordStatus.SUCCESS
        self.fields = fields
        self.archival_frame = archival_frame

    def fail(self, message: str) -> None:
        self._ensure_processing()
        self.status = RecordStatus.ERROR
        self.error_message = message or "Unknown error"

    def _ensure_processing(self) -> None:
        if self.status.is_terminal:
            raise InvalidTransitionError(f"Record {self.id} is already in terminal state '{self.status.value}'")


class RecordCollection:
    """Newest-first collection of receipt records shared by the pipeline and the review surface."""

    def __init__(self, records: list[ReceiptRecord] | None = None):
        self._records: list[ReceiptRecord] = []
        for record in records or []:
            self.append(record)

    def __iter__(self) -> Iterator[ReceiptRecord]:
        return iter(list(self._records))

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, record_id: object) -> bool:
        return any(record.id == record_id for record in self._records)

    def add_front(self, record: ReceiptRecord) -> None:
        self._check_unique(record)
        self._records.insert(0, record)

    def append(self, record: ReceiptRecord) -> None:
        self._check_unique(record)
        self._records.append(record)

    def get(self, record_id: str) -> ReceiptRecord:
        for record in self._records:
            if record.id == record_id:
                return record
        raise KeyError(record_id)

    def index_of(self, record_id: str) -> int:
        for index, record in enumerate(self._records):
            if record.id == record_id:
                return index
        raise KeyError(record_id)

    def replace(self, record_id: str, new_records: list[ReceiptRecord]) -> None:
        """Remove a record and put the replacement records at the front."""
        self.remove(record_id)
        for record in reversed(new_records):
            self.add_front(record)

    def update_fields(self, record_id: str, fields: ReceiptFields) -> ReceiptRecord:
        """Apply a review edit. Only successful records carry editable fields."""
        record = self.get(record_id)
        if record.status is not RecordStatus.SUCCESS:
            raise InvalidTransitionError(f"Record {record_id} has no fields to edit (status '{record.status.value}')")
        record.fields = fields
        return record

    def remove(self, record_id: str) -> ReceiptRecord:
        record = self.get(record_id)
        self._records.remove(record)
        return record

    def clear(self) -> None:
        self._records.clear()

    def successful(self) -> list[ReceiptRecord]:
        return [r for r in self._records if r.status is RecordStatus.SUCCESS and r.fields is not None]

    def _check_unique(self, record: ReceiptRecord) -> None:
        if record.id in self:
            raise ValueError(f"Duplicate record id: {record.id}")


def _to_int(value: Any, default: int = 0) -> int:
    if value is None or value == "":
        return default
    try:
        return int(round(float(str(value).replace(",", ""))))
    except (TypeError, ValueError):
        return default


def _optional_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None
