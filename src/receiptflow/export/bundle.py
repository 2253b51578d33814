from __future__ import annotations

import io
import logging
import re
import zipfile
from datetime import date, datetime
from typing import Iterable

from receiptflow.base.records import ReceiptRecord, RecordStatus
from receiptflow.export.ledger import ENGLISH, LedgerVocabulary, render_ledger

logger = logging.getLogger(__name__)

IMAGES_FOLDER = "images"
_ILLEGAL_FILENAME_CHARS = re.compile(r'[\\/:*?"<>|]')
SHOP_NAME_MAX_CHARS = 20


def sanitize_shop_name(shop_name: str | None) -> str:
    """Strip characters that are illegal in file names and cut to 20 characters."""
    return _ILLEGAL_FILENAME_CHARS.sub("", shop_name or "unknown")[:SHOP_NAME_MAX_CHARS]


def archival_image_name(sequence_number: int, record: ReceiptRecord) -> str:
    """Name such as ``001_20260125_Cafe X.jpg`` for the record at the given position."""
    fields = record.fields
    date_digits = re.sub(r"\D", "", fields.transaction_date if fields else "") or "00000000"
    shop = sanitize_shop_name(fields.shop_name if fields else None)
    return f"{sequence_number:03d}_{date_digits}_{shop}.jpg"


def export_filename(day: date | None = None) -> str:
    return f"receipt_export_{(day or date.today()).isoformat()}.zip"


def build_export_bundle(
    records: Iterable[ReceiptRecord],
    vocabulary: LedgerVocabulary = ENGLISH,
    generated_at: datetime | None = None,
) -> bytes:
    """Pack the ledger document and the archival images of successful records into a ZIP archive.

    Args:
        records: Records in export order; non-successful records are skipped
        vocabulary: Labels used for the ledger document
        generated_at: Timestamp written to the audit columns

    Returns:
        ZIP archive bytes

    Raises:
        ValueError: If there is no successfully analyzed record.
    """
    exported = [r for r in records if r.status is RecordStatus.SUCCESS and r.fields is not None]
    if not exported:
        raise ValueError("There are no successfully analyzed receipts to export")

    document = render_ledger([r.fields for r in exported if r.fields], generated_at, vocabulary)

    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        archive.writestr(vocabulary.document_name, document.encode("utf-8"))
        for sequence_number, record in enumerate(exported, start=1):
            if record.archival_frame:
                name = f"{IMAGES_FOLDER}/{archival_image_name(sequence_number, record)}"
                archive.writestr(name, record.archival_frame)

    logger.info("Exported %d record(s) into bundle", len(exported))
    return buffer.getvalue()
