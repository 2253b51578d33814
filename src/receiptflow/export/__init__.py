from .bundle import archival_image_name, build_export_bundle, export_filename, sanitize_shop_name
from .ledger import (
    ENGLISH,
    MONEY_FORWARD_JA,
    LedgerVocabulary,
    build_ledger_row,
    build_ledger_rows,
    credit_account,
    debit_invoice_status,
    debit_tax_category,
    describe,
    get_vocabulary,
    render_ledger,
)

__all__ = [
    # Ledger
    "LedgerVocabulary",
    "ENGLISH",
    "MONEY_FORWARD_JA",
    "get_vocabulary",
    "build_ledger_row",
    "build_ledger_rows",
    "render_ledger",
    "debit_tax_category",
    "debit_invoice_status",
    "credit_account",
    "describe",
    # Bundle
    "build_export_bundle",
    "archival_image_name",
    "sanitize_shop_name",
    "export_filename",
]
