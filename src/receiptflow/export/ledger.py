"""Money Forward style 27-column journal export."""

from __future__ import annotations

import csv
import io
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable

from receiptflow.base.records import ReceiptFields

INVOICE_ID_PATTERN = re.compile(r"T[0-9]{13}")
SYSTEM_ACTOR = "System"
LEDGER_COLUMN_COUNT = 27


@dataclass(frozen=True)
class LedgerVocabulary:
    """Labels used to render ledger cells."""

    header: tuple[str, ...]
    taxable_10: str
    taxable_8: str
    out_of_scope: str
    eligible: str
    cash: str
    accrued_payable: str
    meeting_titles: frozenset[str]
    people_suffix: str
    reduced_rate_note: str
    miscellaneous_title: str
    unnamed_shop: str
    document_name: str

    def is_meeting(self, account_title: str | None) -> bool:
        return (account_title or "").strip().lower() in self.meeting_titles


ENGLISH = LedgerVocabulary(
    header=(
        "Transaction No",
        "Transaction date",
        "Debit account",
        "Debit sub-account",
        "Debit department",
        "Debit partner",
        "Debit tax category",
        "Debit invoice",
        "Debit amount",
        "Debit tax amount",
        "Credit account",
        "Credit sub-account",
        "Credit department",
        "Credit partner",
        "Credit tax category",
        "Credit invoice",
        "Credit amount",
        "Credit tax amount",
        "Description",
        "Journal memo",
        "Tag",
        "Journal type",
        "Closing entry",
        "Created at",
        "Created by",
        "Updated at",
        "Updated by",
    ),
    taxable_10="taxable purchase 10%",
    taxable_8="taxable purchase 8%",
    out_of_scope="out of scope",
    eligible="eligible",
    cash="cash",
    accrued_payable="accrued payable",
    meeting_titles=frozenset({"会議費", "meeting expense", "meeting expenses"}),
    people_suffix=" people",
    reduced_rate_note="（reduced rate note）",
    miscellaneous_title="miscellaneous expense",
    unnamed_shop="unnamed",
    document_name="ledger.csv",
)

MONEY_FORWARD_JA = LedgerVocabulary(
    header=(
        "取引No",
        "取引日",
        "借方勘定科目",
        "借方補助科目",
        "借方部門",
        "借方取引先",
        "借方税区分",
        "借方インボイス",
        "借方金額(円)",
        "借方税額",
        "貸方勘定科目",
        "貸方補助科目",
        "貸方部門",
        "貸方取引先",
        "貸方税区分",
        "貸方インボイス",
        "貸方金額(円)",
        "貸方税額",
        "摘要",
        "仕訳メモ",
        "タグ",
        "MF仕訳タイプ",
        "決算整理仕訳",
        "作成日時",
        "作成者",
        "最終更新日時",
        "最終更新者",
    ),
    taxable_10="課税仕入 10%",
    taxable_8="課税仕入 8%",
    out_of_scope="対象外",
    eligible="適格",
    cash="現金",
    accrued_payable="未払金",
    meeting_titles=frozenset({"会議費"}),
    people_suffix="名",
    reduced_rate_note="（軽減税率）",
    miscellaneous_title="雑費",
    unnamed_shop="名称未設定",
    document_name="MFクラウド仕訳.csv",
)

VOCABULARIES: dict[str, LedgerVocabulary] = {"en": ENGLISH, "ja": MONEY_FORWARD_JA}


def get_vocabulary(name: str) -> LedgerVocabulary:
    try:
        return VOCABULARIES[name]
    except KeyError:
        raise ValueError(f"Unknown ledger vocabulary '{name}'. Available: {', '.join(VOCABULARIES)}") from None


def format_timestamp(moment: datetime) -> str:
    """Render the generation timestamp as ``YYYY/M/D HH:MM:SS``."""
    return f"{moment.year}/{moment.month}/{moment.day} {moment:%H:%M:%S}"


def debit_tax_category(fields: ReceiptFields, vocabulary: LedgerVocabulary = ENGLISH) -> str:
    if fields.tax_rate_type == "10":
        return vocabulary.taxable_10
    elif fields.tax_rate_type == "8":
        return vocabulary.taxable_8
    return vocabulary.out_of_scope


def is_invoice_eligible(fields: ReceiptFields) -> bool:
    """A qualified invoice needs a T+13 digit registration number and a taxable rate."""
    return bool(fields.invoice_id and INVOICE_ID_PATTERN.fullmatch(fields.invoice_id)) and fields.tax_rate_type != "none"


def debit_invoice_status(fields: ReceiptFields, vocabulary: LedgerVocabulary = ENGLISH) -> str:
    return vocabulary.eligible if is_invoice_eligible(fields) else vocabulary.out_of_scope


def credit_account(fields: ReceiptFields, vocabulary: LedgerVocabulary = ENGLISH) -> str:
    return vocabulary.accrued_payable if fields.payment_method == "card" else vocabulary.cash


def describe(fields: ReceiptFields, vocabulary: LedgerVocabulary = ENGLISH) -> str:
    """Compose the description column.

    Meeting expenses list the head count and participants, everything else the remarks.
    Empty segments are left out entirely.
    """
    shop_name = fields.shop_name or vocabulary.unnamed_shop
    if vocabulary.is_meeting(fields.account_title):
        segments = [shop_name, f"{fields.people_count or 1}{vocabulary.people_suffix}", fields.participants]
    else:
        segments = [shop_name, fields.remarks]
    segments.append(fields.invoice_id)

    description = " / ".join(segment for segment in segments if segment)
    if fields.tax_rate_type == "8":
        description += vocabulary.reduced_rate_note
    return description


def build_ledger_row(
    sequence_number: int,
    fields: ReceiptFields,
    timestamp: str,
    vocabulary: LedgerVocabulary = ENGLISH,
) -> list[str]:
    """Derive the 27 ledger cells for one record."""
    shop_name = fields.shop_name or vocabulary.unnamed_shop
    amount = str(fields.amount or 0)
    return [
        str(sequence_number),
        (fields.transaction_date or "").replace("-", "/"),
        fields.account_title or vocabulary.miscellaneous_title,
        "",
        "",
        shop_name,
        debit_tax_category(fields, vocabulary),
        debit_invoice_status(fields, vocabulary),
        amount,
        "0",
        credit_account(fields, vocabulary),
        "",
        "",
        "",
        vocabulary.out_of_scope,
        vocabulary.out_of_scope,
        amount,
        "0",
        describe(fields, vocabulary),
        "",
        fields.tag or "",
        "",
        "",
        timestamp,
        SYSTEM_ACTOR,
        timestamp,
        SYSTEM_ACTOR,
    ]


def build_ledger_rows(
    fields_list: Iterable[ReceiptFields],
    generated_at: datetime | None = None,
    vocabulary: LedgerVocabulary = ENGLISH,
) -> list[list[str]]:
    timestamp = format_timestamp(generated_at or datetime.now())
    return [
        build_ledger_row(index, fields, timestamp, vocabulary) for index, fields in enumerate(fields_list, start=1)
    ]


def render_ledger(
    fields_list: Iterable[ReceiptFields],
    generated_at: datetime | None = None,
    vocabulary: LedgerVocabulary = ENGLISH,
) -> str:
    """Render the ledger document: a quoted header row followed by one quoted row per record.

    Identical input always yields identical output apart from the generation timestamp.
    """
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(vocabulary.header)
    writer.writerows(build_ledger_rows(fields_list, generated_at, vocabulary))
    return buffer.getvalue().rstrip("\n")
