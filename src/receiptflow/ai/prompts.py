"""Instructions and response schemas for the receipt analysis service."""

from __future__ import annotations

from typing import Any

MEETING_EXPENSE = "会議費"
ENTERTAINMENT_EXPENSE = "接待交際費"
SUPPLIES_EXPENSE = "備品・消耗品費"
TRAVEL_EXPENSE = "旅費交通費"

ACCOUNT_DETERMINATION_RULES = f"""
Determine the account title (accountTitle) strictly with these rules and return the title exactly as written:
1. Restaurants, izakaya, cafes and other dining:
   - "{MEETING_EXPENSE}" (meeting expense) when it was a business meeting
   - "{ENTERTAINMENT_EXPENSE}" (entertainment expense) when it was entertaining clients
   - Prefer "{ENTERTAINMENT_EXPENSE}" when unsure.
2. Gifts, flowers, golf courses, tickets and similar:
   - "{ENTERTAINMENT_EXPENSE}"
3. Stationery, equipment under 100,000 JPY, daily necessities:
   - "{SUPPLIES_EXPENSE}"
4. Trains, buses, taxis, lodging:
   - "{TRAVEL_EXPENSE}"
"""

IMAGE_INSTRUCTION = (
    "Analyze the receipt image and extract accurate accounting data. "
    "Reading the qualified invoice registration number (T followed by 13 digits) has the highest priority. "
    "Return transactionDate in YYYY-MM-DD format and amounts as plain numbers without separators."
    f"{ACCOUNT_DETERMINATION_RULES}"
)


def video_instruction(interval: float) -> str:
    """Instruction sent ahead of the timestamped frames of a sampling pass."""
    return (
        f"These images are frames sampled from a video every {interval:g} seconds. "
        'Each image is preceded by a marker "[Time: X.Xs]" with its timestamp.\n'
        "Use these markers strictly to determine the exact timestampSeconds at which each receipt is shown.\n"
        "Consistency between images and data has the highest priority; never attribute data to the wrong image.\n"
        "When the same receipt appears across several frames, merge the information from the clearest frame "
        "and report it once.\n"
        f"{ACCOUNT_DETERMINATION_RULES}"
    )


def time_marker(offset: float) -> str:
    return f"[Time: {offset:.1f}s]"


IMAGE_REQUIRED_FIELDS: list[str] = ["shopName", "transactionDate", "amount", "taxAmount", "currency", "accountTitle"]
VIDEO_REQUIRED_FIELDS: list[str] = ["shopName", "amount", "timestampSeconds", "accountTitle"]

RECEIPT_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "shopName": {"type": "string"},
        "transactionDate": {"type": "string", "description": "YYYY-MM-DD format"},
        "amount": {"type": "number"},
        "taxAmount": {"type": "number"},
        "currency": {"type": "string"},
        "invoiceId": {"type": "string", "description": "T+13 digits registration number if exists"},
        "peopleCount": {"type": "number"},
        "participants": {"type": "string"},
        "accountTitle": {"type": "string"},
        "paymentMethod": {"type": "string", "description": "cash or card"},
        "memo": {"type": "string"},
    },
    "required": IMAGE_REQUIRED_FIELDS,
}

VIDEO_RECEIPTS_SCHEMA: dict[str, Any] = {
    "type": "array",
    "items": {
        "type": "object",
        "properties": {
            "transactionDate": {"type": "string"},
            "shopName": {"type": "string"},
            "amount": {"type": "number"},
            "accountTitle": {"type": "string"},
            "timestampSeconds": {"type": "number"},
            "peopleCount": {"type": "number"},
            "participants": {"type": "string"},
            "paymentMethod": {"type": "string", "description": "cash or card"},
            "invoiceId": {"type": "string"},
            "remarks": {"type": "string"},
        },
        "required": VIDEO_REQUIRED_FIELDS,
    },
}


def json_shape_hint(schema: dict[str, Any]) -> str:
    """Plain-text description of a schema for backends without structured output."""
    if schema.get("type") == "array":
        item = schema["items"]
        return f'Return ONLY a JSON object of the form {{"receipts": [ ... ]}} where each element has: {_fields(item)}'
    return f"Return ONLY a JSON object with: {_fields(schema)}"


def _fields(schema: dict[str, Any]) -> str:
    required = set(schema.get("required", []))
    parts = [
        f"{name} ({spec['type']}{', required' if name in required else ''})"
        for name, spec in schema["properties"].items()
    ]
    return ", ".join(parts)


CONSULTATION_SYSTEM_PROMPT = (
    "You are a veteran accountant helping a small business owner book expenses in Money Forward Cloud Accounting.\n"
    "Answer questions about bookkeeping and account titles following these rules:\n"
    "1. State the conclusion first: the recommended account title.\n"
    "2. Explain the reason briefly and clearly.\n"
    "3. When the facts are not enough to decide, ask a clarifying question.\n"
    "4. Be polite but friendly.\n"
    "5. Use the account titles of Money Forward Cloud Accounting "
    f'(for example "{MEETING_EXPENSE}", "{ENTERTAINMENT_EXPENSE}", "{SUPPLIES_EXPENSE}", "{TRAVEL_EXPENSE}").'
)
CONSULTATION_ACKNOWLEDGEMENT = "Understood. I will answer your bookkeeping questions as your accountant."

CONSULTATION_EMPTY_REPLY = "Sorry, I could not come up with an answer. Could you ask again?"
CONSULTATION_ERROR_REPLY = "Something went wrong. Please try again in a little while."
