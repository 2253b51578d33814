import pytest

from receiptflow.ai.config import clear_config_cache
from receiptflow.base.records import ReceiptFields

from tests.helpers import FakeVideoDecoder, make_image_bytes


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Run every test away from any receiptflow.toml or pyproject.toml."""
    monkeypatch.chdir(tmp_path)
    clear_config_cache()
    yield
    clear_config_cache()


@pytest.fixture
def receipt_jpeg():
    return make_image_bytes(2048, 1536)


@pytest.fixture
def fake_decoder():
    return FakeVideoDecoder()


@pytest.fixture
def meeting_fields():
    return ReceiptFields(
        shop_name="Cafe X",
        transaction_date="2026-01-25",
        amount=3300,
        tax_rate_type="8",
        account_title="会議費",
        people_count=3,
        participants="Ann, Bob, Cy",
    )
