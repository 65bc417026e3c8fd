"""
Test Suite Configuration
"""
from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import Callable, List

import pytest

from txn_warehouse.config import Settings
from txn_warehouse.database import close_database, create_schema, init_database
from txn_warehouse.database.models import Gender, MaritalStatus
from txn_warehouse.quality.validators import TransactionRecord

HEADER = (
    "transaction_id,timestamp,gender,age,marital_status,region,tier,"
    "employment_status,payment_method,is_referral,amount"
)

# Physical lines 2-6; row 3 has a negative amount, row 4 is 150 years old
SAMPLE_ROWS = [
    "1,2024-03-01 10:15:00,Female,34,Single,North,Gold,Employed,Credit Card,0,120.50",
    "2,2024-03-01 11:00:00,Male,45,Married, north ,gold,Self-Employed,Cash,1,80.00",
    "3,2024-03-02 09:30:00,Female,29,Single,South,Silver,Student,PayPal,0,-15.00",
    "4,2024-03-02 14:45:00,Male,150,Married,East,Bronze,Retired,Cash,0,42.10",
    "5,2024-03-03 18:05:00,Female,34,Single,NORTH,Gold,Employed,Debit Card,1,19.99",
]


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    """Create test settings"""
    return Settings(
        app_env="testing",
        debug=True,
    )


@pytest.fixture
def database_url(tmp_path: Path) -> str:
    """File-backed SQLite so every worker session sees the same data"""
    return f"sqlite+aiosqlite:///{tmp_path / 'warehouse.db'}"


@pytest.fixture
async def database(database_url: str):
    """Initialized engine with the full schema, torn down after the test"""
    await init_database(database_url)
    await create_schema()
    yield database_url
    await close_database()


@pytest.fixture
def write_csv(tmp_path: Path) -> Callable[..., Path]:
    """Write a raw export with the standard header"""

    def _write(rows: List[str], name: str = "transactions.csv", header: str = HEADER) -> Path:
        path = tmp_path / name
        path.write_text("\n".join([header, *rows]) + "\n", encoding="utf-8")
        return path

    return _write


@pytest.fixture
def sample_csv(write_csv) -> Path:
    """The five-row export from SAMPLE_ROWS"""
    return write_csv(SAMPLE_ROWS)


@pytest.fixture
def make_record() -> Callable[..., TransactionRecord]:
    """Build a valid TransactionRecord, overriding any field"""

    def _make(transaction_id: int, **overrides) -> TransactionRecord:
        values = dict(
            transaction_id=transaction_id,
            occurred_at=datetime(2024, 3, 1, 10, 0, 0),
            gender=Gender.FEMALE,
            age=34,
            marital_status=MaritalStatus.SINGLE,
            region="north",
            tier="gold",
            employment_status="employed",
            payment_method="credit card",
            is_referral=False,
            amount=Decimal("10.00"),
            line_number=transaction_id + 1,
        )
        values.update(overrides)
        return TransactionRecord(**values)

    return _make
