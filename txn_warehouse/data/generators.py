"""
Synthetic Transaction Export Generator

Generates raw retail transaction exports shaped like the real feed,
including its defects, for development and load testing:
- Case and whitespace variants of categorical labels
- Missing-value tokens ("", "NaN", "Missing")
- Negative or blank amounts, out-of-range ages, unparsable dates
- Short lines and repeated transaction ids
"""

from datetime import datetime, timedelta
from pathlib import Path
from typing import Dict, List, Optional, Union

import numpy as np
import polars as pl
from faker import Faker

# =============================================================================
# CONFIGURATION
# =============================================================================

HEADER = [
    "Transaction ID",
    "Timestamp",
    "Gender",
    "Age",
    "Marital Status",
    "Region",
    "Tier",
    "Employment Status",
    "Payment Method",
    "Referral",
    "Amount",
]

REGIONS = ["North", "South", "East", "West", "Central"]
TIERS = ["Bronze", "Silver", "Gold", "Platinum"]
EMPLOYMENT = ["Employed", "Self-Employed", "Student", "Retired", "Unemployed"]
PAYMENT_METHODS = ["Credit Card", "Debit Card", "Cash", "PayPal", "Bank Transfer"]
MISSING_VARIANTS = ["", "NaN", "Missing", "null"]
TIMESTAMP_FORMATS = ["%Y-%m-%d %H:%M:%S", "%m/%d/%Y %H:%M", "%Y-%m-%dT%H:%M:%S"]
BAD_DATES = ["2023-13-45", "yesterday", "31/31/2020", "1850-01-01 00:00:00"]
BAD_AGES = ["0", "150", "-4", "abc", "NaN"]

# Per-row defect probabilities
DEFAULT_DEFECT_RATES: Dict[str, float] = {
    "label_noise": 0.30,
    "missing_label": 0.03,
    "missing_amount": 0.02,
    "negative_amount": 0.01,
    "bad_age": 0.01,
    "bad_date": 0.01,
    "short_line": 0.005,
    "duplicate_id": 0.005,
}


# =============================================================================
# GENERATOR
# =============================================================================

class TransactionGenerator:
    """
    Generate raw transaction rows with realistic distributions and defects.

    Example:
        generator = TransactionGenerator(seed=7)
        path = generator.write_csv("data/raw/transactions.csv", n=100_000)
    """

    def __init__(
        self,
        seed: int = 42,
        defect_rates: Optional[Dict[str, float]] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ):
        self.rng = np.random.default_rng(seed)
        self.fake = Faker()
        self.fake.seed_instance(seed)
        self.defect_rates = {**DEFAULT_DEFECT_RATES, **(defect_rates or {})}
        self.end_date = end_date or datetime(2024, 12, 31)
        self.start_date = start_date or self.end_date - timedelta(days=365)

    def _hit(self, defect: str) -> bool:
        return bool(self.rng.random() < self.defect_rates[defect])

    def _label(self, choices: List[str]) -> str:
        if self._hit("missing_label"):
            return str(self.rng.choice(MISSING_VARIANTS))
        value = str(self.rng.choice(choices))
        if self._hit("label_noise"):
            variant = self.rng.integers(0, 4)
            if variant == 0:
                value = value.upper()
            elif variant == 1:
                value = value.lower()
            elif variant == 2:
                value = f"  {value} "
            else:
                value = value.replace(" ", "  ")
        return value

    def _timestamp(self) -> str:
        if self._hit("bad_date"):
            return str(self.rng.choice(BAD_DATES))
        moment = self.fake.date_time_between(start_date=self.start_date, end_date=self.end_date)
        return moment.strftime(str(self.rng.choice(TIMESTAMP_FORMATS)))

    def _age(self) -> str:
        if self._hit("bad_age"):
            return str(self.rng.choice(BAD_AGES))
        return str(int(np.clip(self.rng.normal(40, 13), 18, 90)))

    def _amount(self) -> str:
        if self._hit("missing_amount"):
            return str(self.rng.choice(MISSING_VARIANTS))
        amount = round(float(self.rng.lognormal(mean=4.0, sigma=0.8)), 2)
        if self._hit("negative_amount"):
            amount = -amount
        return f"{amount:.2f}"

    def generate(self, n: int = 1000) -> pl.DataFrame:
        """Generate ``n`` well-formed rows (as strings) with field-level defects"""
        rows = []
        last_id = 0
        for i in range(n):
            if last_id and self._hit("duplicate_id"):
                transaction_id = last_id
            else:
                transaction_id = 100_000 + i
            last_id = transaction_id

            rows.append({
                "Transaction ID": str(transaction_id),
                "Timestamp": self._timestamp(),
                "Gender": str(self.rng.choice(["Male", "Female", "M", "F", "female", ""], p=[0.4, 0.4, 0.05, 0.05, 0.05, 0.05])),
                "Age": self._age(),
                "Marital Status": str(self.rng.choice(["Single", "Married", "0", "1"], p=[0.45, 0.45, 0.05, 0.05])),
                "Region": self._label(REGIONS),
                "Tier": self._label(TIERS),
                "Employment Status": self._label(EMPLOYMENT),
                "Payment Method": self._label(PAYMENT_METHODS),
                "Referral": str(self.rng.choice(["0", "1"], p=[0.7, 0.3])),
                "Amount": self._amount(),
            })

        return pl.DataFrame(rows, schema={column: pl.Utf8 for column in HEADER})

    def write_csv(self, path: Union[str, Path], n: int = 1000) -> Path:
        """
        Write a raw export of ``n`` rows, some of them truncated mid-line.

        Returns:
            Path of the written file
        """
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        df = self.generate(n)

        lines = []
        for row in df.iter_rows():
            if self._hit("short_line"):
                row = row[:int(self.rng.integers(1, len(row) - 1))]
            lines.append(",".join(row))

        # One pre-joined column so short lines survive; generated values never need quoting
        pl.DataFrame({",".join(HEADER): lines}).write_csv(path, quote_style="never")

        return path
