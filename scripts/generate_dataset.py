"""
Raw Transaction Export Generator

Writes a messy CSV export for local loads and benchmarks.

Usage:
    python scripts/generate_dataset.py --rows 100000 --output data/raw/transactions.csv
"""

import argparse
from pathlib import Path

import polars as pl

from txn_warehouse.data.generators import TransactionGenerator

OUTPUT_PATH = Path(__file__).parent.parent / "data" / "raw" / "transactions.csv"


def main():
    parser = argparse.ArgumentParser(description="Generate a raw transaction export")
    parser.add_argument("--rows", type=int, default=100_000, help="Rows to generate")
    parser.add_argument("--seed", type=int, default=42, help="Random seed")
    parser.add_argument("--output", type=Path, default=OUTPUT_PATH, help="Output CSV path")
    args = parser.parse_args()

    print(f"Generating {args.rows:,} transactions...")
    path = TransactionGenerator(seed=args.seed).write_csv(args.output, n=args.rows)

    # Quick look at the label noise that made it into the file
    sample = pl.read_csv(path, infer_schema_length=0, truncate_ragged_lines=True)
    size_mb = path.stat().st_size / 1024 / 1024
    print(f"Wrote {path} ({size_mb:.2f} MB)")
    print(f"Distinct region spellings: {sample['Region'].n_unique()}")


if __name__ == "__main__":
    main()
