"""
Unit Tests - Synthetic Data Generation
"""
from collections import Counter

from txn_warehouse.data.generators import DEFAULT_DEFECT_RATES, HEADER, TransactionGenerator
from txn_warehouse.ingestion.batch_loader import BatchLoader, LoadStatus
from txn_warehouse.ingestion.parser import parse_records
from txn_warehouse.ingestion.pipeline import TransactionPipeline
from txn_warehouse.quality.validators import RecordValidator, validate_records

NO_DEFECTS = {name: 0.0 for name in DEFAULT_DEFECT_RATES}


class TestTransactionGenerator:
    """Tests for TransactionGenerator"""

    def test_shape(self):
        df = TransactionGenerator(seed=1).generate(50)

        assert df.columns == HEADER
        assert df.height == 50

    def test_reproducible(self):
        first = TransactionGenerator(seed=3).generate(20)
        second = TransactionGenerator(seed=3).generate(20)
        assert first.equals(second)

    def test_clean_file_validates(self, tmp_path):
        path = TransactionGenerator(seed=5, defect_rates=NO_DEFECTS).write_csv(tmp_path / "clean.csv", n=40)

        rejections = Counter()
        valid = list(validate_records(parse_records(path), RecordValidator(), rejections))

        assert len(valid) == 40
        assert not rejections

    def test_defects_are_rejected(self, tmp_path):
        rates = {**NO_DEFECTS, "negative_amount": 1.0}
        path = TransactionGenerator(seed=5, defect_rates=rates).write_csv(tmp_path / "bad.csv", n=10)

        rejections = Counter()
        valid = list(validate_records(parse_records(path), RecordValidator(), rejections))

        assert valid == []
        assert rejections == Counter({"missing_amount": 10})

    async def test_messy_file_loads(self, database, tmp_path):
        path = TransactionGenerator(seed=11).write_csv(tmp_path / "messy.csv", n=300)

        report = await TransactionPipeline(loader=BatchLoader(batch_size=50, max_workers=1)).run(path, refresh=True)

        assert report.status == LoadStatus.COMPLETED
        assert report.rows_read == 300
        assert report.rows_loaded > 0
        assert report.rows_read == report.rows_loaded + report.rows_rejected
        assert report.refresh is not None
