"""
Unit Tests - Record Parser
"""
import pytest

from txn_warehouse.ingestion.parser import FIELDS, iter_records, parse_records, resolve_header


class TestResolveHeader:
    """Tests for header mapping"""

    def test_canonical_header(self):
        assert resolve_header(list(FIELDS)) == FIELDS

    def test_human_header_in_other_order(self):
        header = [
            "Amount", "Transaction ID", "Date", "Gender", "Age", "Marital Status",
            "Region", "Tier", "Employment", "Payment Method", "Referral",
        ]
        mapped = resolve_header(header)

        assert mapped[0] == "amount"
        assert mapped[1] == "transaction_id"
        assert mapped[2] == "timestamp"
        assert set(mapped) == set(FIELDS)

    def test_unrecognized_header_falls_back_to_positions(self):
        header = [f"col{i}" for i in range(len(FIELDS))]
        assert resolve_header(header) == FIELDS


class TestIterRecords:
    """Tests for line decoding"""

    def test_fields_and_line_numbers(self, sample_csv):
        records = list(parse_records(sample_csv))

        assert [r.line_number for r in records] == [2, 3, 4, 5, 6]
        assert records[0].fields["region"] == "North"
        assert records[1].fields["region"] == " north "
        assert not any(r.malformed for r in records)

    def test_short_line_is_malformed_not_raised(self):
        lines = [",".join(FIELDS), "1,2024-01-01,Male,30", "2,2024-01-01,Male,30,Single,a,b,c,d,0,1.00"]
        records = list(iter_records(lines))

        assert records[0].malformed
        assert "expected 11 fields" in records[0].error
        assert not records[1].malformed

    def test_blank_lines_are_skipped(self):
        lines = [",".join(FIELDS), "", "   ", "2,2024-01-01,Male,30,Single,a,b,c,d,0,1.00"]
        records = list(iter_records(lines))

        assert len(records) == 1
        assert records[0].line_number == 4

    def test_quoted_delimiter(self):
        lines = [",".join(FIELDS), '7,2024-01-01,Male,30,Single,"North, Upper",b,c,d,0,"1,250.00"']
        record = next(iter_records(lines))

        assert record.fields["region"] == "North, Upper"
        assert record.fields["amount"] == "1,250.00"

    def test_start_line_skips_earlier_rows(self, sample_csv):
        records = list(parse_records(sample_csv, start_line=5))
        assert [r.line_number for r in records] == [5, 6]

    def test_alternate_delimiter(self):
        lines = [";".join(FIELDS), "1;2024-01-01;Male;30;Single;a;b;c;d;0;1.00"]
        record = next(iter_records(lines, delimiter=";"))
        assert record.fields["amount"] == "1.00"

    def test_single_pass(self, sample_csv):
        records = parse_records(sample_csv)
        assert len(list(records)) == 5
        assert list(records) == []

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            list(parse_records(tmp_path / "absent.csv"))

    def test_unterminated_quote_spoils_only_its_line(self):
        lines = [
            ",".join(FIELDS),
            "1,2024-01-01,Male,30,Single,north,b,c,d,0,1.00",
            '2,2024-01-01,Male,30,Single,"North,b,c,d,0,1.00',
            "3,2024-01-01,Male,30,Single,south,b,c,d,0,1.00",
            "4,2024-01-01,Male,30,Single,east,b,c,d,0,1.00",
        ]
        records = list(iter_records(lines))

        assert [r.line_number for r in records] == [2, 3, 4, 5]
        assert [r.malformed for r in records] == [False, True, False, False]
        assert "quote" in records[1].error
        assert records[3].fields["region"] == "east"

    def test_escaped_quotes(self):
        lines = [",".join(FIELDS), '7,2024-01-01,Male,30,Single,"The ""Big"" North",b,c,d,0,1.00']
        record = next(iter_records(lines))

        assert not record.malformed
        assert record.fields["region"] == 'The "Big" North'

    def test_oversized_field_is_decoded(self):
        region = "x" * 200_000
        lines = [",".join(FIELDS), f"1,2024-01-01,Male,30,Single,{region},b,c,d,0,1.00"]
        record = next(iter_records(lines))

        assert not record.malformed
        assert len(record.fields["region"]) == 200_000

    def test_line_numbers_across_chunks(self):
        lines = [",".join(FIELDS)] + [f"{i},2024-01-01,Male,30,Single,a,b,c,d,0,1.00" for i in range(1, 8)]
        lines.insert(4, "1,2")
        records = list(iter_records(lines, chunk_size=3))

        assert [r.line_number for r in records] == list(range(2, 10))
        assert [r.line_number for r in records if r.malformed] == [5]
