"""
Record Parser

Lazy, single-pass decoding of the raw delimited transaction export.
Physical lines are read in bounded chunks and split with polars string
expressions. Every line maps to exactly one RawRecord: a line with an
unbalanced quote or the wrong number of fields is yielded tagged
``malformed`` instead of raising, so one bad line never fails a run.
"""

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, Tuple, Union

import polars as pl
import structlog

logger = structlog.get_logger(__name__)

# Physical lines decoded per polars frame
CHUNK_SIZE = 10_000

QUOTE = '"'

# Canonical field order of the export
FIELDS: List[str] = [
    "transaction_id",
    "timestamp",
    "gender",
    "age",
    "marital_status",
    "region",
    "tier",
    "employment_status",
    "payment_method",
    "is_referral",
    "amount",
]

# Normalized header spelling -> canonical field
HEADER_ALIASES: Dict[str, str] = {
    "transactionid": "transaction_id",
    "transaction": "transaction_id",
    "id": "transaction_id",
    "txnid": "transaction_id",
    "timestamp": "timestamp",
    "date": "timestamp",
    "datetime": "timestamp",
    "transactiondate": "timestamp",
    "gender": "gender",
    "sex": "gender",
    "age": "age",
    "maritalstatus": "marital_status",
    "marital": "marital_status",
    "region": "region",
    "location": "region",
    "tier": "tier",
    "customertier": "tier",
    "employmentstatus": "employment_status",
    "employment": "employment_status",
    "employmentlabel": "employment_status",
    "occupation": "employment_status",
    "paymentmethod": "payment_method",
    "payment": "payment_method",
    "paymentchannel": "payment_method",
    "referral": "is_referral",
    "isreferral": "is_referral",
    "referralflag": "is_referral",
    "referred": "is_referral",
    "amount": "amount",
    "purchaseamount": "amount",
    "transactionamount": "amount",
    "total": "amount",
}

_HEADER_NOISE = re.compile(r"[\s_\-\.()]+")


@dataclass
class RawRecord:
    """One input row as untyped fields"""
    line_number: int
    fields: Dict[str, str] = field(default_factory=dict)
    raw: str = ""
    malformed: bool = False
    error: Optional[str] = None


def resolve_header(header: List[str]) -> List[str]:
    """
    Map a header row onto the canonical field order.

    Returns the canonical name for each column position. When the header
    does not name every expected field, the positional order is assumed.
    """
    mapped = [HEADER_ALIASES.get(_HEADER_NOISE.sub("", name).casefold()) for name in header]
    if len(mapped) == len(FIELDS) and set(mapped) == set(FIELDS):
        return mapped

    logger.warning(
        "Header not recognized, assuming positional columns",
        header=header,
        expected=FIELDS,
    )
    return list(FIELDS)


def _row_pattern(delimiter: str) -> str:
    """Whole-line regex of a well-formed row: plain or fully quoted fields"""
    sep = f"\\x{{{ord(delimiter):x}}}"
    cell = f'(?:"(?:[^"]|"")*"|[^{sep}"]*)'
    return f"^(?:{cell}{sep})*{cell}$"


def _split_header(text: str, delimiter: str) -> List[str]:
    return [name.strip().strip(QUOTE) for name in text.split(delimiter)]


def _decode_quoted(lines: List[str], delimiter: str) -> List[Tuple[str, ...]]:
    """Unquote well-formed lines with the polars CSV reader"""
    frame = pl.read_csv(
        "\n".join(lines).encode("utf-8"),
        has_header=False,
        separator=delimiter,
        quote_char=QUOTE,
        infer_schema_length=0,
    )
    return frame.select(pl.all().fill_null("")).rows()


def _decode_chunk(
    chunk: List[Tuple[int, str]],
    columns: List[str],
    delimiter: str,
) -> Iterator[RawRecord]:
    expected = len(columns)
    frame = pl.DataFrame(
        {
            "line_number": [number for number, _ in chunk],
            "raw": [text for _, text in chunk],
        },
        schema={"line_number": pl.Int64, "raw": pl.Utf8},
    ).with_columns(
        pl.col("raw").str.contains(QUOTE, literal=True).alias("quoted"),
        pl.col("raw").str.contains(_row_pattern(delimiter)).alias("well_formed"),
        (
            pl.col("raw")
            .str.replace_all(r'"(?:[^"]|"")*"', "")
            .str.count_matches(delimiter, literal=True)
            + 1
        ).alias("width"),
        pl.col("raw").str.split(delimiter).alias("cells"),
    )

    quoted = frame.filter(
        pl.col("quoted") & pl.col("well_formed") & (pl.col("width") == expected)
    )
    unquoted: Dict[int, Tuple[str, ...]] = {}
    if quoted.height:
        unquoted = dict(zip(
            quoted["line_number"].to_list(),
            _decode_quoted(quoted["raw"].to_list(), delimiter),
        ))

    for row in frame.iter_rows(named=True):
        line_number, raw = row["line_number"], row["raw"]
        if not row["well_formed"]:
            yield RawRecord(
                line_number=line_number,
                raw=raw,
                malformed=True,
                error="unbalanced or misplaced quote",
            )
            continue

        cells = unquoted.get(line_number) if row["quoted"] else row["cells"]
        if cells is None or len(cells) != expected:
            found = row["width"] if cells is None else len(cells)
            yield RawRecord(
                line_number=line_number,
                raw=raw,
                malformed=True,
                error=f"expected {expected} fields, found {found}",
            )
            continue

        yield RawRecord(line_number=line_number, fields=dict(zip(columns, cells)), raw=raw)


def iter_records(
    lines: Iterable[str],
    delimiter: str = ",",
    start_line: int = 1,
    chunk_size: int = CHUNK_SIZE,
) -> Iterator[RawRecord]:
    """
    Decode an iterable of text lines (header first) into RawRecords.

    Args:
        lines: Source lines, e.g. an open file
        delimiter: Single-character field delimiter
        start_line: Skip data rows whose physical line number is below this
        chunk_size: Lines held in memory per decoded frame

    Yields:
        RawRecord for every non-blank data line, in file order
    """
    columns: Optional[List[str]] = None
    chunk: List[Tuple[int, str]] = []

    for line_number, line in enumerate(lines, start=1):
        text = line.rstrip("\r\n")
        if not text.strip():
            continue

        if columns is None:
            columns = resolve_header(_split_header(text, delimiter))
            continue
        if line_number < start_line:
            continue

        chunk.append((line_number, text))
        if len(chunk) >= chunk_size:
            yield from _decode_chunk(chunk, columns, delimiter)
            chunk = []

    if chunk:
        yield from _decode_chunk(chunk, columns, delimiter)


def parse_records(
    source: Union[str, Path],
    delimiter: str = ",",
    encoding: str = "utf-8",
    start_line: int = 1,
    chunk_size: int = CHUNK_SIZE,
) -> Iterator[RawRecord]:
    """
    Lazily read a delimited file into RawRecords.

    The sequence is finite and single-pass; iterate again by calling this
    function again. Undecodable bytes are replaced rather than raised.

    Example:
        for record in parse_records("data/raw/transactions.csv"):
            ...
    """
    path = Path(source)
    logger.info("Parsing source file", file=str(path), start_line=start_line)

    with open(path, "r", encoding=encoding, errors="replace") as handle:
        yield from iter_records(handle, delimiter=delimiter, start_line=start_line, chunk_size=chunk_size)
