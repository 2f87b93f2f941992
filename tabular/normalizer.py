"""
Tabular - Sentiment Row Normalizer.

============================================================
PURPOSE
============================================================
Converts one raw sheet row into a typed sentiment record with
its nested topic and ticker lists.

============================================================
COMPACT LIST GRAMMAR
============================================================
Both `topics` and `ticker_sentiment` cells hold comma-separated
entries of the form:

    name(value)

Each entry is trimmed, then matched against `(.+)\\((.+)\\)`.
Entries that do not match are dropped without error: extraction
is best effort. An empty or missing cell yields no entries.

- topics:            value is the relevance score
- ticker_sentiment:  value is the sentiment label; relevance and
                     sentiment scores are left as ""

Scores are kept as the text that arrived.

============================================================
"""

import logging
import math
import re
from dataclasses import asdict, dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple

from core.exceptions import ParseError


logger = logging.getLogger(__name__)


ENTRY_PATTERN = re.compile(r"(.+)\((.+)\)")

TEXT_FIELDS = (
    "title",
    "url",
    "time_published",
    "summary",
    "banner_image",
    "source",
    "category_within_source",
    "source_domain",
    "overall_sentiment_label",
)

RECOGNISED_FIELDS = frozenset(TEXT_FIELDS + (
    "authors",
    "topics",
    "ticker_sentiment",
    "overall_sentiment_score",
))


# ============================================================
# NESTED ENTRIES
# ============================================================


@dataclass(frozen=True)
class Topic:
    topic: str
    relevance_score: str

    def to_dict(self) -> Dict[str, str]:
        return asdict(self)


@dataclass(frozen=True)
class TickerSentiment:
    ticker: str
    ticker_sentiment_label: str
    relevance_score: str = ""
    ticker_sentiment_score: str = ""

    def to_dict(self) -> Dict[str, str]:
        return asdict(self)


def _is_blank(raw: Any) -> bool:
    if raw is None:
        return True
    if isinstance(raw, float) and math.isnan(raw):
        return True
    return isinstance(raw, str) and not raw.strip()


def _entries(raw: Any) -> Iterator[Tuple[str, str]]:
    if _is_blank(raw):
        return
    for item in str(raw).split(","):
        match = ENTRY_PATTERN.search(item.strip())
        if match is None:
            continue
        yield match.group(1).strip(), match.group(2).strip()


def parse_topics(raw: Any) -> List[Topic]:
    """`"Crypto(0.9), Markets(0.5)"` -> two Topic entries, in order."""
    return [Topic(topic=name, relevance_score=score) for name, score in _entries(raw)]


def parse_ticker_sentiment(raw: Any) -> List[TickerSentiment]:
    """`"BTC(Bullish)"` -> one TickerSentiment labelled Bullish."""
    return [
        TickerSentiment(ticker=name, ticker_sentiment_label=label)
        for name, label in _entries(raw)
    ]


# ============================================================
# SCALAR FIELDS
# ============================================================


def _text(raw: Any) -> Optional[str]:
    if _is_blank(raw):
        return None
    return str(raw).strip()


def parse_authors(raw: Any) -> List[str]:
    """List of author names from a list or a comma-separated cell."""
    if _is_blank(raw):
        return []
    if isinstance(raw, (list, tuple)):
        items = raw
    else:
        items = str(raw).split(",")
    return [str(item).strip() for item in items if not _is_blank(item)]


def parse_score(raw: Any) -> Optional[Decimal]:
    """
    Overall sentiment score as Decimal.

    Raises:
        ParseError: value is present but not a finite number
    """
    if _is_blank(raw):
        return None
    if isinstance(raw, bool):
        raise ParseError(f"not a number: {raw!r}", field="overall_sentiment_score")
    try:
        value = Decimal(str(raw).strip())
    except InvalidOperation:
        raise ParseError(f"not a number: {raw!r}", field="overall_sentiment_score") from None
    if not value.is_finite():
        raise ParseError(f"not a finite number: {raw!r}", field="overall_sentiment_score")
    return value


# ============================================================
# RECORD
# ============================================================


@dataclass
class NormalizedSentimentRecord:
    """One sentiment row, ready to persist."""

    uploaded_by: str
    title: Optional[str] = None
    url: Optional[str] = None
    time_published: Optional[str] = None
    authors: List[str] = field(default_factory=list)
    summary: Optional[str] = None
    banner_image: Optional[str] = None
    source: Optional[str] = None
    category_within_source: Optional[str] = None
    source_domain: Optional[str] = None
    topics: List[Topic] = field(default_factory=list)
    overall_sentiment_score: Optional[Decimal] = None
    overall_sentiment_label: Optional[str] = None
    ticker_sentiment: List[TickerSentiment] = field(default_factory=list)

    def to_columns(self) -> Dict[str, Any]:
        """Column values for the ORM model, nested lists as plain dicts."""
        columns = {name: getattr(self, name) for name in TEXT_FIELDS}
        columns.update({
            "uploaded_by": self.uploaded_by,
            "authors": list(self.authors),
            "overall_sentiment_score": self.overall_sentiment_score,
            "topics": [topic.to_dict() for topic in self.topics],
            "ticker_sentiment": [entry.to_dict() for entry in self.ticker_sentiment],
        })
        return columns


def normalize_row(row: Mapping[str, Any], owner: str) -> NormalizedSentimentRecord:
    """
    Normalize one raw row. Columns outside RECOGNISED_FIELDS are ignored.

    Raises:
        ParseError: a numeric cell holds something that is not a number
    """
    ignored = [key for key in row if key not in RECOGNISED_FIELDS]
    if ignored:
        logger.debug(f"Ignoring unrecognised columns: {ignored}")

    return NormalizedSentimentRecord(
        uploaded_by=owner,
        authors=parse_authors(row.get("authors")),
        topics=parse_topics(row.get("topics")),
        ticker_sentiment=parse_ticker_sentiment(row.get("ticker_sentiment")),
        overall_sentiment_score=parse_score(row.get("overall_sentiment_score")),
        **{name: _text(row.get(name)) for name in TEXT_FIELDS},
    )


def normalize_rows(
    rows: Sequence[Mapping[str, Any]],
    owner: str,
    filename: Optional[str] = None,
) -> List[NormalizedSentimentRecord]:
    """
    Normalize every row of one sheet.

    Raises:
        ParseError: naming the 1-based data row that failed
    """
    records = []
    for index, row in enumerate(rows, start=1):
        try:
            records.append(normalize_row(row, owner))
        except ParseError as e:
            field_name = e.context.get("field")
            raise ParseError(
                f"Row {index}: {field_name} is {e.message}",
                filename=filename,
                row=index,
                field=field_name,
            ) from e
    return records
