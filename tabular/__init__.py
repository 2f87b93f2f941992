"""
Tabular Package.

Parsing and normalization of uploaded market-sentiment sheets.
"""

from tabular.normalizer import (
    NormalizedSentimentRecord,
    TickerSentiment,
    Topic,
    normalize_row,
    normalize_rows,
    parse_authors,
    parse_score,
    parse_ticker_sentiment,
    parse_topics,
)
from tabular.parsers import parse


__all__ = [
    "parse",
    "Topic",
    "TickerSentiment",
    "NormalizedSentimentRecord",
    "normalize_row",
    "normalize_rows",
    "parse_authors",
    "parse_score",
    "parse_topics",
    "parse_ticker_sentiment",
]
