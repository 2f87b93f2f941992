"""
Tabular - File Parsers.

============================================================
PURPOSE
============================================================
Turns an uploaded sheet into an ordered list of row mappings
(column name -> value). Dispatch is by extension only.

- .csv        every value is a string, empty cells are ""
- .xls/.xlsx  first sheet, typed scalars, empty cells omitted

Parsing is blocking; async callers run it in a worker thread.

============================================================
"""

import logging
import zipfile
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

import pandas as pd
from openpyxl.utils.exceptions import InvalidFileException
from xlrd import XLRDError

from core.exceptions import ParseError


logger = logging.getLogger(__name__)


Row = Dict[str, Any]
Parser = Callable[[Path], List[Row]]

SPREADSHEET_ERRORS = (
    ValueError,
    KeyError,
    OSError,
    ImportError,
    zipfile.BadZipFile,
    InvalidFileException,
    XLRDError,
)


def _native(value: Any) -> Any:
    """numpy scalar -> plain Python scalar."""
    item = getattr(value, "item", None)
    if callable(item):
        return item()
    return value


def parse_csv(path: Path) -> List[Row]:
    try:
        frame = pd.read_csv(path, dtype=str, keep_default_na=False)
    except pd.errors.EmptyDataError:
        return []
    except (pd.errors.ParserError, UnicodeDecodeError, ValueError) as e:
        raise ParseError(f"Malformed CSV: {e}", filename=path.name, cause=e) from e

    frame.columns = [str(column).strip() for column in frame.columns]
    return frame.to_dict(orient="records")


def parse_excel(path: Path) -> List[Row]:
    try:
        frame = pd.read_excel(path, sheet_name=0)
    except SPREADSHEET_ERRORS as e:
        raise ParseError(f"Unreadable spreadsheet: {e}", filename=path.name, cause=e) from e

    rows: List[Row] = []
    for record in frame.to_dict(orient="records"):
        rows.append({
            str(column).strip(): _native(value)
            for column, value in record.items()
            if not pd.isna(value)
        })
    return rows


PARSERS: Dict[str, Parser] = {
    ".csv": parse_csv,
    ".xls": parse_excel,
    ".xlsx": parse_excel,
}


def parse(path: Union[str, Path], suffix: Optional[str] = None) -> List[Row]:
    """
    Parse a tabular file into rows.

    `suffix` overrides the extension of `path` for dispatch (staged
    uploads may carry a different name than the original).

    Raises:
        ParseError: unsupported extension or unreadable content
    """
    path = Path(path)
    suffix = (suffix or path.suffix).lower()
    parser = PARSERS.get(suffix)
    if parser is None:
        raise ParseError(f"No tabular parser for '{suffix}'", filename=path.name)

    rows = parser(path)
    logger.debug(f"Parsed {len(rows)} row(s) from {path.name}")
    return rows
