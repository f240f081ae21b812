"""
Batch input parsing.

A batch is an ordered list of rows carrying SCRIPT and FILENAME columns
(header names are case-insensitive). Every row is validated before anything
is dispatched: one bad row rejects the whole batch with a row-indexed list
of problems. Any other column becomes a per-job option (VOICE, SPEED, ...).
"""

import csv
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable, List, Mapping, Union

from ..core.exceptions import BatchInputError
from ..core.schemas import JobItem

logger = logging.getLogger(__name__)

SCRIPT_COLUMN = "script"
FILENAME_COLUMN = "filename"


@dataclass(frozen=True)
class RowError:
    """Problem found in one input row; row numbers are 1-based"""
    row: int
    message: str

    def __str__(self) -> str:
        return f"row {self.row}: {self.message}"


def _normalise_row(row: Mapping[str, Any]) -> dict:
    normalised = {}
    for key, value in row.items():
        if key is None:
            # csv.DictReader puts surplus cells under None
            continue
        normalised[str(key).strip().lower()] = value
    return normalised


def _cell(row: Mapping[str, Any], column: str) -> str:
    value = row.get(column)
    return "" if value is None else str(value).strip()


def parse_batch_rows(rows: Iterable[Mapping[str, Any]]) -> List[JobItem]:
    """
    Convert raw rows into JobItems, rejecting the batch if any row is incomplete

    Raises:
        BatchInputError: One or more rows lack SCRIPT or FILENAME, or there are no rows
    """
    items: List[JobItem] = []
    errors: List[RowError] = []

    for number, raw in enumerate(rows, start=1):
        if not isinstance(raw, Mapping):
            errors.append(RowError(number, f"expected an object, got {type(raw).__name__}"))
            continue

        row = _normalise_row(raw)
        script = _cell(row, SCRIPT_COLUMN)
        filename = _cell(row, FILENAME_COLUMN)

        if not script:
            errors.append(RowError(number, "SCRIPT is empty"))
        if not filename:
            errors.append(RowError(number, "FILENAME is empty"))
        if not script or not filename:
            continue

        options = {
            key: value
            for key, value in row.items()
            if key not in (SCRIPT_COLUMN, FILENAME_COLUMN) and value not in (None, "")
        }
        items.append(JobItem(text=script, target_file_base_name=filename, per_job_options=options))

    if errors:
        raise BatchInputError(errors)
    if not items:
        raise BatchInputError(["batch contains no rows"])

    logger.debug("Parsed %s batch rows", len(items))
    return items


def load_batch_file(path: Union[str, Path]) -> List[JobItem]:
    """
    Read a CSV (header row) or JSON (list of objects) batch file

    Raises:
        BatchInputError: Unreadable file, unsupported format or invalid rows
    """
    path = Path(path)
    suffix = path.suffix.lower()

    try:
        if suffix == ".json":
            with path.open(encoding="utf-8") as f:
                data = json.load(f)
            if isinstance(data, dict) and "items" in data:
                data = data["items"]
            if not isinstance(data, list):
                raise BatchInputError(["JSON batch must be a list of objects"])
            rows = data
        elif suffix in (".csv", ".tsv", ".txt"):
            with path.open(encoding="utf-8-sig", newline="") as f:
                delimiter = "\t" if suffix == ".tsv" else ","
                rows = list(csv.DictReader(f, delimiter=delimiter))
        else:
            raise BatchInputError([f"unsupported batch file type '{suffix or path.name}'"])
    except OSError as e:
        raise BatchInputError([f"cannot read {path}: {e}"]) from e
    except (ValueError, csv.Error) as e:
        raise BatchInputError([f"cannot parse {path}: {e}"]) from e

    logger.info("Loaded %s rows from %s", len(rows), path)
    return parse_batch_rows(rows)
