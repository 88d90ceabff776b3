"""Reading named numeric profiles from comma separated text."""

from __future__ import annotations

import csv
import io
import logging
from pathlib import Path
from typing import TextIO, Union

import numpy as np
import pandas as pd

from .dataset import Dataset, ProfileSet
from .exceptions import FileFormatError, InvalidInputError

logger = logging.getLogger(__name__)

PathOrBuffer = Union[str, Path, TextIO]


def _read_text(source: PathOrBuffer) -> str:
    if isinstance(source, (str, Path)):
        path = Path(source)
        if not path.exists():
            raise FileFormatError(f"Profile file not found: {path}")
        return path.read_text(encoding="utf-8")
    return source.read()


def parse_profiles(text: str) -> ProfileSet:
    """Parse ``name,v1,v2,...`` lines into a profile set.

    There is no header row. Blank lines are skipped.

    Raises:
        FileFormatError: On an empty input, inconsistent column counts,
            empty names, or values that are not finite numbers
    """
    lines = [line.strip() for line in text.strip().splitlines()]
    lines = [line for line in lines if line]
    if not lines:
        raise FileFormatError("No rows found.")

    expected = lines[0].count(",") + 1
    for line_no, line in enumerate(lines, start=1):
        found = line.count(",") + 1
        if found != expected:
            raise FileFormatError(
                f"Inconsistent column count (expected {expected}, got {found}).",
                {"line": line_no},
            )

    # quote characters are data, fields split on every comma
    try:
        frame = pd.read_csv(
            io.StringIO("\n".join(lines)),
            header=None,
            dtype=str,
            keep_default_na=False,
            skipinitialspace=True,
            quoting=csv.QUOTE_NONE,
        )
    except pd.errors.ParserError as e:
        raise FileFormatError(f"Malformed profile rows: {e}") from e

    if frame.shape[1] < 2:
        raise FileFormatError("Rows need a name followed by numeric values.")

    names = frame.iloc[:, 0].str.strip()
    if (names == "").any():
        raise FileFormatError("Empty sample name encountered.")

    raw = frame.iloc[:, 1:].apply(lambda col: col.str.strip())
    values = raw.apply(pd.to_numeric, errors="coerce").to_numpy(dtype=np.float64)
    bad = ~np.isfinite(values)
    if bad.any():
        row, col = np.argwhere(bad)[0]
        raise FileFormatError(
            f"Non-numeric value: {raw.iat[row, col]}",
            {"line": int(row) + 1, "column": int(col) + 2},
        )

    profiles = ProfileSet(names=tuple(names), vectors=values)
    logger.debug(f"Parsed {len(profiles)} profiles with {profiles.dimension} dimensions")
    return profiles


def read_profiles(source: PathOrBuffer) -> ProfileSet:
    """Read a profile file or text buffer."""
    return parse_profiles(_read_text(source))


def load_dataset(source_path: PathOrBuffer, target_path: PathOrBuffer) -> Dataset:
    """Read and validate a source/target pair."""
    dataset = Dataset(source=read_profiles(source_path), target=read_profiles(target_path))
    try:
        return dataset.validate()
    except InvalidInputError as e:
        raise FileFormatError(str(e), e.details) from e
