"""Box position grid: dimension bounds and canonical position labels."""

from typing import NamedTuple

from app.config import settings
from app.core.exceptions import InvalidStateError


class GridCell(NamedTuple):
    row: int
    column: int
    label: str


def row_label(row: int) -> str:
    """Spreadsheet-style row letters: 1 -> A, 26 -> Z, 27 -> AA, 28 -> AB."""
    if row < 1:
        raise InvalidStateError(f"Row number must be >= 1, got {row}.")
    letters = ""
    while row:
        row, rem = divmod(row - 1, 26)
        letters = chr(ord("A") + rem) + letters
    return letters


def position_label(row: int, column: int) -> str:
    """Human-readable label for a cell, e.g. (1, 1) -> "A1", (2, 10) -> "B10"."""
    if column < 1:
        raise InvalidStateError(f"Column number must be >= 1, got {column}.")
    return f"{row_label(row)}{column}"


def validate_dimensions(rows: int, columns: int) -> None:
    low, high = settings.GRID_MIN_DIMENSION, settings.GRID_MAX_DIMENSION
    for name, value in (("rows", rows), ("columns", columns)):
        if not low <= value <= high:
            raise InvalidStateError(
                f"Box {name} must be between {low} and {high}, got {value}."
            )


def build_grid(rows: int, columns: int) -> list[GridCell]:
    """All ``rows * columns`` cells of a box in row-major order."""
    validate_dimensions(rows, columns)
    return [
        GridCell(r, c, position_label(r, c))
        for r in range(1, rows + 1)
        for c in range(1, columns + 1)
    ]
