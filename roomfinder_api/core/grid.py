# roomfinder_api/core/grid.py
import logging
from dataclasses import dataclass, field
from typing import FrozenSet, List, Optional, Sequence, Tuple, Union

from bs4 import BeautifulSoup, Tag

from .constants import MAX_CELL_SPAN, SCHEDULE_CELL_SELECTOR

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class RawCell:
    """A table cell as declared in the source markup, before span resolution."""
    content: str
    row_span: int = 1
    col_span: int = 1
    classes: FrozenSet[str] = field(default_factory=frozenset)
    is_header: bool = False


@dataclass(frozen=True)
class OwnedCell:
    """Owning reference: the top-left logical position of a placed RawCell."""
    cell: RawCell
    row: int
    col: int

    @property
    def text(self) -> str:
        return self.cell.content


@dataclass(frozen=True)
class OccupiedMarker:
    """A logical position covered by the span of the cell owned at `owner`."""
    owner: Tuple[int, int]


GridPosition = Optional[Union[OwnedCell, OccupiedMarker]]


class LogicalGrid:
    """
    Row-major layout of a spanned table. Each position holds an OwnedCell, an
    OccupiedMarker, or None (sparse or malformed row). Rows may differ in length.
    """

    def __init__(self) -> None:
        self.rows: List[List[GridPosition]] = []

    def __len__(self) -> int:
        return len(self.rows)

    def _ensure_row(self, row: int) -> List[GridPosition]:
        while len(self.rows) <= row:
            self.rows.append([])
        return self.rows[row]

    def get(self, row: int, col: int) -> GridPosition:
        if row < 0 or col < 0 or row >= len(self.rows):
            return None
        cells = self.rows[row]
        if col >= len(cells):
            return None
        return cells[col]

    def is_filled(self, row: int, col: int) -> bool:
        return self.get(row, col) is not None

    def _set_if_empty(self, row: int, col: int, value: Union[OwnedCell, OccupiedMarker]) -> bool:
        cells = self._ensure_row(row)
        if len(cells) <= col:
            cells.extend([None] * (col + 1 - len(cells)))
        if cells[col] is not None:
            return False
        cells[col] = value
        return True

    def place(self, row: int, col: int, cell: RawCell) -> OwnedCell:
        """
        Places `cell` with its top-left corner at (row, col). Positions already
        filled by an earlier cell are left untouched.
        """
        owned = OwnedCell(cell=cell, row=row, col=col)
        if not self._set_if_empty(row, col, owned):
            # The cursor only lands on empty positions, so this means a caller bug
            raise ValueError(f"Logical position ({row}, {col}) is already filled")
        marker = OccupiedMarker(owner=(row, col))
        for r in range(row, row + cell.row_span):
            for c in range(col, col + cell.col_span):
                if r == row and c == col:
                    continue
                if not self._set_if_empty(r, c, marker):
                    log.debug(f"Span of cell at ({row}, {col}) overlaps filled position ({r}, {c}); keeping first writer.")
        return owned

    def owning_cells(self) -> List[OwnedCell]:
        return [pos for cells in self.rows for pos in cells if isinstance(pos, OwnedCell)]


def build_logical_grid(rows: Sequence[Sequence[RawCell]]) -> LogicalGrid:
    """
    Reconstructs the logical 2-D layout of a table from its rows of raw cells.

    Rows are scanned top-to-bottom. Within a row a cursor column skips positions
    already occupied by earlier rowspans or colspans, and each cell is placed at
    the first free position. Spans reaching rows that are not materialized yet
    extend the grid on demand. A row with no cells yields an empty logical row.

    Args:
        rows: Ordered rows of RawCell, as declared in the source markup.

    Returns:
        The reconstructed LogicalGrid.
    """
    grid = LogicalGrid()
    for row_index, row_cells in enumerate(rows):
        grid._ensure_row(row_index)
        cursor = 0
        for cell in row_cells:
            while grid.is_filled(row_index, cursor):
                cursor += 1
            grid.place(row_index, cursor, cell)
            cursor += cell.col_span
    log.debug(f"Built logical grid with {len(grid)} rows from {len(rows)} source rows.")
    return grid


def _parse_span(value: Optional[str]) -> int:
    """Declared span attribute -> int >= 1. Missing, malformed or non-positive values count as 1."""
    if value is None:
        return 1
    try:
        span = int(str(value).strip())
    except (TypeError, ValueError):
        log.debug(f"Could not parse span attribute '{value}', using 1.")
        return 1
    if span < 1:
        return 1
    if span > MAX_CELL_SPAN:
        log.warning(f"Span attribute {span} exceeds {MAX_CELL_SPAN}, clamping.")
        return MAX_CELL_SPAN
    return span


def raw_cell_from_tag(tag: Tag) -> RawCell:
    classes = tag.get("class", [])
    if isinstance(classes, str):
        classes = classes.split()
    return RawCell(
        content=tag.get_text(separator=" ", strip=True),
        row_span=_parse_span(tag.get("rowspan")),
        col_span=_parse_span(tag.get("colspan")),
        classes=frozenset(classes),
        is_header=tag.name == "th",
    )


def raw_rows_from_table(table: Tag, cell_selector: str = SCHEDULE_CELL_SELECTOR) -> List[List[RawCell]]:
    """
    Reads the rows of a <table> element into RawCell rows.

    Only direct cells of each row are taken, so nested tables inside a cell do not
    leak extra cells into the outer row.
    """
    wanted = {name.strip() for name in cell_selector.split(",")}
    rows: List[List[RawCell]] = []
    for tr in table.find_all("tr"):
        # Skip rows that belong to a nested table
        if tr.find_parent("table") is not table:
            continue
        cells = [raw_cell_from_tag(td) for td in tr.find_all(list(wanted), recursive=False)]
        rows.append(cells)
    return rows


def find_schedule_table(html: str, table_selector: str) -> Optional[Tag]:
    soup = BeautifulSoup(html, "lxml")
    return soup.select_one(table_selector)
