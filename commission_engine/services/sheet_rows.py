"""
Sheet row mapping and row sources.

Column layout of the monthly export (0-based, first row is a header):

    0 period           5 group
    1 creator id       6 team manager
    2 creator name     12 gross amount
    3 creator handle   13 N   14 O   15 P   18 S   (milestone cells)
    4 live manager

A row belongs to its live manager when that cell is populated, otherwise to
its team manager.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from io import BytesIO
from pathlib import Path
from typing import Any, Iterable, List, Optional, Protocol, Sequence

from openpyxl import load_workbook
from pydantic import ValidationError

from commission_engine.config import settings
from commission_engine.models.manager import ManagerType
from commission_engine.models.upload_batch import UploadBatch
from commission_engine.schemas.row import CommissionRow, MILESTONE_TRIGGERS, milestone_achieved

logger = logging.getLogger(__name__)

COL_PERIOD = 0
COL_CREATOR_ID = 1
COL_CREATOR_NAME = 2
COL_CREATOR_HANDLE = 3
COL_LIVE_MANAGER = 4
COL_GROUP = 5
COL_TEAM_MANAGER = 6
COL_GROSS = 12
COL_MILESTONE = {"N": 13, "O": 14, "P": 15, "S": 18}


class RowSourceError(Exception):
    """Rows for a batch could not be loaded."""
    pass


@dataclass
class LoadedRows:
    rows: List[CommissionRow] = field(default_factory=list)
    errors: List[dict] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.rows) + len(self.errors)


class RowSource(Protocol):
    async def load_rows(self, batch: UploadBatch) -> LoadedRows:
        ...


def _cell(cells: Sequence[Any], index: int) -> Any:
    return cells[index] if index < len(cells) else None


def _filled(value: Any) -> bool:
    return value is not None and str(value).strip() != ""


def map_sheet_row(row_index: int, cells: Sequence[Any]) -> CommissionRow:
    """
    Map raw sheet cells to a CommissionRow.

    Raises:
        ValidationError: a cell could not be normalized (e.g. unreadable gross)
    """
    live_manager = _cell(cells, COL_LIVE_MANAGER)
    if _filled(live_manager):
        manager_label, manager_type = live_manager, ManagerType.LIVE
    else:
        manager_label, manager_type = _cell(cells, COL_TEAM_MANAGER), ManagerType.TEAM

    creator_label = _cell(cells, COL_CREATOR_HANDLE)
    if not _filled(creator_label):
        creator_label = _cell(cells, COL_CREATOR_ID)

    flags = {
        kind: milestone_achieved(_cell(cells, column), MILESTONE_TRIGGERS[kind])
        for kind, column in COL_MILESTONE.items()
    }

    return CommissionRow(
        row_index=row_index,
        period=_cell(cells, COL_PERIOD),
        manager_label=manager_label,
        manager_type=manager_type,
        creator_label=creator_label,
        creator_name=_cell(cells, COL_CREATOR_NAME),
        gross_amount=_cell(cells, COL_GROSS),
        milestone_n=flags["N"],
        milestone_o=flags["O"],
        milestone_p=flags["P"],
        milestone_s=flags["S"],
    )


def rows_from_values(values: Iterable[Sequence[Any]], has_header: bool = True) -> LoadedRows:
    """Map sheet value rows, skipping the header and blank rows."""
    loaded = LoadedRows()
    for index, cells in enumerate(values):
        if has_header and index == 0:
            continue
        if not cells or not any(_filled(c) for c in cells):
            continue
        try:
            loaded.rows.append(map_sheet_row(index, cells))
        except ValidationError as e:
            message = "; ".join(err["msg"] for err in e.errors())
            logger.warning(f"Sheet row {index} rejected: {message}")
            loaded.errors.append({"row": index, "error": message})
    return loaded


def read_workbook_rows(file_bytes: bytes, sheet_name: Optional[str] = None) -> LoadedRows:
    try:
        workbook = load_workbook(BytesIO(file_bytes), read_only=True, data_only=True)
    except Exception as e:
        raise RowSourceError(f"Failed to read Excel file: {str(e)}") from e

    try:
        if sheet_name:
            if sheet_name not in workbook.sheetnames:
                raise RowSourceError(f"Sheet '{sheet_name}' not found in workbook")
            sheet = workbook[sheet_name]
        else:
            sheet = workbook.worksheets[0]
        return rows_from_values(sheet.iter_rows(values_only=True))
    finally:
        workbook.close()


class WorkbookRowSource:
    """Reads a batch's rows from ``UPLOAD_DIR / batch.source``."""

    def __init__(self, upload_dir: Optional[str] = None, sheet_name: Optional[str] = None):
        self.upload_dir = Path(upload_dir or settings.UPLOAD_DIR)
        self.sheet_name = sheet_name

    def path_for(self, batch: UploadBatch) -> Path:
        path = (self.upload_dir / batch.source).resolve()
        if self.upload_dir.resolve() not in path.parents:
            raise RowSourceError(f"Source '{batch.source}' is outside the upload directory")
        return path

    async def load_rows(self, batch: UploadBatch) -> LoadedRows:
        path = self.path_for(batch)
        if not path.is_file():
            raise RowSourceError(f"Source file not found: {batch.source}")

        file_bytes = await asyncio.to_thread(path.read_bytes)
        loaded = await asyncio.to_thread(read_workbook_rows, file_bytes, self.sheet_name)
        logger.info(
            f"Loaded {len(loaded.rows)} rows from {batch.source} "
            f"({len(loaded.errors)} rejected)"
        )
        return loaded
