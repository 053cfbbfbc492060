"""Workbook export of the record corpus."""

import logging
import re
from pathlib import Path
from typing import Iterable, List, Union

from openpyxl import Workbook
from openpyxl.styles import Alignment, Font

from unitsync.core.models import CompetencyRecord, EvidenceGroup

logger = logging.getLogger(__name__)

SHEET_TITLE = "Units"
HEADER = ["Unit", "Section", "Ref", "Content"]
COLUMN_WIDTHS = {"A": 45, "B": 40, "C": 8, "D": 90}

_CRITERION = re.compile(r"^(\d+\.\d+)\s+(.*)$", re.DOTALL)
_NUMBERED = re.compile(r"^\d+\.\s")


def _evidence_text(group: EvidenceGroup, connector: str) -> str:
    if not group.items:
        return group.topic
    children = "\n".join(f"-\t{item}" for item in group.items)
    return f"{group.topic} {connector}:\n{children}"


def unit_rows(record: CompetencyRecord) -> List[List[str]]:
    """Rows for one unit: criteria, then P1.. evidence, then K1.. evidence."""
    unit = f"{record.code} {record.title}"
    rows: List[List[str]] = []

    for n, element in enumerate(record.elements, start=1):
        section = element.element if _NUMBERED.match(element.element) else f"{n}. {element.element}"
        for i, criterion in enumerate(element.performance_criteria, start=1):
            match = _CRITERION.match(criterion)
            if match:
                rows.append([unit, section, match.group(1), match.group(2)])
            else:
                rows.append([unit, section, f"{n}.{i}", criterion])
        if not element.performance_criteria:
            rows.append([unit, section, "", ""])

    for idx, group in enumerate(record.performance_evidence, start=1):
        rows.append([unit, "Performance Evidence", f"P{idx}", _evidence_text(group, "and")])

    for idx, group in enumerate(record.knowledge_evidence, start=1):
        rows.append([unit, "Knowledge Evidence", f"K{idx}", _evidence_text(group, "includes")])

    return rows


def export_workbook(records: Iterable[CompetencyRecord], path: Union[str, Path]) -> Path:
    """
    Write the corpus to an .xlsx workbook with a single "Units" sheet.

    Args:
        records: Records to export, in the order they should appear
        path: Destination workbook

    Returns:
        Path of the written workbook
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    workbook = Workbook()
    sheet = workbook.active
    sheet.title = SHEET_TITLE
    sheet.append(HEADER)
    for cell in sheet[1]:
        cell.font = Font(bold=True)
    sheet.freeze_panes = "A2"
    for column, width in COLUMN_WIDTHS.items():
        sheet.column_dimensions[column].width = width

    units = 0
    for record in records:
        for row in unit_rows(record):
            sheet.append(row)
            sheet.cell(row=sheet.max_row, column=4).alignment = Alignment(wrap_text=True, vertical="top")
        units += 1

    workbook.save(str(path))
    logger.info(f"Exported {units} units to {path}")
    return path
