import csv
import logging
import openpyxl
from openpyxl.styles import Font, Alignment, Border, Side, PatternFill
from decimal import Decimal
from pathlib import Path
from typing import List, Optional

from models.calculation import (
    CalculationKind, CalculationStatus, PremiumCalculation, effective_amounts
)
from utils.formatters import format_status
from config.settings import OUTPUT_DIR

logger = logging.getLogger(__name__)

EXPORTABLE = [CalculationStatus.CONFIRMED, CalculationStatus.EXPORTED]

HEADERS = [
    'Year', 'Month', 'Employee number', 'Name', 'Department', 'Standard amount',
    'Grade', 'Pension grade', 'Health premium', 'Pension premium', 'Dependent premium',
    'Total premium', 'Company share', 'Employee share', 'Status', 'Calculated at', 'Notes'
]


def _yen(value: Decimal):
    # Whole-yen values go out as integers, anything else as Decimal
    return int(value) if value == value.to_integral_value() else value


def export_row(record: PremiumCalculation) -> list:
    amounts = effective_amounts(record)
    return [
        record.year,
        record.month,
        record.employee_number,
        record.employee_name,
        record.department_name or '',
        record.standard_amount,
        record.grade if record.grade is not None else '',
        record.pension_grade if record.pension_grade is not None else '',
        _yen(record.health_premium),
        _yen(record.pension_premium),
        _yen(record.employer_dependent_premium),
        _yen(amounts.total_premium),
        _yen(amounts.company_share),
        _yen(amounts.employee_share),
        format_status(record.status.value),
        record.calculated_at.strftime('%Y-%m-%d %H:%M') if record.calculated_at else '',
        record.notes.replace('\n', ' / '),
    ]


class CalculationExporter:
    """CSV and Excel export of finalized calculations.

    Drafts are never exported. Exported records are marked through the
    lifecycle manager so the status change is logged like any other.
    """

    def __init__(self, repository, lifecycle, output_dir: Optional[Path] = None):
        self.repo = repository
        self.lifecycle = lifecycle
        self.output_dir = Path(output_dir) if output_dir else OUTPUT_DIR / "exports"
        self.output_dir.mkdir(parents=True, exist_ok=True)

    def exportable(self, organization_id: str, kind: CalculationKind, year: int,
                   month: int) -> List[PremiumCalculation]:
        records = self.repo.list_calculations(organization_id, kind, year, month, statuses=EXPORTABLE)
        return sorted(records, key=lambda r: r.employee_number)

    def export_csv(self, organization_id: str, kind: CalculationKind, year: int, month: int,
                   actor: str) -> str:
        """Write a UTF-8 (BOM) CSV and mark its records exported"""
        records = self.exportable(organization_id, kind, year, month)
        filepath = self.output_dir / f"{kind.value}_premiums_{organization_id}_{year}_{month:02d}.csv"

        with open(filepath, 'w', newline='', encoding='utf-8-sig') as f:
            writer = csv.writer(f)
            writer.writerow(HEADERS)
            for record in records:
                writer.writerow(export_row(record))

        self._mark_exported(records, actor)
        logger.info(f"Exported {len(records)} {kind.value} calculations to {filepath}")
        return str(filepath)

    def export_workbook(self, organization_id: str, kind: CalculationKind, year: int, month: int,
                        actor: str) -> str:
        """Write an Excel sheet with a totals row and mark its records exported"""
        records = self.exportable(organization_id, kind, year, month)

        wb = openpyxl.Workbook()
        ws = wb.active
        ws.title = f"{year}-{month:02d} {kind.value}"

        # Define styles
        bold_font = Font(bold=True)
        header_fill = PatternFill(start_color="B4C7E7", end_color="B4C7E7", fill_type="solid")
        total_fill = PatternFill(start_color="DDEBF7", end_color="DDEBF7", fill_type="solid")
        thin_border = Border(
            left=Side(style='thin'),
            right=Side(style='thin'),
            top=Side(style='thin'),
            bottom=Side(style='thin')
        )

        for col_idx, header in enumerate(HEADERS, start=1):
            cell = ws.cell(row=1, column=col_idx)
            cell.value = header
            cell.font = bold_font
            cell.fill = header_fill
            cell.border = thin_border
            cell.alignment = Alignment(horizontal='center', vertical='center', wrap_text=True)

        money_columns = range(9, 15)
        totals = {col: Decimal('0') for col in money_columns}

        row = 2
        for record in records:
            values = export_row(record)
            for col_idx, value in enumerate(values, start=1):
                cell = ws.cell(row=row, column=col_idx)
                cell.value = float(value) if isinstance(value, Decimal) else value
                cell.border = thin_border
                if col_idx in money_columns:
                    cell.number_format = '#,##0'
                    totals[col_idx] += Decimal(str(value))
            row += 1

        # Totals row
        ws.cell(row=row, column=1).value = "Total"
        ws.cell(row=row, column=4).value = f"{len(records)} employees"
        for col_idx in range(1, len(HEADERS) + 1):
            cell = ws.cell(row=row, column=col_idx)
            cell.font = bold_font
            cell.fill = total_fill
            cell.border = thin_border
            if col_idx in money_columns:
                cell.value = float(totals[col_idx])
                cell.number_format = '#,##0'

        col_widths = {
            'A': 8, 'B': 8, 'C': 16, 'D': 20, 'E': 16, 'F': 16, 'G': 8, 'H': 10,
            'I': 14, 'J': 14, 'K': 14, 'L': 14, 'M': 14, 'N': 14, 'O': 12, 'P': 18, 'Q': 50
        }
        for col, width in col_widths.items():
            ws.column_dimensions[col].width = width

        filepath = self.output_dir / f"{kind.value}_premiums_{organization_id}_{year}_{month:02d}.xlsx"
        wb.save(filepath)

        self._mark_exported(records, actor)
        logger.info(f"Exported {len(records)} {kind.value} calculations to {filepath}")
        return str(filepath)

    def _mark_exported(self, records: List[PremiumCalculation], actor: str):
        self.lifecycle.mark_exported_many([r.id for r in records], actor)
