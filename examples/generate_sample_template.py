#!/usr/bin/env python3
"""
Generate a sample coating price template for trying out the pricing API.
Creates one sheet per treatment with the part inputs in D67:D69 and D74 and
the price formula in L17, using only functions the formula engine supports.
"""

from pathlib import Path

from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side

# Treatment sheet -> (rate per kg, minimum price, bulky volume in m3, bulky surcharge)
TREATMENT_RATES = {
    "Verzinken": (0.85, 45.00, 1.5, 35.00),
    "Dompelbeitsen": (1.10, 60.00, 1.0, 50.00),
    "Sublimotion": (4.75, 95.00, 0.5, 75.00),
}


def fill_treatment_sheet(ws, treatment, rates):
    """Lay out one treatment sheet."""
    rate_per_kg, minimum, bulky_volume, bulky_surcharge = rates

    header_font = Font(bold=True, color="FFFFFF")
    header_fill = PatternFill(start_color="366092", end_color="366092", fill_type="solid")
    input_fill = PatternFill(start_color="FFF2CC", end_color="FFF2CC", fill_type="solid")
    border_style = Border(
        left=Side(style='thin'),
        right=Side(style='thin'),
        top=Side(style='thin'),
        bottom=Side(style='thin')
    )

    ws.column_dimensions['C'].width = 32
    ws.column_dimensions['D'].width = 14
    ws.column_dimensions['K'].width = 24
    ws.column_dimensions['L'].width = 14

    ws.merge_cells('A1:L1')
    ws['A1'] = f"Prijsberekening {treatment}"
    ws['A1'].font = Font(size=16, bold=True)
    ws['A1'].alignment = Alignment(horizontal="center")

    # Result block
    ws['K16'] = "Volume (m3)"
    ws['L16'] = "=D67*D68*D69/1000000000"
    ws['L16'].number_format = '0.000'
    ws['K17'] = "Prijs excl. BTW"
    ws['L17'] = "=ROUND(MAX(D74*D60, D61) + IF(L16>D62, D63, 0), 2)"
    ws['L17'].number_format = '€ #,##0.00'
    for ref in ('K17', 'L17'):
        ws[ref].font = Font(bold=True)
        ws[ref].border = border_style

    # Tariffs
    ws['C59'] = "Tarieven"
    ws['C59'].font = header_font
    ws['C59'].fill = header_fill
    tariffs = [
        (60, "Tarief per kg", rate_per_kg, '€ #,##0.00'),
        (61, "Minimumprijs", minimum, '€ #,##0.00'),
        (62, "Grens groot volume (m3)", bulky_volume, '0.00'),
        (63, "Toeslag groot volume", bulky_surcharge, '€ #,##0.00'),
    ]
    for row, label, value, number_format in tariffs:
        ws.cell(row=row, column=3, value=label).border = border_style
        cell = ws.cell(row=row, column=4, value=value)
        cell.number_format = number_format
        cell.border = border_style

    # Inputs; the pricing service overwrites these per calculation
    ws['C66'] = "Invoer"
    ws['C66'].font = header_font
    ws['C66'].fill = header_fill
    inputs = [
        (67, "Lengte (mm)", 1000),
        (68, "Breedte (mm)", 500),
        (69, "Hoogte (mm)", 250),
        (74, "Gewicht (kg)", 25),
    ]
    for row, label, default in inputs:
        ws.cell(row=row, column=3, value=label).border = border_style
        cell = ws.cell(row=row, column=4, value=default)
        cell.fill = input_fill
        cell.border = border_style


def create_sample_template(output_path=None):
    """Create the sample template workbook."""
    wb = Workbook()
    wb.remove(wb.active)

    for treatment, rates in TREATMENT_RATES.items():
        fill_treatment_sheet(wb.create_sheet(treatment), treatment, rates)

    notes = wb.create_sheet("Toelichting")
    notes['A1'] = "Alle prijzen zijn exclusief BTW en transport."
    notes['A2'] = "Gele cellen zijn invoervelden."

    output_path = output_path or Path(__file__).parent / "sample_template.xlsx"
    wb.save(output_path)
    print(f"Sample price template created: {output_path}")

    return output_path


if __name__ == "__main__":
    create_sample_template()
