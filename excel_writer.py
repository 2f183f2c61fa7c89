import csv
import logging
from typing import Any, Iterable, Mapping

from openpyxl import Workbook
from openpyxl.comments import Comment
from openpyxl.styles import Font, Alignment, Border, Side, PatternFill
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.worksheet import Worksheet

from bar_schedule import BarLineItem, bar_schedule_rows, steel_breakdown, weight_by_diameter, total_length_by_diameter
from constants import STOCK_LENGTH_M
from rebar_optimizer import OptimizationResult, group_cutting_patterns, purchase_summary
from utils import format_diameter

logger = logging.getLogger(__name__)

# --- Styles ---
white_side = Side(style='thin', color='FFFFFF')
black_side = Side(style='thin', color='404040')
title_font = Font(name='Calibri', size=16, bold=True)
header_font = Font(name='Calibri', size=11, bold=True, color='FFFFFF')
header_fill = PatternFill(start_color='404040', end_color='404040', fill_type='solid')
alter_row_fill = PatternFill(start_color='F3F3F3', end_color='F3F3F3', fill_type='solid')
cell_alignment = Alignment(horizontal='center', vertical='center', wrap_text=True)
border = Border(left=black_side, right=black_side, top=black_side, bottom=black_side)
header_border = Border(left=white_side, right=white_side, top=black_side, bottom=black_side)


def write_title_and_headers(ws: Worksheet, title: str, headers: list[str], row: int = 1) -> int:
    """
    Writes a merged title row and a styled header row below it.

    Returns:
        The first row available for data.
    """
    ws.merge_cells(start_row=row, start_column=1, end_row=row, end_column=max(1, len(headers)))
    title_cell = ws.cell(row=row, column=1, value=title)
    title_cell.font = title_font
    title_cell.alignment = Alignment(horizontal='center', vertical='center')
    ws.row_dimensions[row].height = 30

    header_row = row + 1
    for col_num, header_text in enumerate(headers, 1):
        cell = ws.cell(row=header_row, column=col_num, value=header_text)
        cell.font = header_font
        cell.alignment = cell_alignment
        cell.fill = header_fill
        cell.border = header_border

    # Apply black border to left and right outer edges
    if headers:
        ws.cell(row=header_row, column=1).border = Border(
            left=black_side, top=black_side, right=white_side, bottom=black_side)
        ws.cell(row=header_row, column=len(headers)).border = Border(
            left=white_side, top=black_side, right=black_side, bottom=black_side)
    ws.row_dimensions[header_row].height = 25
    return header_row + 1


def style_data_row(ws: Worksheet, row: int, n_cols: int, number_formats: Mapping[int, str] | None = None) -> None:
    for col_num in range(1, n_cols + 1):
        cell = ws.cell(row=row, column=col_num)
        # Alternating BG Color Fill
        if row % 2 == 0:
            cell.fill = alter_row_fill
        cell.alignment = cell_alignment
        cell.border = border
        if number_formats and col_num in number_formats:
            cell.number_format = number_formats[col_num]


def write_total_row(ws: Worksheet, row: int, label: str, values: Mapping[int, Any], n_cols: int) -> None:
    ws.cell(row=row, column=1, value=label).font = Font(bold=True)
    for col_num, value in values.items():
        ws.cell(row=row, column=col_num, value=value).font = Font(bold=True)
    for col_num in range(1, n_cols + 1):
        cell = ws.cell(row=row, column=col_num)
        cell.border = border
        cell.alignment = cell_alignment


def add_sheet_bar_schedule(wb: Workbook, title: str, items: list[BarLineItem],
                           stock_length_m: float = STOCK_LENGTH_M) -> Worksheet:
    """
    Bar bending schedule: one row per line item and a weight total.

    Cutting lengths longer than the stock bar are flagged in red with a
    splicing comment.
    """
    ws = wb.create_sheet('Bar Bending Schedule')
    rows = bar_schedule_rows(items)
    headers = list(rows[0].keys()) if rows else ['Bar Mark', 'Description', 'Shape', 'Diameter', 'No. Members',
                                                 'No. Bars', 'Total Bars', 'Cut Length (mm)', 'Total Length (m)',
                                                 'Total Weight (kg)', 'Segment Lengths']
    current_row = write_title_and_headers(ws, f'{title} Bar Bending Schedule', headers)
    cut_col = headers.index('Cut Length (mm)') + 1

    for item, data in zip(items, rows):
        data = dict(data, Diameter=format_diameter(data['Diameter']))
        for col_num, header in enumerate(headers, 1):
            ws.cell(row=current_row, column=col_num, value=data[header])
        style_data_row(ws, current_row, len(headers), {cut_col: '#,##0" mm"'})

        if item.cutting_length_m > stock_length_m:
            cell = ws.cell(row=current_row, column=cut_col)
            cell.font = Font(color='FF0000')
            cell.comment = Comment(
                f'Splicing required.\nCutting length exceeds the stock length of {stock_length_m:g}m.',
                'BBS', height=150, width=200)
        current_row += 1

    write_total_row(ws, current_row, 'Total',
                    {len(headers) - 1: round(sum(item.total_weight_kg for item in items), 2)}, len(headers))

    ws.column_dimensions['A'].width = 12
    ws.column_dimensions['B'].width = 25
    ws.column_dimensions[get_column_letter(len(headers))].width = 30
    return ws


def add_sheet_weight_by_diameter(wb: Workbook, items: list[BarLineItem]) -> Worksheet:
    ws = wb.create_sheet('Weight by Diameter')
    headers = ['Diameter', 'Total Length (m)', 'Total Weight (kg)']
    current_row = write_title_and_headers(ws, 'Steel Weight by Diameter', headers)

    lengths = total_length_by_diameter(items)
    weights = weight_by_diameter(items)
    for dia, weight in weights.items():
        ws.cell(row=current_row, column=1, value=format_diameter(dia))
        ws.cell(row=current_row, column=2, value=round(lengths.get(dia, 0.0), 2))
        ws.cell(row=current_row, column=3, value=round(weight, 2))
        style_data_row(ws, current_row, len(headers), {2: '#,##0.00', 3: '#,##0.00" kg"'})
        current_row += 1

    write_total_row(ws, current_row, 'Total', {3: round(sum(weights.values()), 2)}, len(headers))
    ws.cell(row=current_row, column=3).number_format = '#,##0.00" kg"'
    ws.column_dimensions['A'].width = 15
    ws.column_dimensions['B'].width = 20
    ws.column_dimensions['C'].width = 20
    return ws


def add_sheet_cutting_plan(wb: Workbook, result: OptimizationResult) -> Worksheet:
    """Grouped cutting patterns per diameter, followed by the purchase summary."""
    ws = wb.create_sheet('Cutting Plan')
    headers = ['Diameter', 'Stock Range', 'Quantity', 'Length', 'Cuts', 'Waste (m)', 'Usage (%)']
    current_row = write_title_and_headers(ws, 'Cutting Plan', headers)

    for dia, groups in group_cutting_patterns(result).items():
        for group in groups:
            values = [format_diameter(dia), group['Stock Range'], group['Quantity'],
                      f'{group["Stock Length (m)"]:g}m', '\n'.join(group['Cutting Pattern']),
                      group['Waste (m)'], group['Usage (%)']]
            for col_num, value in enumerate(values, 1):
                ws.cell(row=current_row, column=col_num, value=value)
            style_data_row(ws, current_row, len(headers))
            ws.cell(row=current_row, column=5).alignment = Alignment(
                horizontal='left', vertical='center', wrap_text=True)
            ws.row_dimensions[current_row].height = max(25, 15 * len(group['Cutting Pattern']))
            current_row += 1

    write_total_row(ws, current_row, 'Total',
                    {2: f'{result.total_stock_used} new bar(s)', 6: round(result.total_waste, 3)}, len(headers))

    summary = purchase_summary(result)
    if summary:
        summary_headers = list(summary[0].keys())
        current_row = write_title_and_headers(ws, 'Purchase Summary', summary_headers, row=current_row + 2)
        for data in summary:
            for col_num, header in enumerate(summary_headers, 1):
                value = format_diameter(data[header]) if header == 'Diameter' else data[header]
                ws.cell(row=current_row, column=col_num, value=value)
            style_data_row(ws, current_row, len(summary_headers))
            current_row += 1

    ws.column_dimensions['B'].width = 15
    ws.column_dimensions['E'].width = 40
    return ws


def add_sheet_material_requirement(wb: Workbook, breakdowns: Mapping[str, Mapping[str, Any]]) -> Worksheet:
    """
    One section per material breakdown (steel, concrete, masonry, plaster, flooring).

    Args:
        breakdowns: Section name -> the dict returned by the matching
            `*_breakdown` function in materials.py, or `steel_breakdown`.
    """
    ws = wb.create_sheet('Material Requirement')
    headers = ['Material', 'Quantity']
    current_row = 1
    for section, values in breakdowns.items():
        current_row = write_title_and_headers(ws, section, headers, row=current_row)
        for key, value in values.items():
            if isinstance(value, float):
                value = round(value, 3)
            ws.cell(row=current_row, column=1, value=key.replace('_', ' ').title())
            ws.cell(row=current_row, column=2, value=value)
            style_data_row(ws, current_row, len(headers))
            current_row += 1
        current_row += 1

    ws.column_dimensions['A'].width = 25
    ws.column_dimensions['B'].width = 20
    return ws


def create_estimation_workbook(title: str, items: list[BarLineItem], result: OptimizationResult | None = None,
                               breakdowns: Mapping[str, Mapping[str, Any]] | None = None,
                               output_filename: str | None = None,
                               stock_length_m: float = STOCK_LENGTH_M) -> Workbook:
    """
    Builds the estimation workbook and optionally saves it.

    Args:
        title: Estimation title used in the sheet titles.
        items: Bar line items.
        result: Cutting plan; the Cutting Plan sheet is skipped without one.
        breakdowns: Material breakdowns; the Material Requirement sheet is
            skipped without them. A Steel section for `items` leads the sheet.
        output_filename: Where to save, if given.
    """
    wb = Workbook()
    add_sheet_bar_schedule(wb, title, items, stock_length_m)
    add_sheet_weight_by_diameter(wb, items)
    if result is not None:
        add_sheet_cutting_plan(wb, result)
    if breakdowns:
        if items:
            breakdowns = {'Steel': steel_breakdown(items), **breakdowns}
        add_sheet_material_requirement(wb, breakdowns)
    delete_blank_worksheets(wb)

    if output_filename:
        wb.save(output_filename)
        logger.info('Excel sheet %s has been created successfully.', output_filename)
    return wb


def delete_blank_worksheets(wb: Workbook) -> Workbook:
    """
    Deletes all blank worksheets from an Excel workbook.

    Args:
        wb: the Excel workbook.
    """
    sheets_to_delete = []

    for sheet in wb.worksheets:
        # max_row and max_column will be 1 if the sheet is empty
        if sheet.max_row == 1 and sheet.max_column == 1 and sheet.cell(row=1, column=1).value is None:
            sheets_to_delete.append(sheet)

    for sheet in sheets_to_delete:
        wb.remove(sheet)

    return wb


def write_csv(path: str, rows: Iterable[Mapping[str, Any]]) -> int:
    """Writes flat export rows (e.g. bar_schedule_rows) to a CSV file. Returns the row count."""
    rows = list(rows)
    with open(path, 'w', newline='', encoding='utf-8') as f:
        if not rows:
            return 0
        writer = csv.DictWriter(f, fieldnames=list(rows[0].keys()))
        writer.writeheader()
        writer.writerows(rows)
    logger.info('Wrote %d row(s) to %s.', len(rows), path)
    return len(rows)
