"""
test_excel_writer.py: Smoke tests for the workbook and CSV exports.
"""

import csv

import pytest
from openpyxl import Workbook, load_workbook

from bar_schedule import bar_schedule_rows, steel_breakdown
from excel_writer import create_estimation_workbook, delete_blank_worksheets, write_csv
from materials import concrete_breakdown
from rebar_optimizer import optimize


class TestEstimationWorkbook:

    def test_sheets_and_values(self, beam_items, tmp_path):
        path = tmp_path / 'estimation.xlsx'
        create_estimation_workbook('Beams', beam_items, optimize(beam_items),
                                   {'Concrete': concrete_breakdown(1.0, '1:1.5:3')}, output_filename=str(path))

        wb = load_workbook(path)
        assert wb.sheetnames == ['Bar Bending Schedule', 'Weight by Diameter', 'Cutting Plan',
                                 'Material Requirement']

        ws = wb['Bar Bending Schedule']
        assert ws['A1'].value == 'Beams Bar Bending Schedule'
        assert ws['A2'].value == 'Bar Mark'
        assert [ws.cell(row=r, column=1).value for r in (3, 4, 5)] == ['B1', 'S1', 'C1']
        assert ws.cell(row=3, column=4).value == 'Ø12'

    def test_overlong_cut_is_flagged(self, beam_items):
        """C1 (14.568 m) is longer than the 12 m stock bar."""
        ws = create_estimation_workbook('Beams', beam_items)['Bar Bending Schedule']
        cut_col = [c.value for c in ws[2]].index('Cut Length (mm)') + 1
        assert ws.cell(row=5, column=cut_col).comment is not None
        assert ws.cell(row=3, column=cut_col).comment is None

    def test_steel_section_leads_material_sheet(self, beam_items):
        wb = create_estimation_workbook('Beams', beam_items,
                                        breakdowns={'Concrete': concrete_breakdown(1.0, '1:1.5:3')})
        ws = wb['Material Requirement']
        assert ws['A1'].value == 'Steel'
        assert [ws.cell(row=r, column=1).value for r in (3, 4, 5)] == ['Steel Kg', 'Binding Wire Kg', 'Cover Blocks']
        steel = steel_breakdown(beam_items)
        assert ws['B3'].value == pytest.approx(round(steel['steel_kg'], 3))
        assert ws['B5'].value == steel['cover_blocks']
        # One blank row, then the Concrete section
        assert ws['A7'].value == 'Concrete'

    def test_optional_sheets_are_skipped(self, beam_items):
        wb = create_estimation_workbook('Beams', beam_items)
        assert wb.sheetnames == ['Bar Bending Schedule', 'Weight by Diameter']

    def test_weight_total(self, beam_items):
        ws = create_estimation_workbook('Beams', beam_items)['Weight by Diameter']
        # Rows 3-5 hold Ø8, Ø12, Ø16; row 6 is the total
        assert ws['A6'].value == 'Total'
        assert ws['C6'].value == pytest.approx(round(sum(i.total_weight_kg for i in beam_items), 2))

    def test_empty_schedule(self):
        wb = create_estimation_workbook('Empty', [])
        assert 'Bar Bending Schedule' in wb.sheetnames


class TestDeleteBlankWorksheets:

    def test_removes_only_blank(self):
        wb = Workbook()
        wb.create_sheet('Data')['A1'] = 'x'
        delete_blank_worksheets(wb)
        assert wb.sheetnames == ['Data']


class TestWriteCsv:

    def test_bar_schedule_csv(self, beam_items, tmp_path):
        path = tmp_path / 'bbs.csv'
        assert write_csv(str(path), bar_schedule_rows(beam_items)) == 3
        with open(path, newline='', encoding='utf-8') as f:
            rows = list(csv.DictReader(f))
        assert [row['Bar Mark'] for row in rows] == ['B1', 'S1', 'C1']
        assert rows[1]['Cut Length (mm)'] == '1612'

    def test_no_rows(self, tmp_path):
        path = tmp_path / 'empty.csv'
        assert write_csv(str(path), []) == 0
        assert path.read_text() == ''
