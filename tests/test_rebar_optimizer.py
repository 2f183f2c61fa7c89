"""
test_rebar_optimizer.py: Unit tests for the First-Fit Decreasing stock
cutting optimizer and its reports.

Tests cover:
  - expand_item: splitting bars longer than the stock length
  - optimize: scrap first, lower bound, diameter order, waste accounting
  - ScrapStockItem.declare: validation
  - group_cutting_patterns / purchase_summary: report shape
  - optimal_stock_count: the integer program never needs more bars than FFD
"""

import dataclasses
import logging
import math

import pytest

from errors import InvalidScrapError
from rebar_optimizer import (ScrapStockItem, expand_item, group_cutting_patterns, optimal_stock_count,
                             optimize, purchase_summary, stock_used_by_diameter)


class TestExpandItem:

    def test_long_bar_is_split(self, make_item):
        """30 m → 12 + 12 + 6."""
        pieces = expand_item(make_item(length_mm=30000))
        assert [p.length_m for p in pieces] == [12.0, 12.0, 6.0]
        assert [p.piece_index for p in pieces] == [1, 2, 3]

    def test_exact_multiple_has_no_empty_piece(self, make_item):
        assert [p.length_m for p in expand_item(make_item(length_mm=24000))] == [12.0, 12.0]

    def test_zero_length_or_count(self, make_item):
        assert expand_item(make_item(length_mm=0)) == []
        assert expand_item(make_item(count=0)) == []

    def test_remainder_below_tolerance_is_dropped(self, make_item):
        """12000.05 mm leaves 0.05 mm after one stock length, under the 0.1 mm snap."""
        assert [p.length_m for p in expand_item(make_item(length_mm=12000.05))] == [12.0]

    def test_non_finite_length_is_left_out(self, make_item, caplog):
        item = dataclasses.replace(make_item(bar_mark='INF'), cutting_length_m=float('inf'))
        with caplog.at_level(logging.ERROR, logger='rebar_optimizer'):
            assert expand_item(item) == []
        assert 'INF' in caplog.text


class TestOptimize:

    def test_overlong_bar(self, make_item):
        """One 15 m bar: a full 12 m stock bar plus 3 m from a second one (9 m left)."""
        item = make_item(bar_mark='L1', length_mm=15000)
        pieces = expand_item(item)
        assert [p.length_m for p in pieces] == [12.0, 3.0]
        assert {p.origin_mark for p in pieces} == {'L1'}
        assert {p.bar_index for p in pieces} == {0}

        result = optimize([item])
        assert result.total_stock_used == 2
        assert result.total_waste == pytest.approx(9.0)

    def test_bar_just_over_stock_length_uses_one_bar(self, make_item):
        result = optimize([make_item(length_mm=12000.05)])
        assert result.total_stock_used == 1
        assert result.total_waste == 0

    def test_exact_scrap_reuse(self, make_item):
        result = optimize([make_item(length_mm=3000)], [ScrapStockItem.declare(12, 3.0, 1)])
        assert result.total_stock_used == 0
        assert result.total_waste == 0
        assert result.by_diameter[12][0].is_scrap

    def test_scrap_used_in_declared_order(self, make_item):
        first = ScrapStockItem.declare(12, 6.0, 1, id='first')
        second = ScrapStockItem.declare(12, 4.0, 1, id='second')
        result = optimize([make_item(length_mm=3500)], [first, second])
        used = [s for s in result.by_diameter[12] if s.cuts]
        assert [s.scrap_id for s in used] == ['first']
        # The unused 4 m offcut still counts as leftover
        assert result.total_waste == pytest.approx(2.5 + 4.0)

    def test_scrap_of_other_diameter_is_ignored(self, make_item):
        result = optimize([make_item(length_mm=3000)], [ScrapStockItem.declare(16, 6.0, 2)])
        assert list(result.by_diameter) == [12]
        assert result.total_stock_used == 1
        assert result.total_waste == pytest.approx(9.0)

    def test_lower_bound(self, make_item):
        """10 × 5 m = 50 m → at least ceil(50 / 12) = 5 bars; FFD pairs them into exactly 5."""
        result = optimize([make_item(length_mm=5000, count=10)])
        assert result.total_stock_used >= math.ceil(50 / 12)
        assert result.total_stock_used == 5

    def test_diameters_largest_first(self, beam_items):
        result = optimize(beam_items)
        assert list(result.by_diameter) == [16, 12, 8]

    def test_beam_counts(self, beam_items):
        """
        Ø16: 8 × 12 m pieces + 8 × 2.568 m (4 per bar) → 10 bars.
        Ø12: 12 × 5.2 m, two per bar → 6 bars.
        Ø8: 80 × 1.612 m, seven per bar → 12 bars.
        """
        result = optimize(beam_items)
        assert stock_used_by_diameter(result) == {16: 10, 12: 6, 8: 12}
        assert result.total_stock_used == 28

    def test_every_piece_is_placed_once(self, beam_items):
        result = optimize(beam_items)
        placed = sum(len(s.cuts) for stocks in result.by_diameter.values() for s in stocks)
        assert placed == sum(len(expand_item(item)) for item in beam_items)
        for stocks in result.by_diameter.values():
            for stock in stocks:
                assert stock.remaining_m >= 0
                assert sum(c.length_m for c in stock.cuts) + stock.remaining_m == pytest.approx(stock.length_m)

    def test_scrap_inputs_are_not_modified(self, make_item):
        scrap = [ScrapStockItem.declare(12, 6.0, 2, id='s')]
        before = list(scrap)
        optimize([make_item(length_mm=2000, count=5)], scrap)
        assert scrap == before
        assert scrap[0].quantity == 2

    def test_empty_input(self):
        result = optimize([])
        assert result.by_diameter == {}
        assert result.total_stock_used == 0
        assert result.total_waste == 0


class TestScrapDeclaration:

    @pytest.mark.parametrize('length, quantity', [(0, 1), (-2, 1), (3, 0), (3, 1.5), ('abc', 1)])
    def test_invalid(self, length, quantity):
        with pytest.raises(InvalidScrapError):
            ScrapStockItem.declare(12, length, quantity)

    def test_generated_ids_are_unique(self):
        a = ScrapStockItem.declare(12, 3, 1)
        b = ScrapStockItem.declare(12, 3, 1)
        assert a.id != b.id

    def test_parses_strings(self):
        scrap = ScrapStockItem.declare('12', '2.5', '3')
        assert (scrap.diameter_mm, scrap.length_m, scrap.quantity) == (12, 2.5, 3)


class TestReports:

    def test_identical_bars_are_grouped(self, make_item):
        """12 × 5.2 m → six identical bars of 2 cuts each, one group '#1-6'."""
        groups = group_cutting_patterns(optimize([make_item('B1', length_mm=5200, count=12)]))
        assert len(groups[12]) == 1
        group = groups[12][0]
        assert group['Stock Range'] == '#1-6'
        assert group['Quantity'] == 6
        assert group['Cutting Pattern'] == ['2xB1 (5.200m)']
        assert group['Waste (m)'] == pytest.approx(1.6)

    def test_scrap_group_label(self, make_item):
        groups = group_cutting_patterns(optimize([make_item(length_mm=3000)], [ScrapStockItem.declare(12, 3.5, 1)]))
        assert groups[12][0]['Stock Range'] == 'Old (3.5m)'

    def test_purchase_summary(self, make_item):
        result = optimize([make_item(length_mm=3000, count=2)], [ScrapStockItem.declare(12, 3.5, 1)])
        row = purchase_summary(result)[0]
        assert row['New Bars'] == 1
        assert row['Scrap Bars Used'] == 1
        assert row['Waste (m)'] == pytest.approx(0.5 + 9.0)


class TestOptimalStockCount:

    def test_not_worse_than_ffd(self, beam_items):
        optimum = optimal_stock_count(beam_items)
        ffd = stock_used_by_diameter(optimize(beam_items))
        for dia, count in optimum.items():
            assert count is not None
            assert count <= ffd[dia]

    def test_known_optimum(self, make_item):
        """Four 6 m bars and four 4 m bars: 40 m total, 4 bars needed (6 + 4 each, 2 m left)."""
        items = [make_item('A', length_mm=6000, count=4), make_item('B', length_mm=4000, count=4)]
        assert optimal_stock_count(items) == {12: 4}
