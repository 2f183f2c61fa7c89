import collections
import itertools
import logging
import math
from dataclasses import dataclass, field
from typing import Any, Iterable, Literal

import pulp

from bar_schedule import BarLineItem
from constants import STOCK_LENGTH_M, SNAP_TOLERANCE_M
from errors import InvalidScrapError
from utils import to_number

logger = logging.getLogger(__name__)

_scrap_ids = itertools.count(1)


@dataclass(frozen=True)
class ScrapStockItem:
    """Reusable offcuts of one diameter and length, declared on an estimation."""
    diameter_mm: int
    length_m: float
    quantity: int
    id: str = ''

    @classmethod
    def declare(cls, diameter_mm: Any, length_m: Any, quantity: Any, id: str | None = None) -> 'ScrapStockItem':
        """
        Validates and creates a scrap entry.

        Raises:
            InvalidScrapError: If the length is not positive or the quantity is below 1.
        """
        diameter = to_number(diameter_mm)
        length = to_number(length_m)
        qty = to_number(quantity)
        if diameter <= 0:
            raise InvalidScrapError(f'Scrap diameter must be positive, got {diameter_mm!r}.')
        if length <= 0:
            raise InvalidScrapError(f'Scrap length must be positive, got {length_m!r}.')
        if qty < 1 or int(qty) != qty:
            raise InvalidScrapError(f'Scrap quantity must be a whole number of at least 1, got {quantity!r}.')
        return cls(diameter_mm=int(diameter) if float(diameter).is_integer() else diameter,
                   length_m=length, quantity=int(qty), id=id or f'scrap-{next(_scrap_ids)}')

    def to_dict(self) -> dict[str, Any]:
        return {'id': self.id, 'diameter_mm': self.diameter_mm, 'length_m': self.length_m, 'quantity': self.quantity}


@dataclass(frozen=True)
class BarPiece:
    origin_mark: str
    bar_index: int     # which physical bar of the line item, from 0
    piece_index: int   # which stock-length part of that bar, from 1
    length_m: float


@dataclass(frozen=True)
class StockAssignment:
    source_kind: Literal['SCRAP', 'NEW']
    length_m: float
    cuts: tuple[BarPiece, ...]
    remaining_m: float
    scrap_id: str = ''

    @property
    def is_scrap(self) -> bool:
        return self.source_kind == 'SCRAP'

    def to_dict(self) -> dict[str, Any]:
        return {
            'source_kind': self.source_kind,
            'scrap_id': self.scrap_id,
            'length_m': self.length_m,
            'remaining_m': self.remaining_m,
            'cuts': [{'origin_mark': c.origin_mark, 'bar_index': c.bar_index,
                      'piece_index': c.piece_index, 'length_m': c.length_m} for c in self.cuts],
        }


@dataclass(frozen=True)
class OptimizationResult:
    by_diameter: dict[int, list[StockAssignment]] = field(default_factory=dict)
    total_stock_used: int = 0
    total_waste: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            'by_diameter': {dia: [s.to_dict() for s in stocks] for dia, stocks in self.by_diameter.items()},
            'total_stock_used': self.total_stock_used,
            'total_waste': self.total_waste,
        }


def _snap(length: float) -> float:
    return 0.0 if abs(length) < SNAP_TOLERANCE_M else length


def expand_item(item: BarLineItem, stock_length_m: float = STOCK_LENGTH_M) -> list[BarPiece]:
    """
    Expands a line item into its physical bars, splitting any bar longer than
    the stock length into consecutive stock-length pieces.
    """
    count = item.no_members * item.bars_per_member
    if count <= 0 or item.cutting_length_m <= 0:
        return []
    if not (math.isfinite(count) and math.isfinite(item.cutting_length_m)):
        logger.error('Line item %s has a non-finite length or count and is left out.', item.bar_mark)
        return []

    pieces = []
    for bar_index in range(math.ceil(count)):
        remaining = item.cutting_length_m
        piece_index = 1
        while remaining > 0:
            current = min(remaining, stock_length_m)
            pieces.append(BarPiece(item.bar_mark, bar_index, piece_index, current))
            remaining = _snap(remaining - current)
            piece_index += 1
    return pieces


def _pack_diameter(pieces: list[BarPiece], scrap: list[ScrapStockItem],
                   stock_length_m: float) -> list[StockAssignment]:
    """First-Fit Decreasing over scrap bars (in declared order) then new stock bars."""
    stock_bars = []
    for s in scrap:
        for _ in range(s.quantity):
            stock_bars.append({'kind': 'SCRAP', 'scrap_id': s.id, 'length': s.length_m,
                               'cuts': [], 'remaining': s.length_m})

    for piece in sorted(pieces, key=lambda p: p.length_m, reverse=True):
        for stock in stock_bars:
            if stock['remaining'] >= piece.length_m:
                stock['cuts'].append(piece)
                stock['remaining'] = _snap(stock['remaining'] - piece.length_m)
                break
        else:
            stock_bars.append({'kind': 'NEW', 'scrap_id': '', 'length': stock_length_m, 'cuts': [piece],
                               'remaining': _snap(stock_length_m - piece.length_m)})

    return [StockAssignment(source_kind=s['kind'], length_m=s['length'], cuts=tuple(s['cuts']),
                            remaining_m=s['remaining'], scrap_id=s['scrap_id']) for s in stock_bars]


def optimize(items: Iterable[BarLineItem], scrap_stock: Iterable[ScrapStockItem] = (),
             stock_length_m: float = STOCK_LENGTH_M) -> OptimizationResult:
    """
    Packs every physical bar of an estimation into stock bars, per diameter.

    Declared scrap is used before any new stock bar. Diameters are processed
    largest first. Scrap inputs are read, never modified.

    Args:
        items: The estimation's bar line items.
        scrap_stock: Declared offcuts.
        stock_length_m: Length of a new stock bar.

    Returns:
        The assignments per diameter, the number of new stock bars used and the
        total leftover length (scrap and new).
    """
    pieces_by_dia: dict[Any, list[BarPiece]] = collections.defaultdict(list)
    for item in items:
        pieces = expand_item(item, stock_length_m)
        if pieces:
            pieces_by_dia[item.diameter_mm].extend(pieces)

    scrap_by_dia = collections.defaultdict(list)
    for s in scrap_stock:
        scrap_by_dia[s.diameter_mm].append(s)

    by_diameter = {}
    total_stock_used = 0
    total_waste = 0.0
    for dia in sorted(pieces_by_dia, reverse=True):
        stocks = _pack_diameter(pieces_by_dia[dia], scrap_by_dia.get(dia, []), stock_length_m)
        by_diameter[dia] = stocks
        total_stock_used += sum(1 for s in stocks if not s.is_scrap and s.cuts)
        total_waste += sum(s.remaining_m for s in stocks)

    logger.info('Optimized %d diameter(s): %d new stock bar(s), %.3f m waste.',
                len(by_diameter), total_stock_used, total_waste)
    return OptimizationResult(by_diameter=by_diameter, total_stock_used=total_stock_used,
                              total_waste=total_waste)


def stock_used_by_diameter(result: OptimizationResult) -> dict[int, int]:
    return {dia: sum(1 for s in stocks if not s.is_scrap and s.cuts) for dia, stocks in result.by_diameter.items()}


def purchase_summary(result: OptimizationResult) -> list[dict[str, Any]]:
    """One row per diameter: new bars to buy, scrap bars used, and waste."""
    rows = []
    for dia, stocks in result.by_diameter.items():
        rows.append({
            'Diameter': dia,
            'New Bars': sum(1 for s in stocks if not s.is_scrap and s.cuts),
            'Scrap Bars Used': sum(1 for s in stocks if s.is_scrap and s.cuts),
            'Cut Length (m)': round(sum(c.length_m for s in stocks for c in s.cuts), 3),
            'Waste (m)': round(sum(s.remaining_m for s in stocks), 3),
        })
    return rows


def cutting_plan_rows(result: OptimizationResult) -> list[dict[str, Any]]:
    """Flat rows of the cutting plan, one per stock bar."""
    rows = []
    for dia, stocks in result.by_diameter.items():
        for idx, stock in enumerate(stocks, 1):
            stock_id = f'Old Stock ({stock.length_m:g}m)' if stock.is_scrap else idx
            rows.append({
                'Diameter': dia,
                'Stock Bar ID': stock_id,
                'Cuts': '; '.join(f'{c.origin_mark} ({c.length_m:.3f}m)' for c in stock.cuts),
                'Remaining (m)': round(stock.remaining_m, 3),
            })
    return rows


def group_cutting_patterns(result: OptimizationResult) -> dict[int, list[dict[str, Any]]]:
    """
    Collapses consecutive stock bars with the same cutting pattern into one
    entry, e.g. '#3-7' for five identical new bars.
    """
    grouped = {}
    for dia, stocks in result.by_diameter.items():
        groups = []
        for idx, stock in enumerate(stocks, 1):
            cuts_key = tuple(sorted(f'{c.length_m:.3f}' for c in stock.cuts))
            key = (stock.is_scrap, stock.length_m, f'{stock.remaining_m:.4f}', cuts_key)
            if groups and groups[-1]['key'] == key:
                groups[-1]['count'] += 1
                continue
            groups.append({'key': key, 'start_index': idx, 'count': 1, 'stock': stock})

        rows = []
        for group in groups:
            stock = group['stock']
            start, count = group['start_index'], group['count']
            if stock.is_scrap:
                label = f'Old ({stock.length_m:g}m)'
            elif count > 1:
                label = f'#{start}-{start + count - 1}'
            else:
                label = f'#{start}'
            pattern = collections.Counter((c.origin_mark, round(c.length_m, 3)) for c in stock.cuts)
            rows.append({
                'Stock Range': label,
                'Quantity': count,
                'Stock Length (m)': stock.length_m,
                'Cutting Pattern': [f'{qty}x{mark} ({length:.3f}m)' for (mark, length), qty in pattern.items()],
                'Waste (m)': round(stock.remaining_m, 3),
                'Usage (%)': round(100 * (stock.length_m - stock.remaining_m) / stock.length_m, 1)
                if stock.length_m else 0.0,
            })
        grouped[dia] = rows
    return grouped


# --- Optimality benchmark ---
# Advisory only: optimize() above produces the cutting plan. These functions
# report the minimum bar count so the plan can be compared against it.

def mm(x_m: float) -> int:
    """
    Converts a length from meters to integer millimeters to avoid floating point issues.

    Args:
        x_m: Length in meters.

    Returns:
        Length in millimeters, rounded to the nearest integer.
    """
    return int(x_m * 1000 + 0.5)


def m(x_mm: int) -> float:
    """Converts a length from integer millimeters back to meters."""
    return x_mm / 1000.0


def enumerate_patterns(stock_len_mm: int, piece_lengths_mm: list[int], max_counts: list[int]) -> list:
    """
    Enumerate integer patterns for one stock length.
    Each pattern is a tuple (counts_tuple, used_length_mm).
    """
    n = len(piece_lengths_mm)
    ub = [min(max_counts[i], stock_len_mm // piece_lengths_mm[i]) for i in range(n)]
    patterns = []

    def rec(i, cur_counts, cur_used):
        if i == n:
            if any(c > 0 for c in cur_counts):
                patterns.append((tuple(cur_counts), cur_used))
            return

        pl = piece_lengths_mm[i]
        for cnt in range(ub[i] + 1):
            new_used = cur_used + cnt * pl
            if new_used <= stock_len_mm:
                cur_counts.append(cnt)
                rec(i + 1, cur_counts, new_used)
                cur_counts.pop()
            else:
                break

    rec(0, [], 0)
    return patterns


def solve_with_pulp(piece_lengths: list[float], piece_qty: list[int],
                    stock_lengths: list[float], verbose: bool = False) -> dict[str, Any]:
    """
    Build and solve the cutting stock integer program via PuLP.

    The objective is the total purchased length, with waste as a tie-break.
    Returns a structured solution dict.
    """
    piece_mm = [mm(x) for x in piece_lengths]
    if any(p <= 0 for p in piece_mm):
        return {'status': 'NoPatterns', 'message': 'Piece lengths must be at least 1 mm.'}

    pattern_index = []
    for s in sorted(mm(x) for x in stock_lengths):
        for counts, used in enumerate_patterns(s, piece_mm, piece_qty):
            pattern_index.append({'stock_mm': s, 'counts': counts, 'used_mm': used})

    if not pattern_index:
        return {'status': 'NoPatterns',
                'message': 'No feasible patterns found. Check piece sizes and stock lengths.'}

    prob = pulp.LpProblem('rebar_cutting_stock', pulp.LpMinimize)
    y = pulp.LpVariable.dicts('pattern', range(len(pattern_index)), lowBound=0, cat='Integer')

    for i in range(len(piece_mm)):
        prob += (
            pulp.lpSum(y[j] * p['counts'][i] for j, p in enumerate(pattern_index)) >= piece_qty[i],
            f'demand_{i}'
        )

    total_purchased_mm = pulp.lpSum(y[j] * p['stock_mm'] for j, p in enumerate(pattern_index))
    total_used_mm = pulp.lpSum(y[j] * p['used_mm'] for j, p in enumerate(pattern_index))
    # Weight must exceed any possible waste so that purchased length always dominates.
    prob.setObjective((max(p['stock_mm'] for p in pattern_index) + 1) * total_purchased_mm
                      + (total_purchased_mm - total_used_mm))

    prob.solve(pulp.PULP_CBC_CMD(msg=verbose))

    if pulp.LpStatus[prob.status] != 'Optimal':
        return {'status': pulp.LpStatus[prob.status], 'message': 'Optimal solution not found.'}

    purchases = []
    final_total_purchased_mm = 0
    final_total_used_mm = 0
    for j, p in enumerate(pattern_index):
        quantity = int(round(pulp.value(y[j]) or 0))
        if quantity > 0:
            purchases.append({
                'stock_length_m': m(p['stock_mm']),
                'pattern_counts': p['counts'],
                'used_length_m': m(p['used_mm']),
                'waste_m': m(p['stock_mm'] - p['used_mm']),
                'quantity': quantity
            })
            final_total_purchased_mm += p['stock_mm'] * quantity
            final_total_used_mm += p['used_mm'] * quantity

    return {
        'status': 'Optimal',
        'total_bars': sum(p['quantity'] for p in purchases),
        'total_purchased_m': m(final_total_purchased_mm),
        'total_used_m': m(final_total_used_mm),
        'total_waste_m': m(final_total_purchased_mm - final_total_used_mm),
        'purchases': purchases,
    }


def optimal_stock_count(items: Iterable[BarLineItem], stock_length_m: float = STOCK_LENGTH_M,
                        verbose: bool = False) -> dict[int, int | None]:
    """
    Minimum number of new stock bars per diameter, ignoring scrap.

    Advisory figure for comparing against the First-Fit Decreasing plan;
    None for a diameter the solver could not settle.
    """
    demand_by_dia = collections.defaultdict(collections.Counter)
    for item in items:
        for piece in expand_item(item, stock_length_m):
            demand_by_dia[item.diameter_mm][mm(piece.length_m)] += 1

    counts = {}
    for dia in sorted(demand_by_dia, reverse=True):
        demand = sorted(demand_by_dia[dia].items())
        result = solve_with_pulp([m(length) for length, _ in demand], [qty for _, qty in demand],
                                 [stock_length_m], verbose=verbose)
        if result['status'] != 'Optimal':
            logger.warning('Could not find optimal solution for diameter %s: %s', dia, result['message'])
            counts[dia] = None
            continue
        counts[dia] = result['total_bars']
    return counts


if __name__ == '__main__':
    from shapes import ShapeRegistry
    from bar_schedule import compute_item
    from utils import setup_logging

    setup_logging()
    registry = ShapeRegistry()
    sample_items = [
        compute_item({'bar_mark': 'B1', 'shape_ref': 'STRAIGHT', 'diameter_mm': 12,
                      'dims': {'L': 5200}, 'no_members': 4, 'bars_per_member': 3}, registry),
        compute_item({'bar_mark': 'S1', 'shape_ref': 'STIRRUP', 'diameter_mm': 8,
                      'dims': {'A': 300, 'B': 450}, 'no_members': 4, 'bars_per_member': 20}, registry),
        compute_item({'bar_mark': 'C1', 'shape_ref': 'L_BEND', 'diameter_mm': 16,
                      'dims': {'A': 14000, 'B': 600}, 'no_members': 2, 'bars_per_member': 4}, registry),
    ]
    sample_scrap = [ScrapStockItem.declare(12, 5.5, 2)]

    plan = optimize(sample_items, sample_scrap)
    print(f'Total new stock bars: {plan.total_stock_used}, total waste: {plan.total_waste:.3f} m')
    for dia, rows in group_cutting_patterns(plan).items():
        print(f'\n--- Diameter {dia} mm ---')
        for row in rows:
            print(row)
    print('\nMinimum bars per diameter:', optimal_stock_count(sample_items))
