"""
conftest.py: Shared pytest fixtures for the estimation engine test suite.

All tests are pure unit tests; nothing touches the network. The Excel tests
write into pytest's `tmp_path`.

Import-path bootstrapping:
    The repository root is inserted into sys.path so the top-level modules
    resolve regardless of where pytest is invoked.
"""

import os
import sys

import pytest

_ROOT_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if _ROOT_DIR not in sys.path:
    sys.path.insert(0, _ROOT_DIR)


# ---------------------------------------------------------------------------
# Shapes
# ---------------------------------------------------------------------------

@pytest.fixture
def crank_shape_data():
    """
    Segment-based shape: A + B(x2) with two 90 deg bends.
    For d = 12: deduction = 2 × 2 × 12 = 48 mm.
    """
    return {
        'id': 'crank-1',
        'name': 'Crank',
        'type': 'SEGMENT_BASED',
        'segments': [{'label': 'A', 'multiplier': 1}, {'label': 'B', 'multiplier': 2}],
        'deductions': {'45': 0, '90': 2, '135': 0, '180': 0},
    }


@pytest.fixture
def legacy_shape_data():
    """Legacy formula shape: 2*(A+B) + 10*d, one 135 deg bend (3d)."""
    return {
        '_id': 'legacy-1',
        'name': 'Hooked loop',
        'formula': '2*(A+B) + 10*d',
        'bends': [{'angle': 135, 'count': 1}],
    }


@pytest.fixture
def registry(crank_shape_data, legacy_shape_data):
    from shapes import ShapeRegistry
    return ShapeRegistry([crank_shape_data, legacy_shape_data])


# ---------------------------------------------------------------------------
# Line items and scrap
# ---------------------------------------------------------------------------

@pytest.fixture
def beam_forms():
    """
    Three line items:
      B1: straight Ø12, 5.2 m, 4 × 3 = 12 bars
      S1: stirrup Ø8, 300 × 450 → 2(750) + 112 = 1612 mm, 4 × 20 = 80 bars
      C1: L-bend Ø16, 14000 + 600 − 32 = 14568 mm, 2 × 4 = 8 bars
    """
    return [
        {'bar_mark': 'B1', 'shape_ref': 'STRAIGHT', 'diameter_mm': 12,
         'dims': {'L': 5200}, 'no_members': 4, 'bars_per_member': 3},
        {'bar_mark': 'S1', 'shape_ref': 'STIRRUP', 'diameter_mm': 8,
         'dims': {'A': 300, 'B': 450}, 'no_members': 4, 'bars_per_member': 20},
        {'bar_mark': 'C1', 'shape_ref': 'L_BEND', 'diameter_mm': 16,
         'dims': {'A': 14000, 'B': 600}, 'no_members': 2, 'bars_per_member': 4},
    ]


@pytest.fixture
def beam_items(beam_forms, registry):
    from bar_schedule import compute_item
    return [compute_item(form, registry) for form in beam_forms]


@pytest.fixture
def make_item(registry):
    """Factory for a one-off straight or shaped line item."""
    from bar_schedule import compute_item

    def _make(bar_mark='X', length_mm=1000, diameter_mm=12, count=1, shape_ref='STRAIGHT', dims=None):
        return compute_item({
            'bar_mark': bar_mark,
            'shape_ref': shape_ref,
            'diameter_mm': diameter_mm,
            'dims': dims if dims is not None else {'L': length_mm},
            'no_members': 1,
            'bars_per_member': count,
        }, registry)

    return _make
