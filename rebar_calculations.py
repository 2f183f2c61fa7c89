import logging
import math
from typing import Any, Mapping

from constants import BEND_FACTORS, STANDARD_BEND_FACTOR, STIRRUP_HOOK_ALLOWANCE
from errors import FormulaError
from formula import evaluate_formula
from shapes import ShapeDefinition
from utils import to_number

logger = logging.getLogger(__name__)


def get_bend_deduction(bend_angle: float, bar_diameter: float) -> float:
    """Calculates the bend deduction value for a given angle. Unlisted angles deduct nothing."""
    return BEND_FACTORS.get(bend_angle, 0) * bar_diameter


def total_bend_deduction(bends: Mapping[Any, Any] | list[tuple[Any, Any]], bar_diameter: float) -> float:
    """
    Sums the deductions of several bends.

    Args:
        bends: Either {angle: count} or a list of (angle, count) pairs.
        bar_diameter: Bar diameter in mm.
    """
    pairs = bends.items() if isinstance(bends, Mapping) else bends
    total = 0.0
    for angle, count in pairs:
        total += get_bend_deduction(to_number(angle), bar_diameter) * to_number(count)
    return total


def segment_length(shape: ShapeDefinition, dims: Mapping[str, Any]) -> float:
    """Sum of segment lengths, each times its multiplier (a `<label>_mult` entry in dims wins)."""
    total = 0.0
    for segment in shape.segments:
        length = to_number(dims.get(segment.label))
        multiplier = to_number(dims.get(f'{segment.label}_mult')) or segment.multiplier or 1
        total += length * multiplier
    return total


def legacy_formula_length(shape: ShapeDefinition, dims: Mapping[str, Any], bar_diameter: float) -> float:
    """Evaluates a legacy formula shape; any failure yields 0."""
    variables = {str(k): to_number(v) for k, v in dims.items()}
    variables['d'] = variables['D'] = bar_diameter
    try:
        length = evaluate_formula(shape.formula, variables)
        if not math.isfinite(length):
            raise FormulaError('Formula result is not a finite number.')
    except FormulaError as e:
        logger.error('Formula evaluation error in shape %s (%r): %s', shape.id, shape.formula, e)
        return 0.0
    return length


def compute_cutting_length(shape: ShapeDefinition, dims: Mapping[str, Any], bar_diameter: float,
                           custom_bends: Mapping[Any, Any] | float | None = None) -> float:
    """
    Straightened length of one bar in mm.

    Args:
        shape: The resolved shape definition.
        dims: Segment label -> length in mm. Missing or invalid entries count as 0.
        bar_diameter: Bar diameter in mm.
        custom_bends: Ad-hoc bends for the generic CUSTOM shape, either
            {angle: count} or a plain count of 90 deg bends.

    Returns:
        The cutting length in mm, never negative.
    """
    length = _cutting_length(shape, dims or {}, to_number(bar_diameter), custom_bends)
    if not math.isfinite(length):
        logger.error('Cutting length of shape %s is not a finite number, reported as 0.', shape.id)
        return 0.0
    return length


def _cutting_length(shape: ShapeDefinition, dims: Mapping[str, Any], d: float,
                    custom_bends: Mapping[Any, Any] | float | None) -> float:

    if shape.kind == 'SEGMENT_BASED':
        cut_length = segment_length(shape, dims) - total_bend_deduction(shape.deductions, d)
        return max(0.0, cut_length)

    if shape.kind == 'CUSTOM_LEGACY':
        if not shape.formula:
            return 0.0
        cut_length = legacy_formula_length(shape, dims, d) - total_bend_deduction(list(shape.bends), d)
        return max(0.0, cut_length)

    if shape.kind == 'STIRRUP':
        a = to_number(dims.get('A'))
        b = to_number(dims.get('B'))
        return max(0.0, 2 * (a + b) + STIRRUP_HOOK_ALLOWANCE * d)

    sum_dims = sum(to_number(v) for v in dims.values())

    if shape.kind == 'CUSTOM':
        if isinstance(custom_bends, Mapping):
            return max(0.0, sum_dims - total_bend_deduction(custom_bends, d))
        bends = to_number(custom_bends)
    else:
        bends = shape.bend_count

    return max(0.0, sum_dims - bends * STANDARD_BEND_FACTOR * d)


def describe_shape(shape: ShapeDefinition) -> str:
    """Human readable cutting length rule, e.g. 'A + B(x2) - (2x90°(2d))'."""
    if shape.kind == 'SEGMENT_BASED':
        seg_text = ' + '.join(
            f'{s.label}(x{s.multiplier:g})' if s.multiplier > 1 else s.label for s in shape.segments)
        ded_text = ' + '.join(
            f'{count:g}x{angle}°({BEND_FACTORS[angle]}d)'
            for angle, count in sorted(shape.deductions.items()) if count > 0)
        return f'{seg_text} - ({ded_text})' if ded_text else seg_text
    if shape.kind == 'CUSTOM_LEGACY':
        return shape.formula
    if shape.kind == 'STIRRUP':
        return f'2(A + B) + {STIRRUP_HOOK_ALLOWANCE}d'
    dims_text = ' + '.join(shape.fields) or 'sum of segments'
    if shape.bend_count:
        return f'{dims_text} - {shape.bend_count}x{STANDARD_BEND_FACTOR}d'
    return dims_text
