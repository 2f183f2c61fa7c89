"""
Bar bending schedule line items and their weight rollups.

Every line item is an immutable record. Editing a line item means computing
a new record from the edited form; rollups are plain scans over the current
list and are recomputed on every call.
"""
import collections
import logging
import math
from dataclasses import dataclass, field, asdict
from typing import Any, Iterable, Mapping

from constants import UNIT_WEIGHTS, BINDING_WIRE_KG_PER_100KG, COVER_BLOCKS_PER_100KG
from errors import UnsupportedDiameterError
from rebar_calculations import compute_cutting_length
from shapes import ShapeRegistry
from utils import to_number, ceil_clean

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BarLineItem:
    bar_mark: str
    description: str = ''
    shape_ref: str = 'STRAIGHT'
    diameter_mm: int = 0
    dims: dict[str, float] = field(default_factory=dict)
    custom_bends: dict[str, float] | float | None = None
    no_members: float = 0
    bars_per_member: float = 0
    spacing_mm: float = 0
    span_length_mm: float = 0
    # Derived
    cutting_length_m: float = 0.0
    total_length_m: float = 0.0
    unit_weight_kg_per_m: float = 0.0
    total_weight_kg: float = 0.0

    @property
    def total_bars(self) -> float:
        return self.no_members * self.bars_per_member

    def to_form(self) -> dict[str, Any]:
        """The inputs of this item, ready to be edited and passed back to compute_item."""
        return {
            'bar_mark': self.bar_mark,
            'description': self.description,
            'shape_ref': self.shape_ref,
            'diameter_mm': self.diameter_mm,
            'dims': dict(self.dims),
            'custom_bends': dict(self.custom_bends) if isinstance(self.custom_bends, Mapping) else self.custom_bends,
            'no_members': self.no_members,
            'bars_per_member': self.bars_per_member,
            'spacing_mm': self.spacing_mm,
            'span_length_mm': self.span_length_mm,
        }

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def bars_from_span(span_length_mm: float, spacing_mm: float) -> int:
    """Bars needed to cover a span at a spacing, both ends included."""
    if span_length_mm <= 0 or spacing_mm <= 0:
        return 0
    return math.ceil(span_length_mm / spacing_mm) + 1


def lookup_unit_weight(diameter_mm: float, unit_weights: Mapping[int, float] = UNIT_WEIGHTS,
                       strict: bool = False) -> float:
    if diameter_mm in unit_weights:
        return unit_weights[diameter_mm]
    if strict:
        raise UnsupportedDiameterError(f'Diameter {diameter_mm} mm has no unit weight.')
    logger.warning('Diameter %s mm has no unit weight, its weight is reported as 0.', diameter_mm)
    return 0.0


def compute_item(form: Mapping[str, Any], registry: ShapeRegistry,
                 unit_weights: Mapping[int, float] = UNIT_WEIGHTS,
                 strict_diameter: bool = False) -> BarLineItem:
    """
    Builds a line item from a bar form.

    Args:
        form: Mapping with bar_mark, description, shape_ref, diameter_mm, dims,
            custom_bends, no_members, bars_per_member, spacing_mm, span_length_mm.
            Invalid or absent numbers are read as 0.
        registry: Shape registry used to resolve `shape_ref`.
        unit_weights: Diameter (mm) -> kg/m.
        strict_diameter: Raise UnsupportedDiameterError instead of weighing 0.

    Returns:
        A new BarLineItem with all derived fields filled in.
    """
    diameter = to_number(form.get('diameter_mm'))
    if isinstance(diameter, float) and diameter.is_integer():
        diameter = int(diameter)
    dims = {str(k): to_number(v) for k, v in (form.get('dims') or {}).items()}
    custom_bends = form.get('custom_bends')
    if isinstance(custom_bends, Mapping):
        custom_bends = {str(k): to_number(v) for k, v in custom_bends.items()}

    no_members = to_number(form.get('no_members'))
    spacing = to_number(form.get('spacing_mm'))
    span = to_number(form.get('span_length_mm'))
    if span > 0 and spacing > 0:
        bars_per_member = bars_from_span(span, spacing)
    else:
        bars_per_member = to_number(form.get('bars_per_member'))

    shape = registry.resolve(form.get('shape_ref'))
    cut_length_mm = compute_cutting_length(shape, dims, diameter, custom_bends)

    cutting_length_m = cut_length_mm / 1000
    total_length_m = cutting_length_m * no_members * bars_per_member
    unit_weight = lookup_unit_weight(diameter, unit_weights, strict_diameter)

    return BarLineItem(
        bar_mark=str(form.get('bar_mark') or ''),
        description=str(form.get('description') or ''),
        shape_ref=str(form.get('shape_ref') or shape.id),
        diameter_mm=diameter,
        dims=dims,
        custom_bends=custom_bends,
        no_members=no_members,
        bars_per_member=bars_per_member,
        spacing_mm=spacing,
        span_length_mm=span,
        cutting_length_m=cutting_length_m,
        total_length_m=total_length_m,
        unit_weight_kg_per_m=unit_weight,
        total_weight_kg=total_length_m * unit_weight,
    )


def recompute_item(item: BarLineItem, registry: ShapeRegistry,
                   unit_weights: Mapping[int, float] = UNIT_WEIGHTS,
                   strict_diameter: bool = False) -> BarLineItem:
    """Recomputes the derived fields of an existing item, e.g. after its shape was edited."""
    return compute_item(item.to_form(), registry, unit_weights, strict_diameter)


def total_steel_weight(items: Iterable[BarLineItem]) -> float:
    return sum((item.total_weight_kg for item in items), 0.0)


def weight_by_diameter(items: Iterable[BarLineItem]) -> dict[int, float]:
    """Total weight (kg) per diameter, ordered by diameter."""
    totals = collections.defaultdict(float)
    for item in items:
        totals[item.diameter_mm] += item.total_weight_kg
    return dict(sorted(totals.items()))


def steel_breakdown(items: Iterable[BarLineItem]) -> dict[str, Any]:
    """
    Steel material requirement: total bar weight, binding wire (1 kg per
    100 kg of steel) and cover blocks (3 per 100 kg, rounded up).
    """
    weight = total_steel_weight(items)
    return {
        'steel_kg': weight,
        'binding_wire_kg': weight / 100 * BINDING_WIRE_KG_PER_100KG,
        'cover_blocks': ceil_clean(weight / 100 * COVER_BLOCKS_PER_100KG),
    }


def total_length_by_diameter(items: Iterable[BarLineItem]) -> dict[int, float]:
    """Total bar length (m) per diameter, ordered by diameter."""
    totals = collections.defaultdict(float)
    for item in items:
        totals[item.diameter_mm] += item.total_length_m
    return dict(sorted(totals.items()))


def bar_schedule_rows(items: Iterable[BarLineItem]) -> list[dict[str, Any]]:
    """Flat rows for the bar bending schedule export."""
    rows = []
    for item in items:
        rows.append({
            'Bar Mark': item.bar_mark,
            'Description': item.description,
            'Shape': item.shape_ref,
            'Diameter': item.diameter_mm,
            'No. Members': item.no_members,
            'No. Bars': item.bars_per_member,
            'Total Bars': item.total_bars,
            'Cut Length (mm)': round(item.cutting_length_m * 1000),
            'Total Length (m)': round(item.total_length_m, 2),
            'Total Weight (kg)': round(item.total_weight_kg, 2),
            'Segment Lengths': '; '.join(f'{k}={v:g}' for k, v in item.dims.items()),
        })
    return rows
