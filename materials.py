"""
Material quantities for concrete, masonry, plaster and flooring items.

Every calculator follows the same pattern: a wet volume from the geometry,
a dry volume from a bulking factor (1.54 for concrete, 1.33 for mortar),
and a split of the dry volume by mix ratio. Cement is reported in 50 kg
bags of 0.035 m3 each.
"""
import math
from typing import Any, Iterable, Mapping

from constants import (CONCRETE_DRY_FACTOR, MORTAR_DRY_FACTOR, CEMENT_BAG_VOLUME_M3, CEMENT_BAG_KG,
                       ADHESIVE_DENSITY_KG_M3, ADHESIVE_BAG_KG, CHEMICAL_RATIO, MASONRY_MATERIALS,
                       DEFAULT_MORTAR_THICKNESS_MM, DEFAULT_ADHESIVE_THICKNESS_MM, WALL_THICKNESS_TOLERANCE_MM,
                       DEFAULT_PLASTER_THICKNESS_MM, DEFAULT_PLASTER_RATIO, DEFAULT_FLOORING_RATIO,
                       DEFAULT_TILE_SIZE, DEFAULT_TILE_WASTAGE_PCT, DEFAULT_BEDDING_THICKNESS_MM,
                       SLURRY_KG_PER_M2, GROUT_KG_PER_M2, DEFAULT_CONCRETE_RATIO)
from utils import to_number, ceil_clean

CONCRETE_SHAPES = {
    'RECTANGLE': {'label': 'Rectangle / Cube', 'fields': ['Length', 'Width', 'Depth']},
    'TRAPEZOIDAL': {'label': 'Trapezoidal Footing',
                    'fields': ['Top Length', 'Top Width', 'Bottom Length', 'Bottom Width', 'Depth']},
    'CIRCULAR': {'label': 'Circular / Cylinder', 'fields': ['Diameter', 'Depth']},
    'AREA': {'label': 'Area Based', 'fields': ['Area', 'Thickness']},
    'TRIANGLE': {'label': 'Triangle', 'fields': ['Base', 'Height', 'Depth']},
}


# --- Ratio helpers ---

def parse_ratio(ratio: str | None) -> list[float] | None:
    """
    Parses '1:6' or '1:1.5:3' into its parts.

    Returns None for the CHEMICAL ratio and for anything malformed
    (empty parts, non-numbers, negative parts, or all parts zero).
    """
    if not isinstance(ratio, str) or ratio.strip().upper() == CHEMICAL_RATIO:
        return None
    try:
        parts = [float(p) for p in ratio.split(':')]
    except ValueError:
        return None
    if len(parts) < 2 or any(not math.isfinite(p) or p < 0 for p in parts) or sum(parts) <= 0:
        return None
    return parts


def dry_volume(wet_volume: float, factor: float = MORTAR_DRY_FACTOR) -> float:
    return wet_volume * factor


def split_by_ratio(volume: float, parts: list[float]) -> list[float]:
    """Share of `volume` for each part of a mix ratio."""
    total_parts = sum(parts)
    return [volume * p / total_parts for p in parts]


def cement_bags(cement_volume_m3: float) -> float:
    """Unrounded count of 50 kg bags."""
    return cement_volume_m3 / CEMENT_BAG_VOLUME_M3


# --- Concrete ---

def concrete_volume(shape: str, dims: Mapping[str, Any]) -> float:
    """Volume (m3) of one concrete element; unknown shapes have no volume."""
    def d(key):
        return to_number(dims.get(key))

    if shape == 'RECTANGLE':
        return d('Length') * d('Width') * d('Depth')
    if shape == 'TRAPEZOIDAL':
        a1 = d('Top Length') * d('Top Width')
        a2 = d('Bottom Length') * d('Bottom Width')
        return (d('Depth') / 3) * (a1 + a2 + math.sqrt(max(0.0, a1 * a2)))
    if shape == 'CIRCULAR':
        r = d('Diameter') / 2
        return math.pi * r * r * d('Depth')
    if shape == 'AREA':
        return d('Area') * d('Thickness')
    if shape == 'TRIANGLE':
        return 0.5 * d('Base') * d('Height') * d('Depth')
    return 0.0


def concrete_item(form: Mapping[str, Any]) -> dict[str, Any]:
    shape = form.get('shape') or 'RECTANGLE'
    count = to_number(form.get('count'), 1)
    volume = concrete_volume(shape, form.get('dims') or {})
    return {
        'description': form.get('description', ''),
        'shape': shape,
        'label': CONCRETE_SHAPES.get(shape, {}).get('label', shape),
        'dims': dict(form.get('dims') or {}),
        'count': count,
        'volume': volume,
        'quantity': volume * count,
    }


def concrete_breakdown(total_wet_volume: float, ratio: str = DEFAULT_CONCRETE_RATIO) -> dict[str, Any]:
    """
    Cement, sand and aggregate for a cement:sand:aggregate ratio.

    A ratio that does not have exactly three parts yields zero quantities
    (design mixes are not broken down).
    """
    wet = to_number(total_wet_volume)
    dry = dry_volume(wet, CONCRETE_DRY_FACTOR)
    parts = parse_ratio(ratio)
    if parts is None or len(parts) != 3:
        return {'ratio': ratio, 'wet_volume': wet, 'dry_volume': dry, 'valid_ratio': False,
                'cement_bags': 0, 'cement_m3': 0.0, 'sand_m3': 0.0, 'aggregate_m3': 0.0}
    cement, sand, aggregate = split_by_ratio(dry, parts)
    return {
        'ratio': ratio,
        'wet_volume': wet,
        'dry_volume': dry,
        'valid_ratio': True,
        'cement_bags': ceil_clean(cement_bags(cement)),
        'cement_m3': cement,
        'sand_m3': sand,
        'aggregate_m3': aggregate,
    }


# --- Masonry ---

def _opening_total(deductions: Iterable[Mapping[str, Any]] | None, depth: float = 1.0) -> float:
    return sum(to_number(d.get('l')) * to_number(d.get('h')) * depth * to_number(d.get('count'))
               for d in deductions or [])


def block_dimensions(form: Mapping[str, Any]) -> tuple[float, float, float]:
    """Block length, width and height in mm; falls back to the catalogue size of the material."""
    custom = form.get('custom_dims') or {}
    l, w, h = to_number(custom.get('l')), to_number(custom.get('w')), to_number(custom.get('h'))
    if l == 0 and w == 0 and h == 0:
        material = MASONRY_MATERIALS.get(form.get('material') or 'AAC')
        if material:
            l, w, h = material['l'], material['w'], material['h']
    return l, w, h


def calculate_masonry(form: Mapping[str, Any], default_mortar_thickness: float | None = None) -> dict[str, Any]:
    """
    Block count and mortar for one wall.

    Args:
        form: material, custom_dims {l, w, h} (mm), wall_dims {l, h, t} (m),
            mortar_ratio ('1:6' or 'CHEMICAL'), mortar_thickness (mm),
            dims_include_mortar, deductions [{l, h, count}] (m).
        default_mortar_thickness: Estimation-wide joint thickness (mm) used when
            the form leaves it blank.

    Returns:
        count, vol (net wall m3), mortar_wet, mortar_dry, chemical_weight (kg),
        chemical_bags (40 kg).
    """
    empty = {'count': 0, 'vol': 0.0, 'mortar_wet': 0.0, 'mortar_dry': 0.0,
             'chemical_weight': 0.0, 'chemical_bags': 0.0}
    mat_l, mat_w, mat_h = block_dimensions(form)
    if mat_l == 0 or mat_w == 0 or mat_h == 0:
        return empty

    wall = form.get('wall_dims') or {}
    wall_l, wall_h, wall_t = to_number(wall.get('l')), to_number(wall.get('h')), to_number(wall.get('t'))
    if wall_l == 0 or wall_h == 0 or wall_t == 0:
        return empty

    wall_vol = wall_l * wall_h * wall_t
    if form.get('deductions'):
        wall_vol = max(0.0, wall_vol - _opening_total(form['deductions'], wall_t))

    is_chemical = form.get('mortar_ratio') == CHEMICAL_RATIO
    joint = (to_number(form.get('mortar_thickness')) or to_number(default_mortar_thickness)
             or (DEFAULT_ADHESIVE_THICKNESS_MM if is_chemical else DEFAULT_MORTAR_THICKNESS_MM))

    if form.get('dims_include_mortar'):
        eff_l, eff_w, eff_h = mat_l, mat_w, mat_h
        act_l, act_w, act_h = (max(0.0, mat_l - joint), max(0.0, mat_w - joint), max(0.0, mat_h - joint))
    else:
        act_l, act_w, act_h = mat_l, mat_w, mat_h
        eff_l, eff_w, eff_h = mat_l + joint, mat_w + joint, mat_h + joint
        # The block dimension laid across the wall carries no joint
        wall_t_mm = wall_t * 1000
        if abs(wall_t_mm - mat_l) <= WALL_THICKNESS_TOLERANCE_MM:
            eff_l = mat_l
        elif abs(wall_t_mm - mat_w) <= WALL_THICKNESS_TOLERANCE_MM:
            eff_w = mat_w
        elif abs(wall_t_mm - mat_h) <= WALL_THICKNESS_TOLERANCE_MM:
            eff_h = mat_h

    unit_with_mortar = (eff_l * eff_w * eff_h) / 1e9
    count = ceil_clean(wall_vol / unit_with_mortar)
    vol_blocks = count * (act_l * act_w * act_h) / 1e9
    mortar_wet = max(0.0, wall_vol - vol_blocks)
    mortar_dry = dry_volume(mortar_wet)
    chemical_weight = 0.0
    chemical_bags = 0.0

    if is_chemical:
        joint_m = joint / 1000
        block_h_m = mat_h / 1000
        block_l_m = mat_l / 1000

        layers = wall_h / block_h_m
        horizontal_joints = max(0.0, layers - 1)
        horizontal_vol = (wall_l * wall_t) * joint_m * horizontal_joints

        blocks_per_layer = wall_l / block_l_m
        vertical_joints = max(0.0, blocks_per_layer - 1) * layers
        vertical_vol = vertical_joints * (block_h_m * wall_t * joint_m)

        chemical_weight = (horizontal_vol + vertical_vol) * ADHESIVE_DENSITY_KG_M3
        chemical_bags = chemical_weight / ADHESIVE_BAG_KG
        mortar_dry = 0.0

    return {
        'count': count,
        'vol': wall_vol,
        'mortar_wet': mortar_wet,
        'mortar_dry': mortar_dry,
        'chemical_weight': chemical_weight,
        'chemical_bags': chemical_bags,
    }


def masonry_breakdown(items: Iterable[Mapping[str, Any]]) -> dict[str, Any]:
    """
    Totals over masonry items, each a dict holding `mortar_ratio` and the
    result keys of calculate_masonry.
    """
    cement = sand = chemical = 0.0
    blocks = 0
    for item in items:
        blocks += int(to_number(item.get('count')))
        if item.get('mortar_ratio') == CHEMICAL_RATIO:
            chemical += to_number(item.get('chemical_weight'))
            continue
        parts = parse_ratio(item.get('mortar_ratio'))
        if parts is None:
            continue
        shares = split_by_ratio(to_number(item.get('mortar_dry')), parts[:2])
        cement += cement_bags(shares[0])
        sand += shares[1]
    return {
        'blocks': blocks,
        'cement_bags': ceil_clean(cement),
        'sand_m3': sand,
        'chemical_kg': ceil_clean(chemical),
        'chemical_bags': ceil_clean(chemical / ADHESIVE_BAG_KG),
    }


# --- Plaster ---

def plaster_item(form: Mapping[str, Any], default_thickness: float | None = None,
                 default_ratio: str | None = None) -> dict[str, Any]:
    """Net plaster area (openings removed) and wet mortar volume for one wall face."""
    wall = form.get('wall_dims') or {}
    area = to_number(form.get('manual_area')) or to_number(wall.get('l')) * to_number(wall.get('h'))
    net_area = max(0.0, area - _opening_total(form.get('deductions')))
    thickness = (to_number(form.get('thickness')) or to_number(default_thickness)
                 or DEFAULT_PLASTER_THICKNESS_MM)
    return {
        'description': form.get('description', ''),
        'ratio': form.get('ratio') or default_ratio or DEFAULT_PLASTER_RATIO,
        'thickness': thickness,
        'gross_area': area,
        'area': net_area,
        'volume': net_area * thickness / 1000,
    }


def plaster_breakdown(items: Iterable[Mapping[str, Any]]) -> dict[str, Any]:
    cement = sand = 0.0
    wet = 0.0
    for item in items:
        parts = parse_ratio(item.get('ratio') or DEFAULT_PLASTER_RATIO)
        volume = to_number(item.get('volume'))
        wet += volume
        if parts is None:
            continue
        shares = split_by_ratio(dry_volume(volume), parts[:2])
        cement += cement_bags(shares[0])
        sand += shares[1]
    return {'wet_volume': wet, 'dry_volume': dry_volume(wet), 'cement_bags': ceil_clean(cement), 'sand_m3': sand}


# --- Flooring ---

def parse_tile_size(tile_size: str | None) -> tuple[float, float]:
    """'600x600' (mm) -> (0.6, 0.6) m; unreadable sides default to 0.6 m."""
    sides = (tile_size or DEFAULT_TILE_SIZE).lower().split('x')
    width = to_number(sides[0]) / 1000 if sides else 0
    length = to_number(sides[1]) / 1000 if len(sides) > 1 else 0
    return width or 0.6, length or 0.6


def flooring_item(form: Mapping[str, Any]) -> dict[str, Any]:
    """Tile count (with wastage) and bedding mortar volume for one room."""
    room = form.get('room_dims') or {}
    l, w = to_number(room.get('l')), to_number(room.get('w'))
    area = to_number(form.get('manual_area')) or l * w

    tile_size = form.get('tile_size') or DEFAULT_TILE_SIZE
    tile_w, tile_l = parse_tile_size(tile_size)
    raw_tiles = area / (tile_w * tile_l)
    wastage = to_number(form.get('wastage'), DEFAULT_TILE_WASTAGE_PCT)
    tiles = ceil_clean(raw_tiles + raw_tiles * wastage / 100)

    bedding = to_number(form.get('bedding_thickness')) or DEFAULT_BEDDING_THICKNESS_MM
    return {
        'description': form.get('description', ''),
        'area': area,
        'tile_size': tile_size,
        'tile_count': tiles,
        'wastage': wastage,
        'bedding_thickness': bedding,
        'ratio': form.get('ratio') or DEFAULT_FLOORING_RATIO,
        'volume': area * bedding / 1000,
    }


def flooring_breakdown(items: Iterable[Mapping[str, Any]]) -> dict[str, Any]:
    """Tiles, bedding cement (slurry included), sand and grout for all rooms."""
    tiles = 0
    wet = cement = sand = grout = 0.0
    for item in items:
        area = to_number(item.get('area'))
        volume = to_number(item.get('volume'))
        tiles += int(to_number(item.get('tile_count')))
        wet += volume
        grout += area * GROUT_KG_PER_M2
        ratio = item.get('ratio') or DEFAULT_FLOORING_RATIO
        if ratio == CHEMICAL_RATIO:
            continue
        parts = parse_ratio(ratio)
        if parts is None:
            continue
        shares = split_by_ratio(dry_volume(volume), parts[:2])
        cement += cement_bags(shares[0]) + area * SLURRY_KG_PER_M2 / CEMENT_BAG_KG
        sand += shares[1]
    return {
        'tiles': tiles,
        'wet_volume': wet,
        'cement_bags': ceil_clean(cement),
        'sand_m3': sand,
        'grout_kg': ceil_clean(grout),
    }
