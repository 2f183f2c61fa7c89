"""
This module serves as the single source of truth for all static
estimation data, such as bar diameters, unit weights, stock lengths and
material yield constants.
"""
import os

# --- Rebar Domain Data ---
BAR_DIAMETERS = [6, 8, 10, 12, 16, 20, 25, 32]  # mm

# Unit weight in kg per meter (d^2 / 162)
UNIT_WEIGHTS = {
    6: 0.222,
    8: 0.395,
    10: 0.617,
    12: 0.888,
    16: 1.58,
    20: 2.47,
    25: 3.85,
    32: 6.31,
}

STOCK_LENGTH_M = 12.0
SNAP_TOLERANCE_M = 1e-4

# Bend deduction as a multiple of bar diameter
BEND_FACTORS = {45: 1, 90: 2, 135: 3, 180: 4}
STANDARD_BEND_FACTOR = 2  # 90 deg
STIRRUP_HOOK_ALLOWANCE = 14  # x d

# Steel accessories per 100 kg of bars
BINDING_WIRE_KG_PER_100KG = 1
COVER_BLOCKS_PER_100KG = 3

# --- Material Yield Constants ---
CONCRETE_DRY_FACTOR = 1.54
MORTAR_DRY_FACTOR = 1.33
CEMENT_BAG_VOLUME_M3 = 0.035  # one 50 kg bag
CEMENT_BAG_KG = 50
ADHESIVE_DENSITY_KG_M3 = 1600
ADHESIVE_BAG_KG = 40
CHEMICAL_RATIO = 'CHEMICAL'

DEFAULT_MORTAR_THICKNESS_MM = 10
DEFAULT_ADHESIVE_THICKNESS_MM = 3
WALL_THICKNESS_TOLERANCE_MM = 5
DEFAULT_PLASTER_THICKNESS_MM = 12
DEFAULT_PLASTER_RATIO = '1:4'
DEFAULT_FLOORING_RATIO = '1:6'
DEFAULT_TILE_SIZE = '600x600'
DEFAULT_TILE_WASTAGE_PCT = 5
DEFAULT_BEDDING_THICKNESS_MM = 50
SLURRY_KG_PER_M2 = 3.5
GROUT_KG_PER_M2 = 50 / 70

MASONRY_MATERIALS = {
    'AAC': {'label': 'AAC Block', 'l': 600, 'w': 200, 'h': 200},
    'RED_BRICK': {'label': 'Red Brick', 'l': 190, 'w': 90, 'h': 90},
    'FLY_ASH': {'label': 'Fly Ash Brick', 'l': 230, 'w': 110, 'h': 75},
    'CUSTOM': {'label': 'Custom Size', 'l': 0, 'w': 0, 'h': 0},
}

CONCRETE_GRADES = {
    'M10': '1:3:6',
    'M15': '1:2:4',
    'M20': '1:1.5:3',
    'M25': '1:1:2',
}
DEFAULT_CONCRETE_RATIO = CONCRETE_GRADES['M20']

VERSION = '1.0.0'

# --- Application Configuration ---
DEBUG_MODE = os.environ.get('BBS_DEBUG', '').lower() in ('1', 'true', 'yes')
LOG_LEVEL = os.environ.get('BBS_LOG_LEVEL', 'DEBUG' if DEBUG_MODE else 'INFO')
