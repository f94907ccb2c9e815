"""
Constants for the grid fire simulation.
Grid cells: > 0 heat, == 0 empty, < 0 wall (magnitude = hit points).
Kept apart from the engine so they can be tuned without touching the tick code.
"""

# ── Walls ────────────────────────────────────────────────────────────────────
WALL_DEFAULT_HIT_POINTS = 30.0
WALL_EROSION_PER_TICK = 1.0          # hit points lost per tick next to fire

# ── Fire sources ─────────────────────────────────────────────────────────────
SOURCE_DEFAULT_INTENSITY = 1000.0
SOURCE_GROWTH_PER_TICK = 1.0

# ── Diffusion ────────────────────────────────────────────────────────────────
# mean = sum(burning neighbours) / DIVISOR, always the full Moore neighbourhood
DIFFUSION_DIVISOR = 8.0
SELF_HEATING_PER_TICK = 1.0          # added to every cell that is burning after max()
CELL_VALUE_PRECISION = 2             # decimal places kept in the grid

MOORE_OFFSETS: tuple[tuple[int, int], ...] = (
    (-1, -1), (0, -1), (1, -1),
    (-1, 0),           (1, 0),
    (-1, 1),  (0, 1),  (1, 1),
)

# ── Trucks and water ─────────────────────────────────────────────────────────
TRUCK_DEFAULT_WATER = 2400.0         # л, tank of a standard AC
HYDRANT_REFILL_PER_TICK = 200.0      # л per tick while connected and hose closed

# ── Water jet ────────────────────────────────────────────────────────────────
SPRAY_RADIUS_CELLS = 8.0
SPRAY_SPREAD_DEG = 45.0
SPRAY_SPREAD_MAX_DEG = 45.0
SUPPRESSION_PER_CELL = 100.0         # heat removed from a wet burning cell per tick
SOURCE_SUPPRESSION_FACTOR = 0.5      # share of SUPPRESSION_PER_CELL taken from a source
CONE_ANGLE_EPSILON = 1e-9            # cells on the cone boundary count as inside
