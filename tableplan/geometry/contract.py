from __future__ import annotations

"""
Floor-Plan Geometry Contract

Single source of truth for the world plane, seat heuristics and detector
conversion defaults. All modules should import from here instead of hardcoding.
"""

# Lengths in world units; the world plane is square by default

# World plane
WORLD_W = 10.0
WORLD_H = 10.0
MAX_RADIUS = WORLD_W / 2  # round tables never exceed half the plane

# Image space
IMG_MIN = 0.0
IMG_MAX = 1.0
MANUAL_ANCHOR_COUNT = 4

# Seating
SEAT_SPACING = 0.55  # world units of table edge per seated guest
MIN_SEATS = 2
DEFAULT_SEATS = 2

# Detector conversion
MIN_DETECTION_CONFIDENCE = 0.1
LOW_CONFIDENCE_THRESHOLD = 0.5
RECOMMENDED_MIN_TABLES = 5


def max_radius(world_width: float = WORLD_W, world_height: float = WORLD_H) -> float:
    """Largest radius that fits the world plane."""
    return float(min(world_width, world_height) / 2.0)
