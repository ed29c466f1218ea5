"""Fixed option lists and canvas constraints recognised by the ad generator."""
from __future__ import annotations

LAYOUT_OPTIONS = [
    "Front Only",
    "Front + Back Split",
    "Multi-Angle with Side",
    "Poster with Overlays",
    "Catalog Page Layout",
    "Dynamic Action Pose",
]

ELEMENT_OPTIONS = [
    "Size Chart (S/M/L)",
    "Price Info",
    "Description Text",
    "Graphic Effects (Stars, etc.)",
    "Brand Logo Overlay",
]

PRESET_COLORS = [
    {"name": "Black", "hex": "#000000"},
    {"name": "White", "hex": "#FFFFFF"},
    {"name": "Indigo", "hex": "#4F46E5"},
    {"name": "Cyan", "hex": "#0891B2"},
    {"name": "Lime", "hex": "#65A30D"},
    {"name": "Amber", "hex": "#D97706"},
    {"name": "Red", "hex": "#DC2626"},
    {"name": "Pink", "hex": "#DB2777"},
    {"name": "Purple", "hex": "#9333EA"},
    {"name": "Gray", "hex": "#4B5563"},
]
PRESET_COLOR_NAMES = [item["name"] for item in PRESET_COLORS]

MAX_COLORS = 10
MIN_IMAGES = 1
MAX_IMAGES = 8
DEFAULT_IMAGES = 3

# The prompt service is always asked for a full batch; callers slice it down.
PROMPT_BATCH_SIZE = 8

CANVAS_WIDTH = 1080
CANVAS_HEIGHT = 1350
CANVAS_ASPECT = "4:5"
CANVAS_CONSTRAINT = (
    "Render strictly as portrait 4:5 aspect ratio at 1080x1350 pixels. "
    "No borders, no letterboxing. Fill the full canvas."
)

FILE_SLOTS = ("model", "product", "logo")

__all__ = [
    "CANVAS_ASPECT",
    "CANVAS_CONSTRAINT",
    "CANVAS_HEIGHT",
    "CANVAS_WIDTH",
    "DEFAULT_IMAGES",
    "ELEMENT_OPTIONS",
    "FILE_SLOTS",
    "LAYOUT_OPTIONS",
    "MAX_COLORS",
    "MAX_IMAGES",
    "MIN_IMAGES",
    "PRESET_COLORS",
    "PRESET_COLOR_NAMES",
    "PROMPT_BATCH_SIZE",
]
