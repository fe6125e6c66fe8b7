#!/usr/bin/env python3

"""
Gauge Scene Generator
Instrument-style gauges laid out as a retained scene of drawable primitives, rendered to PNG or SVG.
Available Gauges: attitude indicator, dial, linear bar, linear thumb; and 2-D plots with dual Y axes.

Table of Contents
   1. Setup
   2. Fundamental Functions
   3. Scene Graph
   4. Drawing Sinks
   5. Gauge Base
   6. Attitude Indicator
   7. Dial
   8. Linear Gauges
   9. Plots
   10. Panels
   11. Commands
"""

# ----------------------1. Setup----------------------------

import io
import logging
import math
import os
import re
import sys
import time
from xml.etree import ElementTree
from dataclasses import dataclass, field, fields, replace
from enum import Enum
from functools import cache
from typing import NamedTuple

import toml
from PIL import Image, ImageColor, ImageDraw, ImageFont
import drawsvg as svg
import ziamath as zm

logger = logging.getLogger(__name__)

# Angular constants:
TAU = math.tau
PI = math.pi
DEG_FULL = 360
DEG_SEMI = DEG_FULL // 2
DEG_RT = DEG_SEMI // 2

TEN = 10
FF = 255
WH = tuple[int, int]
XY = tuple[float, float]


class Color(Enum):
    WHITE, BLACK = (FF, FF, FF), (0, 0, 0)
    RED, GREEN, BLUE = (FF, 0, 0), (0, FF, 0), (0, 0, FF)
    YELLOW, CYAN, MAGENTA = (FF, FF, 0), (0, FF, FF), (FF, 0, FF)

    ORANGE = (FF, 128, 0)  # attitude ground
    GREY = (128, 128, 128)  # plot grid
    TRANSPARENT = (0, 0, 0, 0)

    @staticmethod
    @cache
    def to_pil(col_spec):
        return col_spec.value if isinstance(col_spec, Color) else col_spec

    @classmethod
    def to_rgb(cls, col) -> tuple:
        """Resolves a Color, name string, hex string, or channel sequence to a channel tuple."""
        col = cls.to_pil(col) if not isinstance(col, list) else tuple(col)
        if isinstance(col, str):
            col = cls.from_str(col)
            return cls.to_rgb(col) if isinstance(col, Color) else col
        return tuple(col)

    @classmethod
    def is_visible(cls, col) -> bool:
        if col is None:
            return False
        rgb = cls.to_rgb(col)
        return len(rgb) < 4 or rgb[3] > 0

    @classmethod
    def to_str(cls, col):
        if not cls.is_visible(col):
            return 'none'
        rgb = cls.to_rgb(col)
        return f'rgb({rgb[0]},{rgb[1]},{rgb[2]})'

    @classmethod
    def from_str(cls, color: str):
        member = getattr(cls, color.upper(), None)
        return member if isinstance(member, Color) else ImageColor.getrgb(color)

    @classmethod
    def from_spec(cls, col_spec):
        """Color as written in a config file: a name, '#rrggbb', or a list of channels."""
        if isinstance(col_spec, str):
            return cls.from_str(col_spec)
        return tuple(col_spec)

    @classmethod
    def blend(cls, *cols) -> tuple[int, int, int]:
        """Average of the red, green and blue channels of the given colors."""
        rgbs = [cls.to_rgb(col) for col in cols]
        return tuple(round(sum(rgb[i] for rgb in rgbs) / len(rgbs)) for i in range(3))

    @classmethod
    def lerp(cls, col0, col1, t: float) -> tuple[int, int, int]:
        rgb0, rgb1 = cls.to_rgb(col0), cls.to_rgb(col1)
        return tuple(round(rgb0[i] + (rgb1[i] - rgb0[i]) * t) for i in range(3))


class OutFormat(Enum):
    PNG, SVG = 'png', 'svg'


class Font:
    """Scalable fonts: Pillow's bundled default face, or a TrueType file by name."""

    @classmethod
    @cache
    def font_for(cls, font_family: str | None, fs: int):
        fs = max(1, round(fs))
        if font_family is None:
            return ImageFont.load_default(fs)
        font_name = font_family if font_family.endswith('.ttf') else font_family + '.ttf'
        return ImageFont.truetype(font_name, fs)


def is_math(text: str) -> bool:
    """Labels carrying TeX commands are typeset as math."""
    return '\\' in text


@dataclass(frozen=True)
class Style:
    font_family: str = None
    """None for the bundled default font, else a TrueType font file name"""
    font_size: int = 12
    """pixel size of tick and readout text unless a gauge sizes its own"""
    text_margin: float = 4
    """padding on every side of a text item's bounding box"""

    @classmethod
    def from_dict(cls, style_def: dict):
        return cls(**style_def)

    def font_for(self, font_size):
        return Font.font_for(self.font_family, font_size)

    @cache
    def sym_bbox(self, symbol: str, font_size) -> tuple[float, float, float, float]:
        """Glyph bounding box (x1, y1, x2, y2) relative to the left-top text anchor"""
        if is_math(symbol):
            w, h = zm.Latex(symbol, size=font_size).getsize()
            return 0, 0, w, h
        return self.font_for(font_size).getbbox(symbol, anchor='lt')

    def sym_dims(self, symbol: str, font_size) -> tuple[float, float]:
        """Gets the size dimensions (width, height) of the input text"""
        (x1, y1, x2, y2) = self.sym_bbox(symbol, font_size)
        return x2 - x1, y2 - y1


# ----------------------2. Fundamental Functions----------------------------


class Box(NamedTuple):
    """Axis-aligned rectangle with its top-left corner at (x, y)."""
    x: float
    y: float
    w: float
    h: float

    @property
    def right(self):
        return self.x + self.w

    @property
    def bottom(self):
        return self.y + self.h

    @property
    def center(self) -> XY:
        return self.x + self.w / 2, self.y + self.h / 2

    def corners(self) -> list[XY]:
        return [(self.x, self.y), (self.right, self.y), (self.right, self.bottom), (self.x, self.bottom)]

    def translated(self, dx, dy):
        return Box(self.x + dx, self.y + dy, self.w, self.h)

    def adjusted(self, margin):
        return Box(self.x - margin, self.y - margin, self.w + 2 * margin, self.h + 2 * margin)

    def united(self, other: 'Box'):
        if other is None:
            return self
        x0, y0 = min(self.x, other.x), min(self.y, other.y)
        return Box(x0, y0, max(self.right, other.right) - x0, max(self.bottom, other.bottom) - y0)

    @classmethod
    def bounding(cls, points):
        xs = [p[0] for p in points]
        ys = [p[1] for p in points]
        if not xs:
            return None
        return cls(min(xs), min(ys), max(xs) - min(xs), max(ys) - min(ys))


class Anchor(Enum):
    """Which point of a box is aligned to a target point, as fractions of the box width and height."""
    CENTER = (0.5, 0.5)
    TOP_CENTER = (0.5, 0)
    TOP_LEFT = (0, 0)
    TOP_RIGHT = (1, 0)
    BOTTOM_CENTER = (0.5, 1)
    BOTTOM_LEFT = (0, 1)
    BOTTOM_RIGHT = (1, 1)
    LEFT_CENTER = (0, 0.5)
    RIGHT_CENTER = (1, 0.5)

    def offset(self, w, h) -> XY:
        """Offset from the anchor point to the box's top-left corner."""
        fx, fy = self.value
        return -w * fx, -h * fy

    def place(self, x, y, w, h) -> XY:
        dx, dy = self.offset(w, h)
        return x + dx, y + dy


def clamp(value, lo, hi):
    return max(min(value, hi), lo)


def value_to_angle(value: float, scale_start: float, total_range: float, low_angle: float, high_angle: float):
    """Angle in degrees (0 to the right, counter-clockwise positive) of a value along an angular scale.
    The value is not clamped; callers clamp first when they need to."""
    if total_range == 0:
        return low_angle
    return low_angle + (value - scale_start) / total_range * (high_angle - low_angle)


def value_to_pixel(value: float, scale_start: float, total_range: float, pixel_extent: float, vertical=False):
    """Pixel coordinate of a value along a linear scale, clamped to the scale.
    Vertical scales are inverted so that larger values are higher up."""
    value = clamp(value, scale_start, scale_start + total_range)
    pixel = 0 if total_range == 0 else (value - scale_start) / total_range * pixel_extent
    return pixel_extent - pixel if vertical else pixel


def scale_range_to_angle_range(scale_range: float, total_range: float, low_angle: float, high_angle: float):
    """Angular sweep covered by a span of the scale."""
    if total_range == 0:
        return 0.0
    return abs(high_angle - low_angle) * scale_range / total_range


def scale_range_to_pixel_range(scale_range: float, total_range: float, pixel_extent: float):
    if total_range == 0:
        return 0.0
    return pixel_extent * scale_range / total_range


def normalize_roll(roll: float) -> float:
    """Roll angle in (-180, 180]"""
    roll = math.fmod(roll, DEG_FULL)
    if roll > DEG_SEMI:
        roll -= DEG_FULL
    elif roll <= -DEG_SEMI:
        roll += DEG_FULL
    return roll


def normalize_yaw(yaw: float) -> float:
    """Yaw angle in [0, 360)"""
    return yaw % DEG_FULL


EPSILON = 1e-9


def is_multiple(value: float, spacing: float) -> bool:
    rem = math.fmod(value, spacing)
    return abs(rem) < EPSILON * max(1.0, abs(value)) or abs(abs(rem) - spacing) < EPSILON * max(1.0, abs(value))


def aligned_steps(start: float, end: float, spacing: float):
    """Values at multiples of spacing from start (truncated toward zero onto the spacing grid) up to end."""
    if spacing <= 0:
        return
    first = start - math.fmod(start, spacing)
    i = 0
    while (value := first + i * spacing) <= end + EPSILON:
        yield round(value, 9) + 0.0
        i += 1


def scale_steps(start: float, end: float, spacing: float):
    """Tick values from start to end inclusive, every spacing."""
    if spacing <= 0:
        return
    i = 0
    while (value := start + i * spacing) <= end + EPSILON * max(1.0, abs(end)):
        yield value
        i += 1


NICE_MULTIPLIERS = ((5.001, TEN), (4.001, 5), (2.001, 4), (1.001, 2))


def nice_tick_spacing(num_ticks: int, max_value: float) -> tuple[float, int]:
    """
    Round-number spacing covering max_value in num_ticks ticks, and the decimal digits it needs.
    :param num_ticks: desired count of tick intervals
    :param max_value: extent of the value range to cover
    :return: (spacing, digits) with spacing one of {1, 2, 4, 5} times a power of ten
    """
    if max_value <= 0 or num_ticks <= 0:
        return 1.0, 0
    quotient = max_value / num_ticks
    place = 0
    while quotient > TEN:
        quotient /= TEN
        place += 1
    while quotient < 1:
        quotient *= TEN
        place -= 1
    multiplier = next((m for threshold, m in NICE_MULTIPLIERS if quotient > threshold), 1)
    if multiplier == TEN:
        multiplier = 1
        place += 1
    digits = 0 if place > 0 else -place
    return round(multiplier * math.pow(TEN, place), digits), digits


@dataclass(frozen=True)
class TickRange:
    start: float
    end: float
    num_ticks: int
    digits: int

    @property
    def spacing(self):
        return (self.end - self.start) / self.num_ticks if self.num_ticks else 0.0

    @property
    def span(self):
        return self.end - self.start

    def values(self):
        return [self.start + i * self.spacing for i in range(self.num_ticks + 1)]

    @classmethod
    def unit(cls, num_ticks=0):
        """Default unit range for data with nothing to scale."""
        return cls(0.0, 1.0, num_ticks, 0)


def tick_range(min_value: float, max_value: float, num_ticks: int) -> TickRange:
    """Nice tick range with a fixed tick count, starting at or below min_value."""
    spacing, digits = nice_tick_spacing(num_ticks, abs(max_value - min_value))
    if spacing < 1e-6:
        spacing, digits = 0.1, 1
    rem = min_value % spacing
    # A start already on the grid can leave a remainder just short of a whole spacing
    if abs(rem - spacing) < EPSILON * max(1.0, abs(min_value)):
        rem = 0
    start = round(min_value - rem, digits)
    return TickRange(start, round(start + max(num_ticks, 0) * spacing, digits), max(num_ticks, 0), digits)


def tick_range_fit(min_value: float, max_value: float, num_ticks: int) -> TickRange:
    """Nice tick range whose tick count is recomputed so the end just reaches max_value."""
    fixed = tick_range(min_value, max_value, num_ticks)
    if fixed.num_ticks <= 0:
        return fixed
    step = fixed.spacing if max_value >= min_value else -fixed.spacing
    count = 0
    while (fixed.start + count * step - max_value) / step < -EPSILON:
        count += 1
    return TickRange(fixed.start, round(fixed.start + count * step, fixed.digits), count, fixed.digits)


def format_number(value: float, precision: int) -> str:
    return f'{value + 0.0:.{max(0, precision)}f}'


# ----------------------3. Scene Graph----------------------------


@dataclass(frozen=True)
class Transform:
    """2-D affine transform mapping (x, y) to (a*x + c*y + e, b*x + d*y + f).

    rotated, translated and scaled act on the local coordinate system, so the operation added last
    is the first one applied to points (rotate then translate moves along the rotated axes).
    """
    a: float = 1
    b: float = 0
    c: float = 0
    d: float = 1
    e: float = 0
    f: float = 0

    def compose(self, inner: 'Transform') -> 'Transform':
        """The transform applying inner first, then self."""
        return Transform(self.a * inner.a + self.c * inner.b,
                         self.b * inner.a + self.d * inner.b,
                         self.a * inner.c + self.c * inner.d,
                         self.b * inner.c + self.d * inner.d,
                         self.a * inner.e + self.c * inner.f + self.e,
                         self.b * inner.e + self.d * inner.f + self.f)

    def rotated(self, degrees: float):
        """Rotation by degrees, clockwise on screen since y grows downward."""
        rad = math.radians(degrees)
        cos, sin = math.cos(rad), math.sin(rad)
        return self.compose(Transform(cos, sin, -sin, cos, 0, 0))

    def translated(self, dx: float, dy: float):
        return self.compose(Transform(1, 0, 0, 1, dx, dy))

    def scaled(self, sx: float, sy: float = None):
        return self.compose(Transform(sx, 0, 0, sx if sy is None else sy, 0, 0))

    def map(self, x: float, y: float) -> XY:
        return self.a * x + self.c * y + self.e, self.b * x + self.d * y + self.f

    def map_points(self, points) -> list[XY]:
        return [self.map(x, y) for (x, y) in points]

    def map_box(self, box: Box) -> Box:
        return Box.bounding(self.map_points(box.corners()))

    @property
    def is_identity(self):
        return self == IDENTITY

    @property
    def is_axis_aligned(self):
        return self.b == 0 and self.c == 0

    @property
    def rotation(self) -> float:
        return math.degrees(math.atan2(self.b, self.a))

    @property
    def scale_factor(self) -> float:
        return math.sqrt(abs(self.a * self.d - self.b * self.c))

    def to_svg(self):
        return f'matrix({self.a:g},{self.b:g},{self.c:g},{self.d:g},{self.e:g},{self.f:g})'


IDENTITY = Transform()


class Cap(Enum):
    FLAT, SQUARE, ROUND = 'butt', 'square', 'round'


@dataclass(frozen=True)
class Pen:
    color: object = Color.BLACK
    width: float = 1.0
    cap: Cap = Cap.SQUARE


@dataclass(frozen=True)
class Gradient:
    """Linear gradient brush between two points in the item's coordinates."""
    x0: float
    y0: float
    x1: float
    y1: float
    start_color: object
    end_color: object = Color.BLACK

    def color_at(self, t: float):
        return Color.lerp(self.start_color, self.end_color, clamp(t, 0, 1))


ARC_STEP_DEG = 2


class Path:
    """Drawing commands: move, line, elliptical arc and close, in the manner of a painter path.

    Arcs follow the screen convention where 0 degrees points right and angles grow counter-clockwise.
    """

    def __init__(self):
        self.commands: list[tuple] = []
        self.current: XY = (0, 0)

    def __len__(self):
        return len(self.commands)

    def move_to(self, x, y):
        self.commands.append(('M', x, y))
        self.current = (x, y)
        return self

    def line_to(self, x, y):
        self.commands.append(('L', x, y))
        self.current = (x, y)
        return self

    def close(self):
        self.commands.append(('Z',))
        return self

    def add_line(self, x0, y0, x1, y1):
        return self.move_to(x0, y0).line_to(x1, y1)

    def add_polygon(self, points):
        self.move_to(*points[0])
        for pt in points[1:]:
            self.line_to(*pt)
        return self.close()

    @staticmethod
    def arc_point(box: Box, angle: float) -> XY:
        """Point on the ellipse inscribed in box at the given angle"""
        rad = math.radians(angle)
        cx, cy = box.center
        return cx + box.w / 2 * math.cos(rad), cy - box.h / 2 * math.sin(rad)

    def arc_move_to(self, box: Box, angle: float):
        return self.move_to(*self.arc_point(box, angle))

    def arc_to(self, box: Box, start_angle: float, sweep: float):
        """Line to the start of the arc, then the arc itself"""
        self.line_to(*self.arc_point(box, start_angle))
        self.commands.append(('A', box, start_angle, sweep))
        self.current = self.arc_point(box, start_angle + sweep)
        return self

    def subpaths(self) -> list[tuple[list[XY], bool]]:
        """Flattened point lists, each with whether it is closed"""
        result = []
        points: list[XY] = []
        for cmd in self.commands:
            op = cmd[0]
            if op == 'M':
                if len(points) > 1:
                    result.append((points, False))
                points = [(cmd[1], cmd[2])]
            elif op == 'L':
                points.append((cmd[1], cmd[2]))
            elif op == 'A':
                box, start, sweep = cmd[1:]
                n = max(1, math.ceil(abs(sweep) / ARC_STEP_DEG))
                points.extend(self.arc_point(box, start + sweep * i / n) for i in range(1, n + 1))
            elif op == 'Z':
                if points:
                    result.append((points, True))
                    points = [points[0]]
        if len(points) > 1:
            result.append((points, False))
        return result

    def bounding_box(self, pen_width: float = 0) -> Box | None:
        box = Box.bounding([pt for pts, _ in self.subpaths() for pt in pts])
        return box.adjusted(pen_width / 2) if box and pen_width else box


@dataclass(eq=False)
class Item:
    """A drawable handle in a scene. Children are drawn after, and transformed with, their parent."""
    z: float = 0
    transform: Transform = IDENTITY
    children: list['Item'] = field(default_factory=list)
    parent: 'Item' = field(default=None, repr=False)

    def add_child(self, child: 'Item'):
        child.parent = self
        self.children.append(child)
        return child

    def scene_transform(self) -> Transform:
        t = self.transform
        node = self.parent
        while node is not None:
            t = node.transform.compose(t)
            node = node.parent
        return t

    def descendants(self):
        for child in self.children:
            yield child
            yield from child.descendants()

    def local_box(self) -> Box | None:
        return None

    def shape(self) -> tuple:
        """Geometry and paint, for comparing one build of a scene with another"""
        return ()


@dataclass(eq=False)
class GroupItem(Item):
    pass


@dataclass(eq=False)
class PathItem(Item):
    path: Path = None
    pen: Pen = None
    brush: object = None

    def local_box(self):
        return self.path.bounding_box(self.pen.width if self.pen else 0)

    def shape(self):
        return 'path', tuple(self.path.commands), self.pen, self.brush


@dataclass(eq=False)
class PolygonItem(Item):
    points: list[XY] = field(default_factory=list)
    pen: Pen = None
    brush: object = None

    def local_box(self):
        return Box.bounding(self.points)

    def shape(self):
        return 'polygon', tuple(self.points), self.pen, self.brush


@dataclass(eq=False)
class RectItem(Item):
    box: Box = None
    pen: Pen = None
    brush: object = None
    radius: float = 0

    def local_box(self):
        return self.box

    def shape(self):
        return 'rect', self.box, self.radius, self.pen, self.brush


@dataclass(eq=False)
class EllipseItem(Item):
    box: Box = None
    pen: Pen = None
    brush: object = None

    def local_box(self):
        return self.box

    def shape(self):
        return 'ellipse', self.box, self.pen, self.brush


@dataclass(eq=False)
class TextItem(Item):
    """Text run whose bounding box, glyphs plus margin, has its top-left corner at (x, y)."""
    text: str = ''
    font_size: float = 12
    color: object = Color.BLACK
    x: float = 0
    y: float = 0
    w: float = 0
    h: float = 0
    margin: float = 0

    def place(self, x: float, y: float, anchor: Anchor = Anchor.TOP_LEFT):
        self.x, self.y = anchor.place(x, y, self.w, self.h)
        return self

    def local_box(self):
        return Box(self.x, self.y, self.w, self.h)

    @property
    def glyph_w(self):
        return self.w - 2 * self.margin

    @property
    def glyph_h(self):
        return self.h - 2 * self.margin

    def shape(self):
        return 'text', self.text, self.font_size, self.color, round(self.x, 6), round(self.y, 6)


class Scene:
    """Arena of the drawable items owned by one gauge or plot.

    Items that an incremental update replaces are tracked in named slots. Removing an item takes its
    children with it, and the transform of a parent applies to all its children.
    """

    def __init__(self, style: Style = None):
        self.style = style or Style()
        self.items: list[Item] = []
        self.slots: dict[str, Item] = {}
        self.rect = Box(0, 0, 0, 0)
        self.background = Color.TRANSPARENT
        self.view_transform: Transform = None

    def __getitem__(self, slot: str) -> Item | None:
        return self.slots.get(slot)

    def __len__(self):
        return sum(1 for _ in self.walk())

    def clear(self):
        self.items.clear()
        self.slots.clear()
        self.view_transform = None

    def add(self, item: Item, parent: Item = None, slot: str = None):
        """Adds an item, replacing whatever held the slot before."""
        if slot is not None:
            self.remove_slot(slot)
            self.slots[slot] = item
        if parent is None:
            self.items.append(item)
        else:
            parent.add_child(item)
        return item

    def remove(self, item: Item):
        if item.parent is not None:
            item.parent.children.remove(item)
            item.parent = None
        elif item in self.items:
            self.items.remove(item)
        gone = {id(item)} | {id(child) for child in item.descendants()}
        for slot in [k for k, v in self.slots.items() if id(v) in gone]:
            del self.slots[slot]

    def remove_slot(self, slot: str):
        item = self.slots.pop(slot, None)
        if item is not None:
            self.remove(item)

    def set_transform(self, item: Item, transform: Transform):
        item.transform = transform

    def text(self, text: str, font_size=None, color=Color.BLACK) -> TextItem:
        """A text item sized for this scene's style, at the origin until placed"""
        font_size = font_size or self.style.font_size
        w, h = self.style.sym_dims(text, font_size)
        margin = self.style.text_margin
        return TextItem(text=text, font_size=font_size, color=color, w=w + 2 * margin, h=h + 2 * margin, margin=margin)

    @staticmethod
    def stacked(items: list[Item]) -> list[Item]:
        indexed = sorted(enumerate(items), key=lambda pair: (pair[1].z, pair[0]))
        return [item for _, item in indexed]

    def walk(self, items=None, transform: Transform = IDENTITY):
        """Items in drawing order, each with its transform to scene coordinates"""
        for item in self.stacked(self.items if items is None else items):
            t = transform.compose(item.transform)
            yield item, t
            yield from self.walk(item.children, t)

    def items_bounding_box(self) -> Box | None:
        result = None
        for item, t in self.walk():
            box = item.local_box()
            if box is not None:
                result = t.map_box(box).united(result)
        return result

    def snapshot(self) -> list[tuple]:
        return [(item.shape(), t) for item, t in self.walk()]


# ----------------------4. Drawing Sinks----------------------------


DEBUG = False
GRADIENT_BANDS = 64


class Out:
    """A drawing surface receiving scene items with their transforms to output coordinates."""

    def __init__(self, r, style: Style = None):
        self.r = r
        self.style = style or Style()

    def begin_clip(self, box: Box): pass
    def end_clip(self): pass
    def fill_background(self, box: Box, col): pass
    def draw_path(self, path: Path, pen: Pen, brush, t: Transform): pass
    def draw_polygon(self, points: list[XY], pen: Pen, brush, t: Transform): pass
    def draw_rect(self, box: Box, radius: float, pen: Pen, brush, t: Transform): pass
    def draw_ellipse(self, box: Box, pen: Pen, brush, t: Transform): pass
    def draw_text(self, item: TextItem, t: Transform): pass
    def draw_latex(self, item: TextItem, t: Transform): pass

    def draw_item(self, item: Item, t: Transform):
        if isinstance(item, PathItem):
            self.draw_path(item.path, item.pen, item.brush, t)
        elif isinstance(item, PolygonItem):
            self.draw_polygon(item.points, item.pen, item.brush, t)
        elif isinstance(item, RectItem):
            self.draw_rect(item.box, item.radius, item.pen, item.brush, t)
        elif isinstance(item, EllipseItem):
            self.draw_ellipse(item.box, item.pen, item.brush, t)
        elif isinstance(item, TextItem) and item.text:
            if is_math(item.text):
                self.draw_latex(item, t)
            else:
                self.draw_text(item, t)
            if DEBUG:
                self.draw_rect(item.local_box(), 0, Pen(Color.MAGENTA), None, t)


def ellipse_points(box: Box) -> list[XY]:
    n = DEG_FULL // ARC_STEP_DEG
    return [Path.arc_point(box, i * ARC_STEP_DEG) for i in range(n)]


class RasterOut(Out):
    r: ImageDraw.ImageDraw = None
    img: Image.Image = None
    clip: tuple = None

    @classmethod
    def for_image(cls, i: Image.Image, style: Style = None):
        out = cls(ImageDraw.Draw(i), style)
        out.img = i
        return out

    def begin_clip(self, box: Box):
        """Draws onto a transparent layer until end_clip composites the part of it within box"""
        self.clip = (self.img, box)
        self.img = Image.new('RGBA', self.img.size, (0, 0, 0, 0))
        self.r = ImageDraw.Draw(self.img)

    def end_clip(self):
        base, box = self.clip
        x0, y0 = max(0, round(box.x)), max(0, round(box.y))
        x1, y1 = min(base.width, round(box.right)), min(base.height, round(box.bottom))
        if x1 > x0 and y1 > y0:
            region = self.img.crop((x0, y0, x1, y1))
            if base.mode == 'RGBA':
                base.alpha_composite(region, (x0, y0))
            else:
                base.paste(region, (x0, y0), region)
        self.img, self.r, self.clip = base, ImageDraw.Draw(base), None

    @staticmethod
    def pen_width(pen: Pen, t: Transform) -> int:
        return max(1, round(pen.width * t.scale_factor))

    def fill_background(self, box: Box, col):
        if Color.is_visible(col):
            self.r.rectangle((box.x, box.y, box.right - 1, box.bottom - 1), fill=Color.to_pil(col))

    def fill_points(self, points: list[XY], brush, t: Transform):
        if isinstance(brush, Gradient):
            self.fill_gradient(points, brush, t)
        elif Color.is_visible(brush) and len(points) > 2:
            self.r.polygon(points, fill=Color.to_rgb(brush))

    def stroke_points(self, points: list[XY], closed: bool, pen: Pen, t: Transform):
        if pen is None or not Color.is_visible(pen.color) or len(points) < 2:
            return
        if closed:
            points = points + [points[0]]
        self.r.line(points, fill=Color.to_rgb(pen.color), width=self.pen_width(pen, t), joint='curve')

    def fill_gradient(self, points: list[XY], gradient: Gradient, t: Transform):
        """Bands of interpolated color across the gradient axis, masked by the outline"""
        x0, y0 = t.map(gradient.x0, gradient.y0)
        x1, y1 = t.map(gradient.x1, gradient.y1)
        span = math.hypot(x1 - x0, y1 - y0)
        layer = Image.new('RGB', self.img.size, Color.to_rgb(gradient.end_color))
        draw = ImageDraw.Draw(layer)
        if span > 0:
            ux, uy = (x1 - x0) / span, (y1 - y0) / span
            far = math.hypot(*self.img.size) * 2
            for band in range(-1, GRADIENT_BANDS):
                s0 = -far if band < 0 else span * band / GRADIENT_BANDS
                s1 = span * (band + 1) / GRADIENT_BANDS
                quad = [(x0 + ux * s - uy * w, y0 + uy * s + ux * w) for (s, w) in
                        ((s0, -far), (s1, -far), (s1, far), (s0, far))]
                draw.polygon(quad, fill=gradient.color_at(max(band, 0) / GRADIENT_BANDS))
        mask = Image.new('L', self.img.size, 0)
        ImageDraw.Draw(mask).polygon(points, fill=FF)
        self.img.paste(layer, (0, 0), mask)

    def draw_path(self, path: Path, pen: Pen, brush, t: Transform):
        for points, closed in path.subpaths():
            points = t.map_points(points)
            if brush is not None and closed:
                self.fill_points(points, brush, t)
            self.stroke_points(points, closed, pen, t)

    def draw_polygon(self, points: list[XY], pen: Pen, brush, t: Transform):
        points = t.map_points(points)
        if brush is not None:
            self.fill_points(points, brush, t)
        self.stroke_points(points, True, pen, t)

    def draw_rect(self, box: Box, radius: float, pen: Pen, brush, t: Transform):
        if radius > 0 and t.is_axis_aligned and not isinstance(brush, Gradient):
            (x0, y0), (x1, y1) = t.map(box.x, box.y), t.map(box.right, box.bottom)
            outline = Color.to_rgb(pen.color) if pen and Color.is_visible(pen.color) else None
            fill = Color.to_rgb(brush) if Color.is_visible(brush) else None
            self.r.rounded_rectangle((min(x0, x1), min(y0, y1), max(x0, x1), max(y0, y1)),
                                     radius * t.scale_factor, fill=fill, outline=outline,
                                     width=self.pen_width(pen, t) if pen else 1)
        else:
            self.draw_polygon(box.corners(), pen, brush, t)

    def draw_ellipse(self, box: Box, pen: Pen, brush, t: Transform):
        self.draw_polygon(ellipse_points(box), pen, brush, t)

    def text_layer(self, item: TextItem, font_size) -> Image.Image:
        font = self.style.font_for(font_size)
        x1, y1, x2, y2 = font.getbbox(item.text, anchor='lt')
        layer = Image.new('RGBA', (max(1, math.ceil(x2 - x1)), max(1, math.ceil(y2 - y1))), (0, 0, 0, 0))
        ImageDraw.Draw(layer).text((-x1, -y1), item.text, font=font, fill=Color.to_rgb(item.color), anchor='lt')
        return layer

    def paste_layer(self, layer: Image.Image, item: TextItem, t: Transform):
        """Places a rendered glyph layer so that its center lands on the mapped center of the glyph box"""
        cx, cy = t.map(item.x + item.w / 2, item.y + item.h / 2)
        if not t.is_axis_aligned:
            layer = layer.rotate(-t.rotation, resample=Image.BICUBIC, expand=True)
        self.img.paste(layer, (round(cx - layer.width / 2), round(cy - layer.height / 2)), layer)

    def draw_text(self, item: TextItem, t: Transform):
        font_size = item.font_size * t.scale_factor
        if t.is_axis_aligned:
            font = self.style.font_for(font_size)
            x1, y1, _, _ = font.getbbox(item.text, anchor='lt')
            x, y = t.map(item.x + item.margin, item.y + item.margin)
            self.r.text((x - x1, y - y1), item.text, font=font, fill=Color.to_rgb(item.color), anchor='lt')
        else:
            self.paste_layer(self.text_layer(item, font_size), item, t)

    def draw_latex(self, item: TextItem, t: Transform):
        import cairosvg
        latex = zm.Latex(item.text, size=item.font_size * t.scale_factor, color=Color.to_str(item.color))
        png_bytes = cairosvg.svg2png(latex.svg())
        self.paste_layer(Image.open(io.BytesIO(png_bytes)).convert('RGBA'), item, t)


class SVGOut(Out):
    r: svg.Drawing = None
    clip: svg.Drawing = None

    @classmethod
    def for_drawing(cls, i: svg.Drawing, style: Style = None):
        return cls(i, style)

    def begin_clip(self, box: Box):
        """Collects elements into a group clipped to box until end_clip"""
        clip_path = svg.ClipPath()
        clip_path.append(svg.Rectangle(box.x, box.y, box.w, box.h))
        self.clip = self.r
        self.r = svg.Group(clip_path=clip_path)

    def end_clip(self):
        group, self.r, self.clip = self.r, self.clip, None
        self.r.append(group)

    @staticmethod
    def transform_args(t: Transform) -> dict:
        return {} if t.is_identity else {'transform': t.to_svg()}

    def paint_args(self, pen: Pen, brush) -> dict:
        args = {}
        if isinstance(brush, Gradient):
            gradient = svg.LinearGradient(brush.x0, brush.y0, brush.x1, brush.y1, gradientUnits='userSpaceOnUse')
            gradient.add_stop(0, Color.to_str(brush.start_color))
            gradient.add_stop(1, Color.to_str(brush.end_color))
            args['fill'] = gradient
        else:
            args['fill'] = Color.to_str(brush)
        if pen is not None and Color.is_visible(pen.color):
            args.update(stroke=Color.to_str(pen.color), stroke_width=pen.width, stroke_linecap=pen.cap.value)
        return args

    def fill_background(self, box: Box, col):
        if Color.is_visible(col):
            self.r.append(svg.Rectangle(box.x, box.y, box.w, box.h, fill=Color.to_str(col)))

    def draw_path(self, path: Path, pen: Pen, brush, t: Transform):
        p = svg.Path(**self.paint_args(pen, brush), **self.transform_args(t))
        for cmd in path.commands:
            op = cmd[0]
            if op == 'M':
                p.M(cmd[1], cmd[2])
            elif op == 'L':
                p.L(cmd[1], cmd[2])
            elif op == 'Z':
                p.Z()
            elif op == 'A':
                box, start, sweep = cmd[1:]
                # SVG arcs cannot cover a full turn, so go at most half a turn at a time
                n = max(1, math.ceil(abs(sweep) / DEG_SEMI))
                for i in range(1, n + 1):
                    ex, ey = Path.arc_point(box, start + sweep * i / n)
                    p.A(box.w / 2, box.h / 2, 0, 0, 0 if sweep > 0 else 1, ex, ey)
        self.r.append(p)

    def draw_polygon(self, points: list[XY], pen: Pen, brush, t: Transform):
        coords = [c for pt in points for c in pt]
        self.r.append(svg.Lines(*coords, close=True, **self.paint_args(pen, brush), **self.transform_args(t)))

    def draw_rect(self, box: Box, radius: float, pen: Pen, brush, t: Transform):
        extra = {'rx': radius, 'ry': radius} if radius > 0 else {}
        self.r.append(svg.Rectangle(box.x, box.y, box.w, box.h, **extra,
                                    **self.paint_args(pen, brush), **self.transform_args(t)))

    def draw_ellipse(self, box: Box, pen: Pen, brush, t: Transform):
        cx, cy = box.center
        self.r.append(svg.Ellipse(cx, cy, box.w / 2, box.h / 2,
                                  **self.paint_args(pen, brush), **self.transform_args(t)))

    def draw_text(self, item: TextItem, t: Transform):
        font_family = self.style.font_family or 'sans-serif'
        self.r.append(svg.Text(item.text, item.font_size, item.x + item.margin, item.y + item.margin,
                               font_family=font_family, fill=Color.to_str(item.color),
                               text_anchor='start', dominant_baseline='hanging', **self.transform_args(t)))

    def draw_latex(self, item: TextItem, t: Transform):
        latex = zm.Latex(item.text, size=item.font_size)
        latex_svg = latex.svgxml()
        latex_svg.set('x', str(item.x + item.margin))
        latex_svg.set('y', str(item.y + item.margin))
        latex_svg.set('fill', Color.to_str(item.color))
        desc = latex_svg.makeelement('desc', {})
        desc.text = latex.latex
        latex_svg.append(desc)
        group = svg.Group(**self.transform_args(t))
        group.append(svg.Raw(ElementTree.tostring(latex_svg, encoding='unicode')))
        self.r.append(group)


@dataclass(frozen=True)
class Renderer:
    r: Out = None
    style: Style = None

    @classmethod
    def to_image(cls, i, s: Style = None):
        s = s or Style()
        out = None
        if isinstance(i, Image.Image):
            out = RasterOut.for_image(i, s)
        elif isinstance(i, svg.Drawing):
            out = SVGOut.for_drawing(i, s)
        return cls(out, s)

    def draw_scene(self, scene: Scene, x_off: float = 0, y_off: float = 0):
        """Draws every item of the scene with the scene's view placed at (x_off, y_off), clipped to the view"""
        view = scene.view_transform or IDENTITY.translated(-scene.rect.x, -scene.rect.y)
        view = IDENTITY.translated(x_off, y_off).compose(view)
        area = Box(x_off, y_off, scene.rect.w, scene.rect.h)
        # Text was measured with the scene's fonts
        self.r.style = scene.style
        self.r.begin_clip(area)
        self.r.fill_background(area, scene.background)
        for item, t in scene.walk():
            self.r.draw_item(item, view.compose(t))
        self.r.end_clip()


# ----------------------5. Gauge Base----------------------------


class GaugeKind(Enum):
    ATTITUDE, DIAL, LINEAR, LINEAR_THUMB = 'attitude', 'dial', 'linear', 'linear_thumb'


class TickSide(Enum):
    """Side of a linear gauge carrying the tick marks"""
    LEFT_TOP, RIGHT_BOTTOM, BOTH = 'left_top', 'right_bottom', 'both'


class Reading(NamedTuple):
    """The pointer value drives geometry, the text value drives the numeric label."""
    pointer: float = 0.0
    text: float = 0.0


COLOR_FIELDS = ('low_color', 'mid_color', 'high_color', 'background_color', 'tick_color',
                'alarm_color', 'thumb_color')


def colors_from_dict(config_def: dict) -> dict:
    return {k: Color.from_spec(v) if k in COLOR_FIELDS else v for k, v in config_def.items()}


@dataclass(frozen=True)
class ScaleConfig:
    """Scale shared by every kind of gauge: ranges, ticks, colors and text precision."""
    scale_start: float = 0
    low_range: float = 30
    mid_range: float = 40
    high_range: float = 30
    major_spacing: float = 10
    minor_spacing: float = 2
    major_tick_length: float = 0.25
    """fraction of the gauge size"""
    minor_tick_length: float = 0.10
    low_color: object = Color.WHITE
    mid_color: object = Color.GREEN
    high_color: object = Color.RED
    background_color: object = Color.TRANSPARENT
    tick_color: object = Color.BLACK
    tick_precision: int = 0
    reading_precision: int = 0
    labels_enabled: bool = True
    """whether the reading text is drawn"""
    tick_labels_enabled: bool = True
    label: str = ''
    """static caption, such as units"""

    @classmethod
    def from_dict(cls, scale_def: dict):
        return cls(**colors_from_dict(scale_def)).sanitized()

    def sanitized(self):
        """Negative ranges, spacings and lengths become zero; minor spacing and length never exceed major."""
        major_spacing = max(self.major_spacing, 0)
        major_tick_length = max(self.major_tick_length, 0)
        return replace(self,
                       low_range=max(self.low_range, 0),
                       mid_range=max(self.mid_range, 0),
                       high_range=max(self.high_range, 0),
                       major_spacing=major_spacing,
                       minor_spacing=clamp(self.minor_spacing, 0, major_spacing),
                       major_tick_length=major_tick_length,
                       minor_tick_length=clamp(self.minor_tick_length, 0, major_tick_length),
                       tick_precision=max(int(self.tick_precision), 0),
                       reading_precision=max(int(self.reading_precision), 0))

    @property
    def total_range(self):
        return self.low_range + self.mid_range + self.high_range

    @property
    def top_of_scale(self):
        return self.scale_start + self.total_range

    @property
    def top_of_low_range(self):
        return self.scale_start + self.low_range

    @property
    def top_of_mid_range(self):
        return self.scale_start + self.low_range + self.mid_range

    def color_for_reading(self, value: float):
        if value < self.top_of_low_range:
            return self.low_color
        elif value < self.top_of_mid_range:
            return self.mid_color
        return self.high_color

    def clamp_reading(self, value: float):
        return clamp(value, self.scale_start, self.top_of_scale)

    def bands(self):
        """(bottom, top, color) of the low, mid and high ranges"""
        return ((self.scale_start, self.top_of_low_range, self.low_color),
                (self.top_of_low_range, self.top_of_mid_range, self.mid_color),
                (self.top_of_mid_range, self.top_of_scale, self.high_color))

    def major_ticks(self):
        return scale_steps(self.scale_start, self.top_of_scale, self.major_spacing)

    def minor_ticks(self):
        return scale_steps(self.scale_start, self.top_of_scale, self.minor_spacing)

    @property
    def has_major_ticks(self):
        return self.major_spacing > 0 and self.major_tick_length > 0

    @property
    def has_minor_ticks(self):
        return self.minor_spacing > 0 and self.minor_tick_length > 0

    def format_tick(self, value: float) -> str:
        return format_number(value, self.tick_precision)

    def format_reading(self, value: float) -> str:
        return format_number(value, self.reading_precision)


SCALE_FIELDS = frozenset(f.name for f in fields(ScaleConfig))


@dataclass(frozen=True)
class NoOptions:
    def sanitized(self):
        return self


class Gauge:
    """
    Common behavior of every gauge: the scale configuration, the dirty flag and the reading.
    Configuration changes go through configure() or set_size(), which mark the gauge dirty so that the
    next reading rebuilds the whole scene. Otherwise a reading only replaces the items it moves.
    """
    kind: GaugeKind = None
    options_class = NoOptions
    scale_defaults: dict = {}
    quiet_fields = frozenset({'reading_precision', 'draw_from'})
    """fields that only the next incremental update depends on"""

    def __init__(self, width: float = 200, height: float = 200,
                 scale: ScaleConfig = None, options=None, style: Style = None):
        self.scale: ScaleConfig = (scale or replace(ScaleConfig(), **self.scale_defaults)).sanitized()
        self.options = (options or self.options_class()).sanitized()
        self.scene = Scene(style)
        self.size: WH = (width, height)
        self.reading = Reading()
        self.dirty = True

    def __repr__(self):
        return f'{type(self).__name__}(size={self.size}, reading={self.reading}, dirty={self.dirty})'

    @property
    def option_fields(self):
        return frozenset(f.name for f in fields(self.options_class))

    def configure(self, **changes):
        """Sets any scale or option fields by name; marks the gauge dirty if a layout field changed."""
        unknown = set(changes) - SCALE_FIELDS - self.option_fields
        if unknown:
            raise TypeError(f'{type(self).__name__} has no settings named: {", ".join(sorted(unknown))}')
        old_scale, old_options = self.scale, self.options
        self.scale = replace(old_scale, **{k: v for k, v in changes.items() if k in SCALE_FIELDS}).sanitized()
        self.options = replace(old_options, **{k: v for k, v in changes.items() if k not in SCALE_FIELDS}).sanitized()
        changed = {f.name for f in fields(ScaleConfig) if getattr(old_scale, f.name) != getattr(self.scale, f.name)}
        changed |= {k for k in self.option_fields if getattr(old_options, k) != getattr(self.options, k)}
        if changed - self.quiet_fields:
            self.dirty = True
        logger.debug(f'{type(self).__name__} configured: {sorted(changed)}')
        return self

    def set_size(self, width: float, height: float):
        self.size = (width, height)
        self.dirty = True

    def set_reading(self, value: float, text_value: float = None):
        """Shows a reading; the label shows text_value when given, else value."""
        self.reading = Reading(value, value if text_value is None else text_value)
        self.refresh()

    def refresh(self):
        if self.dirty:
            logger.debug(f'{type(self).__name__} rebuilding scene at {self.size}')
            self.create_scene()
            self.dirty = False
        else:
            logger.debug(f'{type(self).__name__} updating reading {self.reading}')
            self.update_reading()

    def create_scene(self):
        """Clears the scene and builds every item."""
        raise NotImplementedError

    def update_reading(self):
        """Replaces the items that depend on the reading."""
        raise NotImplementedError

    def color_for_reading(self, value: float):
        return self.scale.color_for_reading(value)

    def begin_scene(self, rect: Box):
        sc = self.scene
        sc.clear()
        sc.rect = rect
        sc.background = self.scale.background_color
        return sc

    @staticmethod
    def make(kind: GaugeKind, *args, **kwargs) -> 'Gauge':
        return GAUGE_CLASSES[kind](*args, **kwargs)

    @classmethod
    def from_dict(cls, gauge_def: dict, style: Style = None) -> 'Gauge':
        gauge_def = dict(gauge_def)
        try:
            kind = GaugeKind(gauge_def.pop('kind'))
        except (KeyError, ValueError):
            raise ValueError(f'Gauge needs a kind, one of: {", ".join(k.value for k in GaugeKind)}')
        gauge_cls = GAUGE_CLASSES[kind]
        width, height = gauge_def.pop('size', (200, 200))
        if 'style' in gauge_def:
            style = Style.from_dict(gauge_def.pop('style'))
        gauge = gauge_cls(width, height, style=style)
        settings = colors_from_dict({**gauge_def.pop('scale', {}), **gauge_def.pop('options', {})})
        if 'tick_side' in settings:
            settings['tick_side'] = TickSide(settings['tick_side'])
        try:
            gauge.configure(**settings)
        except TypeError as e:
            raise ValueError(str(e))
        gauge.apply_reading_def(gauge_def)
        return gauge

    def apply_reading_def(self, reading_def: dict):
        self.set_reading(reading_def.get('reading', self.scale.scale_start), reading_def.get('text_reading'))


# ----------------------6. Attitude Indicator----------------------------


class AttitudeState(NamedTuple):
    roll: float = 0.0
    pitch: float = 0.0
    yaw: float = 0.0

    @classmethod
    def normalized(cls, roll: float, pitch: float, yaw: float):
        return cls(normalize_roll(roll), pitch, normalize_yaw(yaw))


@dataclass(frozen=True)
class AttitudeOptions:
    pitch_range: float = 60
    """degrees of pitch spanned by the display height"""
    pitch_major_tick_length: float = 0.2
    pitch_minor_tick_length: float = 0.05
    roll_major_spacing: float = 30
    roll_minor_spacing: float = 5
    roll_alarm: float = 45
    pitch_alarm: float = 25
    alarm_color: object = Color.RED

    def sanitized(self):
        roll_major = max(self.roll_major_spacing, 0)
        pitch_major = max(self.pitch_major_tick_length, 0)
        return replace(self,
                       pitch_range=max(self.pitch_range, 1),
                       pitch_major_tick_length=pitch_major,
                       pitch_minor_tick_length=clamp(self.pitch_minor_tick_length, 0, pitch_major),
                       roll_major_spacing=roll_major,
                       roll_minor_spacing=clamp(self.roll_minor_spacing, 0, roll_major))


class AttitudeGauge(Gauge):
    """
    Attitude indicator: sky and ground, pitch ladder, roll scale and label, yaw scale and reticle.
    Scene coordinates put (0, 0) at the center of the display. Everything that moves with roll and pitch
    hangs off the sky rect, whose transform rotates by -roll and then shifts by the pitch.
    """
    kind = GaugeKind.ATTITUDE
    options_class = AttitudeOptions
    scale_defaults = dict(major_tick_length=0.10, minor_tick_length=0.05,
                          low_color=Color.ORANGE, high_color=Color.BLUE, tick_color=Color.YELLOW)
    quiet_fields = Gauge.quiet_fields | {'roll_alarm', 'pitch_alarm', 'alarm_color'}
    ROLL_LIMIT = 120
    """roll scale ticks and label cover +/- this many degrees"""

    def __init__(self, width: float = 200, height: float = 200, **kwargs):
        super().__init__(width, height, **kwargs)
        self.state = AttitudeState()
        self.pixels_per_degree = 0.0
        self.virtual_size = 0.0
        self.sky_transform = IDENTITY

    def set_angles(self, roll: float, pitch: float, yaw: float):
        """
        Redraws for new angles, rebuilding everything if the configuration changed.
        :param roll: degrees, stored within (-180, 180]
        :param pitch: degrees, positive nose up
        :param yaw: degrees, stored within [0, 360)
        """
        self.state = AttitudeState.normalized(roll, pitch, yaw)
        self.refresh()

    def set_reading(self, value, text_value=None):
        """Attitude readings are (roll, pitch, yaw) triples."""
        roll, pitch, yaw = value
        self.set_angles(roll, pitch, yaw)

    def apply_reading_def(self, reading_def: dict):
        self.set_angles(reading_def.get('roll', 0), reading_def.get('pitch', 0), reading_def.get('yaw', 0))

    def compute_virtual_size(self):
        """The sky and ground must cover +/-90 degrees of pitch at any roll."""
        _, h = self.size
        self.pixels_per_degree = h / self.options.pitch_range
        self.virtual_size = self.pixels_per_degree * (DEG_SEMI + self.options.pitch_range)

    def update_transform(self):
        # The horizon turns opposite to the roll, and drops as pitch rises
        self.sky_transform = IDENTITY.rotated(-self.state.roll).translated(0, self.state.pitch * self.pixels_per_degree)

    def create_scene(self):
        w, h = self.size
        sc = self.begin_scene(Box(-w / 2, -h / 2, w, h))
        self.compute_virtual_size()
        self.update_transform()
        s, v = self.scale, self.virtual_size
        sky = sc.add(RectItem(box=Box(-v / 2, -v / 2, v, v / 2),
                              brush=Gradient(0, 0, 0, -v / 2, s.high_color, Color.BLACK),
                              transform=self.sky_transform), slot='sky')
        sc.add(RectItem(box=Box(-v / 2, 0, v, v / 2), brush=Gradient(0, 0, 0, v / 2, s.low_color, Color.BLACK)),
               parent=sky, slot='ground')
        self.build_pitch_ladder()
        self.build_roll_scale()
        self.build_roll_label()
        self.build_yaw_scale()
        self.build_reticle()

    def update_reading(self):
        self.update_transform()
        self.scene.set_transform(self.scene['sky'], self.sky_transform)
        self.build_pitch_ladder()
        self.build_roll_label()
        self.build_yaw_scale()
        self.build_reticle()

    def alarm_or_tick_color(self, alarming: bool):
        return self.options.alarm_color if alarming else self.scale.tick_color

    def build_pitch_ladder(self):
        """Pitch ladder rungs and their labels, trimmed short of the display edge"""
        sc, s, o = self.scene, self.scale, self.options
        w, _ = self.size
        ppd, pitch = self.pixels_per_degree, self.state.pitch
        sc.remove_slot('ladder')
        if ppd <= 0 or o.pitch_major_tick_length <= 0 or s.major_spacing <= 0:
            return
        ladder = GroupItem()
        path = Path()
        # Fraction of the display height the ladder covers; degenerate when major_tick_length > 1/6
        fraction = 0.5 - 3 * s.major_tick_length
        bottom, top = pitch - fraction * o.pitch_range, pitch + fraction * o.pitch_range
        x = o.pitch_major_tick_length * w / 2
        labels = []
        for angle in aligned_steps(bottom, top, s.major_spacing):
            y = -angle * ppd
            path.add_line(-x, y, x, y)
            if s.tick_labels_enabled:
                labels.append(sc.text(s.format_tick(angle), color=s.tick_color).place(x + 4, y, Anchor.LEFT_CENTER))
        if o.pitch_minor_tick_length > 0 and s.minor_spacing > 0:
            x = o.pitch_minor_tick_length * w / 2
            for angle in aligned_steps(bottom, top, s.minor_spacing):
                if not is_multiple(angle, s.major_spacing):
                    y = -angle * ppd
                    path.add_line(-x, y, x, y)
        ladder.add_child(PathItem(path=path, pen=Pen(s.tick_color)))
        for label in labels:
            ladder.add_child(label)
        sc.add(ladder, parent=sc['sky'], slot='ladder')

    def build_roll_scale(self):
        """Fixed ring of roll ticks around the bottom of the display"""
        sc, s, o = self.scene, self.scale, self.options
        _, h = self.size
        if o.roll_major_spacing <= 0 or s.major_tick_length <= 0:
            return
        path = Path()
        inner = 0.5 * h

        def add_tick(deg: float, outer: float):
            rad = math.radians(deg)
            path.add_line(-inner * math.sin(rad), inner * math.cos(rad), -outer * math.sin(rad), outer * math.cos(rad))

        first = math.ceil(-self.ROLL_LIMIT / o.roll_major_spacing) * o.roll_major_spacing
        for angle in scale_steps(first, self.ROLL_LIMIT, o.roll_major_spacing):
            add_tick(angle, (0.5 + s.major_tick_length) * h)
        if o.roll_minor_spacing > 0 and s.minor_tick_length > 0:
            first = math.ceil(-self.ROLL_LIMIT / o.roll_minor_spacing) * o.roll_minor_spacing
            for angle in scale_steps(first, self.ROLL_LIMIT, o.roll_minor_spacing):
                if not is_multiple(angle, o.roll_major_spacing):
                    add_tick(angle, (0.5 + s.minor_tick_length) * h)
        sc.add(PathItem(path=path, pen=Pen(s.tick_color)), slot='roll_scale')

    def build_roll_label(self):
        """Triangle marker at the bottom with the roll angle above it, turned with the roll"""
        sc, s, o = self.scene, self.scale, self.options
        _, h = self.size
        roll = self.state.roll
        sc.remove_slot('roll_label')
        if not s.labels_enabled or abs(roll) >= self.ROLL_LIMIT:
            return
        col = self.alarm_or_tick_color(abs(roll) > o.roll_alarm)
        tall = s.major_tick_length * h
        base = 0.5 * h - tall
        label = GroupItem(transform=IDENTITY.rotated(-roll))
        label.add_child(PolygonItem(points=[(0, 0.5 * h), (tall / 2, base), (-tall / 2, base)], pen=Pen(col), brush=col))
        # A little gap so the text doesn't run into the marker
        label.add_child(sc.text(s.format_tick(roll), color=col).place(0, base - 4, Anchor.BOTTOM_CENTER))
        sc.add(label, slot='roll_label')

    def build_yaw_scale(self):
        """Heading tape across the top, with the current heading in a marker at its center"""
        sc, s = self.scene, self.scale
        w, h = self.size
        ppd, yaw = self.pixels_per_degree, self.state.yaw
        sc.remove_slot('yaw_scale')
        # A collapsed viewport has no degrees to show
        if ppd <= 0 or s.major_spacing <= 0 or s.major_tick_length <= 0:
            return
        path = Path()
        top = -0.5 * h
        tall = s.major_tick_length * h
        marks: list[Item] = []
        readout_w = 0
        if s.labels_enabled:
            readout = sc.text(s.format_tick(yaw), color=s.tick_color).place(0, top + tall, Anchor.TOP_CENTER)
            readout_w = readout.glyph_w
            marks.append(PolygonItem(points=[(0, top), (tall / 2, top + tall), (-tall / 2, top + tall)],
                                     pen=Pen(s.tick_color), brush=s.tick_color))
            marks.append(readout)
        start, end = yaw - 0.5 * w / ppd, yaw + 0.5 * w / ppd
        for angle in aligned_steps(start, end, s.major_spacing):
            x = (angle - yaw) * ppd
            path.add_line(x, top, x, top + tall)
            if s.tick_labels_enabled:
                label = sc.text(s.format_tick(normalize_yaw(angle)), color=s.tick_color)
                left = x - label.glyph_w / 2
                # Only labels clear of the center readout plus 4 pixels
                if left + label.glyph_w < -4 - 0.5 * readout_w or left > 4 + 0.5 * readout_w:
                    marks.append(label.place(x, top + tall, Anchor.TOP_CENTER))
        if s.minor_spacing > 0 and s.minor_tick_length > 0:
            for angle in aligned_steps(start, end, s.minor_spacing):
                if not is_multiple(angle, s.major_spacing):
                    x = (angle - yaw) * ppd
                    path.add_line(x, top, x, top + s.minor_tick_length * h)
        scale = GroupItem()
        for mark in [PathItem(path=path, pen=Pen(s.tick_color))] + marks:
            scale.add_child(mark)
        sc.add(scale, slot='yaw_scale')

    def build_reticle(self):
        """Fixed horizon reference with the pitch readout beside it, turned with the roll"""
        sc, s, o = self.scene, self.scale, self.options
        w, _ = self.size
        pitch = self.state.pitch
        sc.remove_slot('reticle')
        col = self.alarm_or_tick_color(abs(pitch) > o.pitch_alarm)
        center = (o.pitch_major_tick_length + 0.05) * w / 2
        length = o.pitch_major_tick_length * w / 2
        path = Path().add_line(-(length + center), 0, -center, 0).add_line(length + center, 0, center, 0)
        reticle = GroupItem(transform=IDENTITY.rotated(-self.state.roll))
        reticle.add_child(PathItem(path=path, pen=Pen(col)))
        reticle.add_child(sc.text(s.format_tick(pitch), color=col).place(length + center + 4, 0, Anchor.LEFT_CENTER))
        sc.add(reticle, slot='reticle')


# ----------------------7. Dial----------------------------


@dataclass(frozen=True)
class DialOptions:
    low_angle: float = 225
    """angle of the bottom of the scale, 0 pointing right and counter-clockwise positive"""
    high_angle: float = -45
    """angle of the top of the scale"""
    arc_width: float = 0.04
    """thickness of the colored bands as a fraction of the dial size"""

    def sanitized(self):
        return replace(self, arc_width=clamp(self.arc_width, 0, 0.45))


class DialGauge(Gauge):
    """Round gauge: colored range bands along an arc, ticks and labels inside it, and a pointer."""
    kind = GaugeKind.DIAL
    options_class = DialOptions
    scale_defaults = dict(major_tick_length=0.05, minor_tick_length=0.025)

    def __init__(self, width: float = 200, height: float = 200, **kwargs):
        super().__init__(width, height, **kwargs)
        self.dial_size = 0.0
        self.arc_box = Box(0, 0, 0, 0)
        self.pointer_shape: list[XY] = []

    @property
    def arc_size(self):
        return self.dial_size * (1 - 2 * self.options.arc_width)

    def value_to_angle(self, value: float) -> float:
        s, o = self.scale, self.options
        return value_to_angle(value, s.scale_start, s.total_range, o.low_angle, o.high_angle)

    def scale_range_to_angle_range(self, scale_range: float) -> float:
        s, o = self.scale, self.options
        return scale_range_to_angle_range(scale_range, s.total_range, o.low_angle, o.high_angle)

    def center_of_dial(self) -> XY:
        (x0, y0), (x1, y1) = Path.arc_point(self.arc_box, 0), Path.arc_point(self.arc_box, DEG_SEMI)
        return (x0 + x1) / 2, (y0 + y1) / 2

    @staticmethod
    def inward(angle: float, length: float) -> XY:
        """Offset of the given length from a point on the arc toward the center"""
        rad = math.radians(angle)
        return -length * math.cos(rad), length * math.sin(rad)

    def band_path(self, box: Box, bottom: float, top: float) -> Path:
        """Arc over a span of the scale, built from the top of the span down"""
        high_angle, low_angle = self.value_to_angle(top), self.value_to_angle(bottom)
        return Path().arc_move_to(box, high_angle).arc_to(box, high_angle, low_angle - high_angle)

    def layout_arc(self):
        """Sizes the arc and centers the space the whole stroked arc takes up within the scene"""
        s = self.scale
        w, h = self.size
        self.dial_size = max(w, h)
        arc = self.arc_size
        extent = self.band_path(Box(0, 0, arc, arc), s.scale_start, s.top_of_scale)\
            .bounding_box(self.dial_size * self.options.arc_width)
        self.arc_box = Box((w - extent.w) / 2 - extent.x, (h - extent.h) / 2 - extent.y, arc, arc)

    def create_scene(self):
        s = self.scale
        w, h = self.size
        self.begin_scene(Box(0, 0, w, h))
        self.layout_arc()
        for i, (bottom, top, col) in enumerate(s.bands()):
            self.build_band(bottom, top, col, f'band_{i}')
        if s.has_major_ticks:
            self.build_ticks(s.major_spacing, s.major_tick_length, 'major_ticks')
        if s.has_minor_ticks:
            self.build_ticks(s.minor_spacing, s.minor_tick_length, 'minor_ticks')
        self.build_tick_labels()
        self.build_label()
        self.construct_pointer()
        self.update_reading()

    def update_reading(self):
        self.place_pointer()
        self.build_reading_label()

    def build_band(self, bottom: float, top: float, col, slot: str):
        if top <= bottom:
            return
        pen = Pen(col, self.dial_size * self.options.arc_width, Cap.FLAT)
        self.scene.add(PathItem(path=self.band_path(self.arc_box, bottom, top), pen=pen), slot=slot)

    def build_ticks(self, spacing: float, tick_length: float, slot: str):
        s = self.scale
        # Ticks of every size start the same distance in from the arc
        offset = 0.5 * self.dial_size * s.major_tick_length
        tick = self.dial_size * tick_length
        path = Path()
        for value in scale_steps(s.scale_start, s.top_of_scale, spacing):
            angle = self.value_to_angle(value)
            x, y = Path.arc_point(self.arc_box, angle)
            (ox, oy), (tx, ty) = self.inward(angle, offset), self.inward(angle, tick)
            path.add_line(x + ox, y + oy, x + ox + tx, y + oy + ty)
        self.scene.add(PathItem(path=path, pen=Pen(s.tick_color)), slot=slot)

    @staticmethod
    def label_offset(angle: float, w: float, h: float) -> XY:
        """
        Shift of a label centered on a ray from the dial center, moving it inward until its box
        just meets the ray's end rather than straddling it. Which side of the box the ray leaves by
        is decided from the angles of the box's corners.
        """
        lower_right = math.atan2(-h, w) + TAU
        upper_right = math.atan2(h, w)
        upper_left = math.atan2(h, -w)
        lower_left = math.atan2(-h, -w) + TAU
        rad = math.radians(angle) % TAU
        if upper_right <= rad < upper_left:
            yoff = h / 2
            return -yoff / math.tan(rad), yoff
        elif upper_left <= rad < lower_left:
            xoff = w / 2
            return xoff, -xoff * math.tan(rad)
        elif lower_left <= rad < lower_right:
            yoff = -h / 2
            return -yoff / math.tan(rad), yoff
        xoff = -w / 2
        return xoff, -xoff * math.tan(rad)

    def build_tick_labels(self):
        sc, s = self.scene, self.scale
        if not s.has_major_ticks or not s.tick_labels_enabled:
            return
        tick = self.dial_size * s.major_tick_length
        offset = 0.5 * tick
        # The end of the tick, less some of the empty space around the text
        move = offset + tick - 0.5 * offset
        labels = GroupItem()
        for value in s.major_ticks():
            angle = self.value_to_angle(value)
            x, y = Path.arc_point(self.arc_box, angle)
            dx, dy = self.inward(angle, move)
            label = sc.text(s.format_tick(value), color=s.tick_color)
            xoff, yoff = self.label_offset(angle, label.w, label.h)
            labels.add_child(label.place(x + dx + xoff, y + dy + yoff, Anchor.CENTER))
        sc.add(labels, slot='tick_labels')

    def build_label(self):
        """Static caption above the pointer hub"""
        sc, s = self.scene, self.scale
        if not s.label:
            return
        cx, cy = self.center_of_dial()
        label = sc.text(s.label, self.dial_size / TEN, s.tick_color)
        sc.add(label.place(cx, cy - (label.h / 2 + self.arc_size / 20), Anchor.CENTER), slot='label')

    def construct_pointer(self):
        """Pointer outline at zero rotation, pointing straight down from the hub"""
        tick = self.dial_size * self.scale.major_tick_length
        length = self.arc_size / 2 - (0.5 * tick + tick)
        half_width = length / 20
        fore = length - 8 * half_width
        self.pointer_shape = [(half_width, 0), (-half_width, 0), (-half_width, fore),
                              (0, length), (half_width, fore), (half_width, 0)]

    def pointer_rotation(self) -> float:
        """Degrees to turn the pointer from pointing down to the clamped reading"""
        return -self.value_to_angle(self.scale.clamp_reading(self.reading.pointer)) - DEG_RT

    def place_pointer(self):
        sc = self.scene
        cx, cy = self.center_of_dial()
        pointer = PolygonItem(points=self.pointer_shape, pen=Pen(Color.BLACK),
                              brush=self.color_for_reading(self.reading.pointer),
                              transform=IDENTITY.translated(cx, cy).rotated(self.pointer_rotation()))
        hub = self.arc_size / TEN
        pointer.add_child(EllipseItem(box=Box(-hub / 2, -hub / 2, hub, hub), pen=Pen(Color.BLACK), brush=Color.BLACK))
        sc.add(pointer, slot='pointer')

    def build_reading_label(self):
        """Reading text in a box of the reading's color, below the pointer hub"""
        sc, s = self.scene, self.scale
        sc.remove_slot('reading')
        if not s.labels_enabled:
            return
        cx, cy = self.center_of_dial()
        col = self.color_for_reading(self.reading.pointer)
        text = sc.text(s.format_reading(self.reading.text), self.dial_size / TEN, s.tick_color)
        text.place(cx, cy + text.h / 4 + text.h / 2 + self.arc_size / 20, Anchor.CENTER)
        readout = RectItem(box=text.local_box(), pen=Pen(col), brush=col, radius=text.h / 4)
        readout.add_child(text)
        sc.add(readout, slot='reading')


# ----------------------8. Linear Gauges----------------------------


@dataclass(frozen=True)
class LinearOptions:
    horizontal: bool = False
    tick_side: TickSide = TickSide.LEFT_TOP
    draw_from: float = None
    """value the bar fills from toward the reading; ignored unless strictly inside the scale"""
    dual_value: bool = False

    def sanitized(self):
        return self


class LinearGauge(Gauge):
    """
    Bar gauge, horizontal or vertical, with ticks along one or both long sides.
    The bar is filled from the scale start, or from draw_from, to the reading.
    In dual mode each half of the bar shows its own reading.
    """
    kind = GaugeKind.LINEAR
    options_class = LinearOptions
    MAJOR_PEN = 1.5
    MINOR_PEN = 1.0

    def __init__(self, width: float = 200, height: float = 200, **kwargs):
        super().__init__(width, height, **kwargs)
        self.reading2 = Reading()

    @property
    def extent(self):
        """Pixels along the scale"""
        w, h = self.size
        return w if self.options.horizontal else h

    @property
    def cross(self):
        """Pixels across the scale"""
        w, h = self.size
        return h if self.options.horizontal else w

    def value_to_pixel(self, value: float) -> float:
        s = self.scale
        return value_to_pixel(value, s.scale_start, s.total_range, self.extent, not self.options.horizontal)

    def point(self, along: float, across: float) -> XY:
        return (along, across) if self.options.horizontal else (across, along)

    def box(self, along: float, across: float, length: float, thickness: float) -> Box:
        if self.options.horizontal:
            return Box(along, across, length, thickness)
        return Box(across, along, thickness, length)

    def tick_sides(self) -> list[bool]:
        """Whether each side carrying ticks is the far (right or bottom) one"""
        return {TickSide.LEFT_TOP: [False], TickSide.RIGHT_BOTTOM: [True],
                TickSide.BOTH: [False, True]}[self.options.tick_side]

    def set_dual_readings(self, value1: float, value2: float, text1: float = None, text2: float = None):
        """Shows a reading on each half of the gauge; only drawn when dual_value is set."""
        self.reading = Reading(value1, value1 if text1 is None else text1)
        self.reading2 = Reading(value2, value2 if text2 is None else text2)
        self.refresh()

    def apply_reading_def(self, reading_def: dict):
        if not self.options.dual_value:
            return super().apply_reading_def(reading_def)
        start = self.scale.scale_start
        self.set_dual_readings(reading_def.get('reading', start), reading_def.get('reading2', start),
                               reading_def.get('text_reading'), reading_def.get('text_reading2'))

    def create_scene(self):
        s = self.scale
        w, h = self.size
        self.begin_scene(Box(0, 0, w, h))
        self.build_track()
        if s.has_minor_ticks:
            self.build_ticks(s.minor_spacing, s.minor_tick_length, Pen(s.tick_color, self.MINOR_PEN), 'minor_ticks')
        if s.has_major_ticks:
            self.build_ticks(s.major_spacing, s.major_tick_length, Pen(s.tick_color, self.MAJOR_PEN), 'major_ticks')
        self.build_tick_labels()
        self.update_reading()

    def update_reading(self):
        self.build_indicator()
        self.build_reading_label()

    def build_track(self):
        """Fixed items under the indicator; the filled bar has none"""

    def build_ticks(self, spacing: float, tick_length: float, pen: Pen, slot: str):
        s = self.scale
        tick, cross = self.cross * tick_length, self.cross
        path = Path()
        for value in scale_steps(s.scale_start, s.top_of_scale, spacing):
            pixel = self.value_to_pixel(value)
            # Not on the outside border
            if not 0 < pixel < self.extent:
                continue
            for far in self.tick_sides():
                a, b = (cross - 1, cross - tick - 1) if far else (1, tick + 1)
                path.add_line(*self.point(pixel, a), *self.point(pixel, b))
        self.scene.add(PathItem(path=path, pen=pen), slot=slot)

    def build_tick_labels(self):
        sc, s, o = self.scene, self.scale, self.options
        if not s.has_major_ticks or not s.tick_labels_enabled:
            return
        tick = self.cross * s.major_tick_length
        far = o.tick_side is TickSide.RIGHT_BOTTOM
        if o.horizontal:
            anchor = Anchor.BOTTOM_CENTER if far else Anchor.TOP_CENTER
        else:
            anchor = Anchor.RIGHT_CENTER if far else Anchor.LEFT_CENTER
        labels = GroupItem()
        for value in s.major_ticks():
            label = sc.text(s.format_tick(value), color=s.tick_color)
            label.place(*self.point(self.value_to_pixel(value), self.cross - tick if far else tick), anchor)
            # Labels at either end of the scale move inward by the space around their text
            if o.horizontal:
                over = (label.w - label.glyph_w) / 2
                if value <= s.scale_start:
                    label.x += over
                elif value >= s.top_of_scale:
                    label.x -= over
            else:
                over = (label.h - label.glyph_h) / 2
                if value <= s.scale_start:
                    label.y -= over
                elif value >= s.top_of_scale:
                    label.y += over
            labels.add_child(label)
        sc.add(labels, slot='tick_labels')

    def fill_start(self) -> float:
        s, draw_from = self.scale, self.options.draw_from
        if draw_from is not None and s.scale_start < draw_from < s.top_of_scale:
            return draw_from
        return s.scale_start

    def build_indicator(self):
        """Border around the whole bar, with the filled part of each reading as its children"""
        sc, o = self.scene, self.options
        w, h = self.size
        col = self.color_for_reading(self.reading.pointer)
        lanes = [(self.reading, 0.0, 1.0)]
        border = col
        if o.dual_value:
            lanes = [(self.reading, 0.0, 0.5), (self.reading2, 0.5, 1.0)]
            border = Color.blend(col, self.color_for_reading(self.reading2.pointer))
        # Keeps the full bar in view even when the reading is at the start
        outline = RectItem(box=Box(0, 0, w, h), pen=Pen(border), z=-10)
        start = self.value_to_pixel(self.fill_start())
        for reading, lo, hi in lanes:
            col = self.color_for_reading(reading.pointer)
            a, b = sorted((start, self.value_to_pixel(reading.pointer)))
            outline.add_child(RectItem(box=self.box(a, lo * self.cross, b - a, (hi - lo) * self.cross),
                                       pen=Pen(col), brush=col, z=-10))
        sc.add(outline, slot='bar')

    def reading_text(self) -> str:
        s = self.scale
        if self.options.dual_value:
            return f'{s.format_reading(self.reading.text)} : {s.format_reading(self.reading2.text)}'
        return s.format_reading(self.reading.text)

    def build_reading_label(self):
        """Reading text midway along the scale, on the side away from the ticks"""
        sc, s, o = self.scene, self.scale, self.options
        w, h = self.size
        sc.remove_slot('reading')
        if not s.labels_enabled:
            return
        label = sc.text(self.reading_text(), color=s.tick_color)
        if not s.has_major_ticks or o.tick_side is TickSide.BOTH:
            label.place(w / 2, h / 2, Anchor.CENTER)
        else:
            # Between the two major ticks either side of half scale
            half = (s.scale_start + s.top_of_scale) / 2
            mid = s.scale_start + math.ceil((half - s.scale_start) / s.major_spacing) * s.major_spacing
            pixel = self.value_to_pixel(mid - s.major_spacing / 2)
            far = o.tick_side is TickSide.RIGHT_BOTTOM
            if o.horizontal:
                label.place(pixel, 0 if far else h, Anchor.TOP_CENTER if far else Anchor.BOTTOM_CENTER)
            else:
                label.place(0 if far else w, pixel, Anchor.LEFT_CENTER if far else Anchor.RIGHT_CENTER)
        sc.add(label, slot='reading')


@dataclass(frozen=True)
class ThumbOptions(LinearOptions):
    thumb_width: float = 0.05
    """fraction of the scale length"""
    bar_width: float = 0.25
    """fraction of the gauge width across the scale"""
    thumb_color: object = Color.WHITE
    zones: bool = True
    """low, mid and high colored track, else one mid-colored track"""

    def sanitized(self):
        return replace(self, thumb_width=clamp(self.thumb_width, 0, 1), bar_width=clamp(self.bar_width, 0, 1))


class ThumbGauge(LinearGauge):
    """Linear gauge with a fixed colored track and a movable thumb pointing at the reading."""
    kind = GaugeKind.LINEAR_THUMB
    options_class = ThumbOptions
    scale_defaults = dict(labels_enabled=False)

    def update_reading(self):
        self.build_thumbs()
        self.build_reading_label()

    def build_track(self):
        sc, s, o = self.scene, self.scale, self.options
        bar = o.bar_width * self.cross
        edge = (self.cross - bar) / 2
        bands = s.bands() if o.zones else ((s.scale_start, s.top_of_scale, s.mid_color),)
        track = GroupItem()
        for bottom, top, col in bands:
            a, b = sorted((self.value_to_pixel(bottom), self.value_to_pixel(top)))
            if b > a:
                track.add_child(RectItem(box=self.box(a, edge, b - a, bar), pen=Pen(col), brush=col))
        sc.add(track, slot='track')

    def thumb_points(self, location: float, toward_far: bool) -> list[XY]:
        """
        Outline of a thumb at a pixel along the scale.
        :param location: pixel along the scale of the reading
        :param toward_far: whether the tip is on the right or bottom side
        :return: the outline in scene coordinates
        """
        o, c = self.options, self.cross
        half = o.thumb_width * self.extent / 2
        near, far = location - half, location + half
        mid = c / 2
        if o.dual_value:
            pts = [(near, mid), (far, mid), (location, c if toward_far else 0)]
        elif not self.scale.has_major_ticks:
            pts = [(near, 0), (far, 0), (far, c), (near, c)]
        else:
            base, tip = (0, c) if toward_far else (c, 0)
            pts = [(near, base), (far, base), (far, mid), (location, tip), (near, mid)]
        return [self.point(a, b) for a, b in pts]

    def build_thumbs(self):
        sc, s, o = self.scene, self.scale, self.options
        sc.remove_slot('thumb')
        sc.remove_slot('thumb2')
        if o.thumb_width <= 0:
            return
        pen = Pen(s.tick_color, 0.5)
        toward_far = o.tick_side is TickSide.RIGHT_BOTTOM
        sc.add(PolygonItem(points=self.thumb_points(self.value_to_pixel(self.reading.pointer), toward_far),
                           pen=pen, brush=o.thumb_color), slot='thumb')
        if o.dual_value:
            sc.add(PolygonItem(points=self.thumb_points(self.value_to_pixel(self.reading2.pointer), not toward_far),
                               pen=pen, brush=o.thumb_color), slot='thumb2')


GAUGE_CLASSES = {cls.kind: cls for cls in (AttitudeGauge, DialGauge, LinearGauge, ThumbGauge)}


# ----------------------9. Plots----------------------------


@dataclass
class PlotData:
    """One series of values along an axis"""
    data: list[float] = field(default_factory=list)
    color: object = Color.BLACK
    title: str = ''
    scaler: float = 1.0
    """factor applied to every value before plotting"""
    include_zero: bool = False
    """whether the axis range reaches zero even when the data doesn't"""
    draw_axis: bool = True
    draw_first_label: bool = True
    labels_high: bool = False

    @classmethod
    def from_dict(cls, data_def: dict):
        data_def = dict(data_def)
        if 'color' in data_def:
            data_def['color'] = Color.from_spec(data_def['color'])
        return cls(**data_def)

    def values(self) -> list[float]:
        return [value * self.scaler for value in self.data]


def series_range(series) -> tuple[float, float] | None:
    """Min and max over the scaled values of all series, or None when they don't span a range"""
    values = [value for s in series for value in s.values()]
    if len(values) < 2:
        return None
    if any(s.include_zero for s in series):
        values.append(0.0)
    lo, hi = min(values), max(values)
    return (lo, hi) if hi > lo else None


def axis_range(series, num_ticks: int, fixed=False) -> TickRange:
    """
    Tick range of an axis for its series, the unit range when there is nothing to scale.
    :param series: PlotData drawn along the axis
    :param num_ticks: desired count of intervals
    :param fixed: keep num_ticks rather than trimming the count so the end just reaches the data
    """
    data_range = series_range(series)
    if data_range is None:
        return TickRange.unit(num_ticks if fixed else 0)
    if fixed:
        return tick_range(*data_range, num_ticks)
    return tick_range_fit(*data_range, num_ticks)


@dataclass(frozen=True)
class PlotLayout:
    """Where a plot's values land in the scene. The origin is the bottom left; vertical scales are negative."""
    region: Box
    x_range: TickRange
    y_range: TickRange
    r_range: TickRange
    x_scale: float
    y_scale: float
    r_scale: float

    @classmethod
    def compute(cls, region: Box, x_data: PlotData, y_data, r_data, x_ticks: int, y_ticks: int,
                y_scale_equals_x=False, r_scale_equals_x=False, aspect_ratio=0.0):
        """
        Tick ranges for each axis and the pixel scales fitting them into the region.
        The left and right axes end up with the same count of ticks so their grid lines coincide.
        """
        x_range = axis_range([x_data], x_ticks)
        y_range = axis_range(y_data, y_ticks)
        r_range = axis_range(r_data, y_ticks)
        if y_range.num_ticks > r_range.num_ticks:
            r_range = axis_range(r_data, y_range.num_ticks, fixed=True)
        elif r_range.num_ticks > y_range.num_ticks:
            y_range = axis_range(y_data, r_range.num_ticks, fixed=True)
        width, height = region.w, region.h
        if aspect_ratio > 0:
            if height * aspect_ratio > width:
                height = width / aspect_ratio
            else:
                width = height * aspect_ratio
        x_scale = width / (x_range.span or 1)
        # Screen y grows downward
        y_scale = -x_scale if y_scale_equals_x else -height / (y_range.span or 1)
        r_scale = -x_scale if r_scale_equals_x else -height / (r_range.span or 1)
        logger.debug(f'Plot ticks x={x_range.num_ticks} y={y_range.num_ticks} r={r_range.num_ticks}')
        return cls(region, x_range, y_range, r_range, x_scale, y_scale, r_scale)

    @property
    def origin(self) -> XY:
        return self.region.x, self.region.bottom

    def x_pixel(self, value: float) -> float:
        return self.region.x + (value - self.x_range.start) * self.x_scale

    def y_pixel(self, value: float) -> float:
        return self.region.bottom + (value - self.y_range.start) * self.y_scale

    def r_pixel(self, value: float) -> float:
        return self.region.bottom + (value - self.r_range.start) * self.r_scale


def grid_fractions(divisions: int) -> list[float]:
    return [i / divisions for i in range(divisions + 1)] if divisions > 0 else [0.0]


class Plot:
    """
    2-D line plot of one or more series against a shared X series, with a left (Y) and a right (R)
    vertical axis. Tick labels use the decimal digits their spacing needs.
    """

    def __init__(self, width: float = 400, height: float = 300, style: Style = None):
        self.size: WH = (width, height)
        self.scene = Scene(style)
        self.layout: PlotLayout = None
        self.plots_drawn = 0

    def __repr__(self):
        return f'Plot(size={self.size}, items={len(self.scene)})'

    def slot(self, name: str) -> str:
        """Later plots sharing the scene get numbered slots"""
        return f'{name}_{self.plots_drawn}' if self.plots_drawn else name

    def generate_plot(self, title: str, x_data: PlotData, y_data, r_data=(), x_ticks=5, y_ticks=5,
                      region: Box = None, y_scale_equals_x=False, r_scale_equals_x=False, aspect_ratio=0.0,
                      grid_color=Color.GREY):
        """
        Draws the plot into the scene.
        :param title: centered above the plot, if any
        :param x_data: independent variable
        :param y_data: series plotted against the left axis
        :param r_data: series plotted against the right axis
        :param x_ticks: approximate count of X axis intervals
        :param y_ticks: approximate count of Y and R axis intervals
        :param region: scene area to plot over, adding to what's already in the scene; by default the
            scene is cleared, the whole size is used, and the result is fit to the view
        :param y_scale_equals_x: give the Y axis the same pixels per unit as the X axis
        :param r_scale_equals_x: give the R axis the same pixels per unit as the X axis
        :param aspect_ratio: width to height ratio of the plot area, or 0 to fill the region
        :param grid_color: color of the grid lines
        """
        sc = self.scene
        fit = region is None
        if fit:
            sc.clear()
            self.plots_drawn = 0
            region = Box(0, 0, *self.size)
        layout = self.layout = PlotLayout.compute(region, x_data, y_data, r_data, x_ticks, y_ticks,
                                                  y_scale_equals_x, r_scale_equals_x, aspect_ratio)
        self.draw_grid(layout, grid_color)
        if x_data.draw_axis:
            self.draw_horizontal_axis(layout, x_data)
        if y_data:
            self.draw_vertical_axis(layout, layout.x_pixel(layout.x_range.start), layout.y_range, layout.y_scale,
                                    y_data, not y_data[0].labels_high, 'y_axis')
        if r_data:
            self.draw_vertical_axis(layout, layout.x_pixel(layout.x_range.end), layout.r_range, layout.r_scale,
                                    r_data, r_data[0].labels_high, 'r_axis')
        if title:
            label = sc.text(title)
            sc.add(label.place(region.x + region.w / 2, region.y, Anchor.BOTTOM_CENTER), slot=self.slot('title'))
        self.draw_series(layout, x_data, y_data, layout.y_pixel, 'y')
        self.draw_series(layout, x_data, r_data, layout.r_pixel, 'r')
        self.plots_drawn += 1
        if fit:
            self.fit_all_in_view()
        return self

    def draw_grid(self, layout: PlotLayout, color):
        """Grid lines at every tick and halfway between them"""
        x0, y0 = layout.origin
        x1, y1 = layout.x_pixel(layout.x_range.end), layout.y_pixel(layout.y_range.end)
        path = Path()
        for f in grid_fractions(layout.y_range.num_ticks * 2):
            y = y0 + f * (y1 - y0)
            path.add_line(x0, y, x1, y)
        for f in grid_fractions(layout.x_range.num_ticks * 2):
            x = x0 + f * (x1 - x0)
            path.add_line(x, y0, x, y1)
        self.scene.add(PathItem(path=path, pen=Pen(color)), slot=self.slot('grid'))

    def draw_horizontal_axis(self, layout: PlotLayout, data: PlotData):
        sc, xr = self.scene, layout.x_range
        x0, y0 = layout.origin
        x1 = layout.x_pixel(xr.end)
        high = data.labels_high
        tick = abs(xr.span * 0.01 * layout.x_scale)
        axis = GroupItem()
        path = Path().add_line(x0, y0, x1, y0)
        axis.add_child(PathItem(path=path, pen=Pen(data.color)))
        label_h = 0
        for value in xr.values():
            x = layout.x_pixel(value)
            path.add_line(x, y0, x, y0 + tick if high else y0 - tick)
            label = sc.text(format_number(value, xr.digits), color=data.color)
            label_h = max(label_h, label.h)
            axis.add_child(label.place(x, y0, Anchor.BOTTOM_CENTER if high else Anchor.TOP_CENTER))
        if data.title:
            # Beyond the tick labels
            title = sc.text(data.title, color=data.color)
            title_y = y0 - label_h if high else y0 + label_h
            axis.add_child(title.place((x0 + x1) / 2, title_y, Anchor.BOTTOM_CENTER if high else Anchor.TOP_CENTER))
        sc.add(axis, slot=self.slot('x_axis'))

    def draw_vertical_axis(self, layout: PlotLayout, x_org: float, v_range: TickRange, v_scale: float,
                           series, left: bool, slot: str):
        """
        Axis line, ticks and labels of the series plotted along one vertical axis.
        The titles of the series are stacked beside the axis, centered on it as a block. Ticks and
        their labels take the average color of the series.
        """
        sc = self.scene
        _, y0 = layout.origin
        y1 = y0 + v_scale * v_range.span
        tick = abs(v_range.span * 0.01 * v_scale)
        col = Color.blend(*(s.color for s in series)) if len(series) > 1 else series[0].color
        axis = GroupItem()
        path = Path().add_line(x_org, y0, x_org, y1)
        axis.add_child(PathItem(path=path, pen=Pen(col)))
        title_x = x_org + tick if left else x_org - tick
        titles = [sc.text(s.title, color=s.color) for s in series if s.title]
        y = (y0 + y1) / 2 - sum(t.h for t in titles) / 2
        for title in titles:
            axis.add_child(title.place(title_x, y, Anchor.TOP_LEFT if left else Anchor.TOP_RIGHT))
            y += title.h
        first = 0 if any(s.draw_first_label for s in series) else 1
        for value in v_range.values()[first:]:
            y = y0 + v_scale * (value - v_range.start)
            path.add_line(x_org, y, title_x, y)
            label = sc.text(format_number(value, v_range.digits), color=col)
            axis.add_child(label.place(x_org, y, Anchor.RIGHT_CENTER if left else Anchor.LEFT_CENTER))
        sc.add(axis, slot=self.slot(slot))

    def draw_series(self, layout: PlotLayout, x_data: PlotData, series, pixel, slot_prefix: str):
        xs = x_data.values()
        for i, s in enumerate(series):
            # Mismatched lengths plot as far as both go
            points = [(layout.x_pixel(x), pixel(v)) for x, v in zip(xs, s.values())]
            if len(points) < 2:
                continue
            path = Path().move_to(*points[0])
            for pt in points[1:]:
                path.line_to(*pt)
            self.scene.add(PathItem(path=path, pen=Pen(s.color)), slot=self.slot(f'{slot_prefix}_{i}'))

    def fit_all_in_view(self, viewport: WH = None):
        """Scales the bounds of everything drawn to fit the viewport, keeping its aspect ratio, and centers it."""
        sc = self.scene
        vw, vh = viewport or self.size
        bounds = sc.items_bounding_box()
        sc.rect = Box(0, 0, vw, vh)
        if bounds is None or bounds.w <= 0 or bounds.h <= 0 or vw <= 0 or vh <= 0:
            sc.view_transform = None
            return
        factor = min(vw / bounds.w, vh / bounds.h)
        cx, cy = bounds.center
        sc.view_transform = IDENTITY.translated(vw / 2, vh / 2).scaled(factor).translated(-cx, -cy)

    @classmethod
    def from_dict(cls, plot_def: dict, style: Style = None):
        plot_def = dict(plot_def)
        width, height = plot_def.pop('size', (400, 300))
        try:
            x_data = PlotData.from_dict(plot_def.pop('x'))
            y_data = [PlotData.from_dict(d) for d in plot_def.pop('y', [])]
            r_data = [PlotData.from_dict(d) for d in plot_def.pop('r', [])]
        except (KeyError, TypeError) as e:
            raise ValueError(f'Malformed plot series: {e}')
        if 'grid_color' in plot_def:
            plot_def['grid_color'] = Color.from_spec(plot_def['grid_color'])
        plot = cls(width, height, style)
        try:
            return plot.generate_plot(plot_def.pop('title', ''), x_data, y_data, r_data, **plot_def)
        except TypeError as e:
            raise ValueError(f'Malformed plot: {e}')


# ----------------------10. Panels----------------------------


@dataclass
class Panel:
    """Gauges and plots drawn side by side into one image"""
    name: str
    gauges: list[Gauge] = field(default_factory=list)
    plots: list[Plot] = field(default_factory=list)
    style: Style = Style()
    background: object = Color.WHITE
    gap: int = 10

    @classmethod
    def from_dict(cls, name: str, panel_def: dict):
        try:
            style = Style.from_dict(panel_def.get('style', {}))
        except TypeError as e:
            raise ValueError(f'Malformed style: {e}')
        return cls(name=panel_def.get('name', name),
                   gauges=[Gauge.from_dict(g, style) for g in panel_def.get('gauges', [])],
                   plots=[Plot.from_dict(p, style) for p in panel_def.get('plots', [])],
                   style=style,
                   background=Color.from_spec(panel_def.get('background', 'white')),
                   gap=panel_def.get('gap', 10))

    @classmethod
    def from_toml_file(cls, toml_filename: str):
        logger.info(f'Loading panel from {toml_filename}')
        name = re.sub(r'^Panel-', '', os.path.splitext(os.path.basename(toml_filename))[0])
        try:
            panel_def = toml.load(toml_filename)
        except toml.TomlDecodeError as e:
            raise ValueError(f'{toml_filename}: {e}')
        return cls.from_dict(name, panel_def)

    example_dir_path = os.path.join(os.path.dirname(os.path.realpath(__file__)), 'examples')

    @classmethod
    def from_example(cls, example_name: str):
        return cls.from_toml_file(os.path.join(cls.example_dir_path, f'Panel-{example_name}.toml'))

    @classmethod
    def load(cls, panel_name):
        return cls.from_toml_file(panel_name) if os.path.exists(panel_name) else cls.from_example(panel_name)

    @classmethod
    def example_names(cls):
        for fn in os.listdir(cls.example_dir_path):
            if match := re.match(r'Panel-(.*)\.toml$', fn):
                yield match.group(1)

    def scenes(self) -> list[Scene]:
        return [g.scene for g in self.gauges] + [p.scene for p in self.plots]

    def dims(self) -> WH:
        scenes = self.scenes()
        w = sum(round(sc.rect.w) for sc in scenes) + self.gap * (len(scenes) + 1)
        h = max((round(sc.rect.h) for sc in scenes), default=0) + 2 * self.gap
        return w, h


def image_for_rendering(w: int, h: int, out_format: OutFormat, bg=Color.WHITE):
    if out_format == OutFormat.PNG:
        return Image.new('RGBA', (int(w), int(h)), Color.to_rgb(bg)[:3] + (FF,) if Color.is_visible(bg) else (0, 0, 0, 0))
    elif out_format == OutFormat.SVG:
        drawing = svg.Drawing(int(w), int(h), id_prefix='def_')
        if Color.is_visible(bg):
            drawing.append(svg.Rectangle(0, 0, int(w), int(h), fill=Color.to_str(bg)))
        return drawing


def render_panel(panel: Panel, out_format: OutFormat):
    w, h = panel.dims()
    img = image_for_rendering(w, h, out_format, panel.background)
    r = Renderer.to_image(img, panel.style)
    x_off = panel.gap
    for sc in panel.scenes():
        r.draw_scene(sc, x_off, panel.gap)
        x_off += round(sc.rect.w) + panel.gap
    return img


def save_image(img_to_save, basename: str, output_suffix=None):
    output_filename = f"{basename}{'.' + output_suffix if output_suffix else ''}"
    output_full_path = os.path.abspath(output_filename)
    if isinstance(img_to_save, Image.Image):
        output_full_path += '.png'
        img_to_save.save(output_full_path, 'PNG')
    elif isinstance(img_to_save, svg.Drawing):
        output_full_path += '.svg'
        img_to_save.save_svg(output_full_path)
    logger.info(f'Saved {output_full_path}')
    print(f'Result saved to: file://{output_full_path}')
    return output_full_path


# ----------------------11. Commands------------------------------------------


def setup_logging(level: int = logging.INFO, log_file: str = None):
    """
    Configures this module's logger.
    :param level: logging level, such as logging.DEBUG
    :param log_file: optional path to also write the log to
    """
    logger.setLevel(level)
    # Avoid duplicate output when called again
    if logger.hasHandlers():
        logger.handlers.clear()
    formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s', datefmt='%H:%M:%S')
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)
    if log_file:
        file_handler = logging.FileHandler(log_file, mode='w', encoding='utf-8')
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)


def main():
    """CLI processor for rendering a panel of gauges and plots."""
    import argparse
    args_parser = argparse.ArgumentParser()
    args_parser.add_argument('--panel',
                             default='Demo',
                             help=f'Which panel: a TOML file, or one of {", ".join(sorted(Panel.example_names()))}')
    args_parser.add_argument('--format',
                             default=OutFormat.PNG.value,
                             choices=[f.value for f in OutFormat],
                             help='Output format')
    args_parser.add_argument('--suffix',
                             help='Output filename suffix for variations')
    args_parser.add_argument('--test',
                             action='store_true',
                             help='Output filename for test comparisons')
    args_parser.add_argument('--debug',
                             action='store_true',
                             help='Render debug indications (text bounding boxes) and log details')
    cli_args = args_parser.parse_args()
    out_format: OutFormat = next(f for f in OutFormat if f.value == cli_args.format)
    output_suffix = cli_args.suffix or ('test' if cli_args.test else None)
    global DEBUG
    DEBUG = cli_args.debug
    setup_logging(logging.DEBUG if DEBUG else logging.WARNING)

    start_time = time.process_time()
    panel = Panel.load(cli_args.panel)
    print(f'Panel build finished at: {round(time.process_time() - start_time, 3)} seconds')
    panel_img = render_panel(panel, out_format)
    print(f'Panel render finished at: {round(time.process_time() - start_time, 3)} seconds')
    save_image(panel_img, f'{panel.name}.Panel', output_suffix)

    print(f'Program finished at: {round(time.process_time() - start_time, 3)} seconds')


if __name__ == '__main__':
    main()
