import os
import unittest
from unittest.mock import patch

from PIL import Image
import drawsvg as svg

from GaugeScene import (Anchor, Box, Color, Transform, IDENTITY, Path, Pen, Scene, GroupItem, RectItem, TextItem,
                        value_to_angle, value_to_pixel, scale_range_to_angle_range, scale_range_to_pixel_range,
                        nice_tick_spacing, tick_range, tick_range_fit, TickRange, aligned_steps,
                        normalize_roll, normalize_yaw, ScaleConfig, Gauge, GaugeKind, GAUGE_CLASSES, TickSide,
                        AttitudeGauge, DialGauge, LinearGauge, LinearOptions, ThumbGauge, ThumbOptions,
                        PlotData, PlotLayout, Plot, axis_range, Panel, OutFormat, render_panel,
                        image_for_rendering, Renderer)


class ValueToPixelTestCase(unittest.TestCase):
    def test_fenceposts(self):
        self.assertEqual(value_to_pixel(0, 0, 100, 200), 0)
        self.assertEqual(value_to_pixel(100, 0, 100, 200), 200)
        self.assertEqual(value_to_pixel(0, 0, 100, 200, vertical=True), 200)
        self.assertEqual(value_to_pixel(100, 0, 100, 200, vertical=True), 0)

    def test_monotonic(self):
        pixels = [value_to_pixel(v, -20, 100, 300) for v in range(-20, 81, 5)]
        self.assertListEqual(pixels, sorted(pixels))
        inverted = [value_to_pixel(v, -20, 100, 300, vertical=True) for v in range(-20, 81, 5)]
        self.assertListEqual(inverted, sorted(inverted, reverse=True))

    def test_clamps(self):
        self.assertEqual(value_to_pixel(150, 0, 100, 200), 200)
        self.assertEqual(value_to_pixel(-5, 0, 100, 200), 0)
        self.assertEqual(value_to_pixel(-5, 0, 100, 200, vertical=True), 200)

    def test_zero_range(self):
        self.assertEqual(value_to_pixel(5, 0, 0, 200), 0)


class ValueToAngleTestCase(unittest.TestCase):
    def test_fenceposts(self):
        self.assertEqual(value_to_angle(0, 0, 100, 225, -45), 225)
        self.assertEqual(value_to_angle(100, 0, 100, 225, -45), -45)

    def test_linear(self):
        self.assertEqual(value_to_angle(50, 0, 100, 225, -45), 90)
        self.assertEqual(value_to_angle(25, 0, 100, 225, -45), 157.5)

    def test_not_clamped(self):
        self.assertEqual(value_to_angle(200, 0, 100, 225, -45), -315)

    def test_zero_range(self):
        self.assertEqual(value_to_angle(10, 0, 0, 225, -45), 225)

    def test_range_helpers(self):
        self.assertEqual(scale_range_to_angle_range(50, 100, 225, -45), 135)
        self.assertEqual(scale_range_to_pixel_range(25, 100, 200), 50)
        self.assertEqual(scale_range_to_pixel_range(25, 0, 200), 0)


class NiceTickSpacingTestCase(unittest.TestCase):
    def test_spacing(self):
        self.assertEqual(nice_tick_spacing(5, 23), (5, 0))
        self.assertEqual(nice_tick_spacing(5, 100), (20, 0))
        self.assertEqual(nice_tick_spacing(5, 1000), (200, 0))
        self.assertEqual(nice_tick_spacing(4, 10), (4, 0))
        self.assertEqual(nice_tick_spacing(10, 10), (1, 0))

    def test_multiplier_ten_shifts_place(self):
        spacing, digits = nice_tick_spacing(5, 0.03)
        self.assertAlmostEqual(spacing, 0.01)
        self.assertEqual(digits, 2)
        self.assertEqual(nice_tick_spacing(6, 3.5), (1, 0))

    def test_fractional(self):
        spacing, digits = nice_tick_spacing(5, 2)
        self.assertAlmostEqual(spacing, 0.4)
        self.assertEqual(digits, 1)

    def test_covers_range(self):
        for max_value in (7, 23, 100, 999, 0.37):
            spacing, _ = nice_tick_spacing(5, max_value)
            self.assertGreaterEqual(5 * spacing, max_value * 0.999)

    def test_degenerate(self):
        self.assertEqual(nice_tick_spacing(0, 10), (1.0, 0))
        self.assertEqual(nice_tick_spacing(5, 0), (1.0, 0))


class TickRangeTestCase(unittest.TestCase):
    def test_fixed_count(self):
        self.assertEqual(tick_range(0, 23, 5), TickRange(0, 25, 5, 0))
        self.assertEqual(tick_range(0, 3.5, 6), TickRange(0, 6, 6, 0))

    def test_start_at_or_below_min(self):
        tr = tick_range(-7, 23, 5)
        self.assertEqual(tr.start, -10)
        self.assertEqual(tr.end, 40)
        self.assertEqual(tr.spacing, 10)

    def test_fit_count(self):
        self.assertEqual(tick_range_fit(0, 23, 5), TickRange(0, 25, 5, 0))
        self.assertEqual(tick_range_fit(0, 3.5, 6), TickRange(0, 4, 4, 0))
        self.assertEqual(tick_range_fit(0, 5.5, 6), TickRange(0, 6, 6, 0))

    def test_fit_descending(self):
        self.assertEqual(tick_range_fit(10, 0, 5), TickRange(10, 0, 5, 0))

    def test_aligned_steps(self):
        self.assertListEqual(list(aligned_steps(-12, 12, 10)), [-10, 0, 10])
        self.assertListEqual(list(aligned_steps(8, 32, 10)), [0, 10, 20, 30])
        self.assertListEqual(list(aligned_steps(0, 10, 0)), [])

    def test_start_on_grid(self):
        tr = tick_range(0.3, 1.0, 7)
        self.assertAlmostEqual(tr.start, 0.3)
        self.assertAlmostEqual(tr.end, 1.0)
        fit = tick_range_fit(0.3, 1.0, 7)
        self.assertAlmostEqual(fit.start, 0.3)
        self.assertEqual(fit.num_ticks, 7)

    def test_values(self):
        self.assertListEqual(TickRange(0, 10, 5, 0).values(), [0, 2, 4, 6, 8, 10])
        self.assertEqual(TickRange.unit(), TickRange(0, 1, 0, 0))


class AnchorTestCase(unittest.TestCase):
    def test_offsets(self):
        self.assertEqual(Anchor.CENTER.offset(10, 20), (-5, -10))
        self.assertEqual(Anchor.TOP_LEFT.offset(10, 20), (0, 0))
        self.assertEqual(Anchor.TOP_CENTER.offset(10, 20), (-5, 0))
        self.assertEqual(Anchor.TOP_RIGHT.offset(10, 20), (-10, 0))
        self.assertEqual(Anchor.BOTTOM_CENTER.offset(10, 20), (-5, -20))
        self.assertEqual(Anchor.BOTTOM_LEFT.offset(10, 20), (0, -20))
        self.assertEqual(Anchor.LEFT_CENTER.offset(10, 20), (0, -10))
        self.assertEqual(Anchor.RIGHT_CENTER.offset(10, 20), (-10, -10))

    def test_place(self):
        self.assertEqual(Anchor.BOTTOM_RIGHT.place(100, 50, 10, 20), (90, 30))
        self.assertEqual(Anchor.CENTER.place(100, 50, 10, 20), (95, 40))


class ScaleConfigTestCase(unittest.TestCase):
    def test_color_for_reading(self):
        s = ScaleConfig()
        self.assertEqual(s.color_for_reading(20), Color.WHITE)
        self.assertEqual(s.color_for_reading(30), Color.GREEN)
        self.assertEqual(s.color_for_reading(50), Color.GREEN)
        self.assertEqual(s.color_for_reading(70), Color.RED)
        self.assertEqual(s.color_for_reading(90), Color.RED)

    def test_derived(self):
        s = ScaleConfig(scale_start=10, low_range=5, mid_range=10, high_range=20)
        self.assertEqual(s.total_range, 35)
        self.assertEqual(s.top_of_scale, 45)
        self.assertEqual(s.top_of_low_range, 15)
        self.assertEqual(s.top_of_mid_range, 25)
        self.assertEqual(s.clamp_reading(50), 45)
        self.assertEqual(s.clamp_reading(0), 10)

    def test_sanitized(self):
        s = ScaleConfig(major_spacing=5, minor_spacing=10, major_tick_length=-1, low_range=-5).sanitized()
        self.assertEqual(s.minor_spacing, 5)
        self.assertEqual(s.major_tick_length, 0)
        self.assertEqual(s.minor_tick_length, 0)
        self.assertEqual(s.low_range, 0)
        self.assertEqual(s.total_range, 70)
        self.assertFalse(s.has_major_ticks)

    def test_from_dict_colors(self):
        s = ScaleConfig.from_dict({'low_color': 'orange', 'tick_color': '#008000'})
        self.assertEqual(s.low_color, Color.ORANGE)
        self.assertEqual(s.tick_color, (0, 128, 0))


class TransformTestCase(unittest.TestCase):
    def test_rotation_turns_clockwise_on_screen(self):
        x, y = IDENTITY.rotated(90).map(1, 0)
        self.assertAlmostEqual(x, 0)
        self.assertAlmostEqual(y, 1)

    def test_local_composition(self):
        x, y = IDENTITY.translated(10, 0).rotated(90).map(1, 0)
        self.assertAlmostEqual(x, 10)
        self.assertAlmostEqual(y, 1)
        x, y = IDENTITY.rotated(90).translated(10, 0).map(0, 0)
        self.assertAlmostEqual(x, 0)
        self.assertAlmostEqual(y, 10)

    def test_properties(self):
        t = IDENTITY.rotated(-30).scaled(2)
        self.assertAlmostEqual(t.rotation, -30)
        self.assertAlmostEqual(t.scale_factor, 2)
        self.assertFalse(t.is_axis_aligned)
        self.assertTrue(IDENTITY.is_identity)
        self.assertEqual(Transform().to_svg(), 'matrix(1,0,0,1,0,0)')


class PathTestCase(unittest.TestCase):
    def test_full_arc_bounds(self):
        box = Box(0, 0, 100, 50)
        bounds = Path().arc_move_to(box, 0).arc_to(box, 0, 360).bounding_box()
        self.assertAlmostEqual(bounds.x, 0)
        self.assertAlmostEqual(bounds.y, 0)
        self.assertAlmostEqual(bounds.w, 100)
        self.assertAlmostEqual(bounds.h, 50)

    def test_arc_point(self):
        x, y = Path.arc_point(Box(0, 0, 100, 100), 90)
        self.assertAlmostEqual(x, 50)
        self.assertAlmostEqual(y, 0)

    def test_subpaths(self):
        path = Path().add_line(0, 0, 1, 1).add_polygon([(0, 0), (2, 0), (2, 2)])
        subpaths = path.subpaths()
        self.assertEqual(len(subpaths), 2)
        self.assertFalse(subpaths[0][1])
        self.assertTrue(subpaths[1][1])

    def test_pen_width_bounds(self):
        bounds = Path().add_line(0, 0, 10, 0).bounding_box(2)
        self.assertEqual(bounds, Box(-1, -1, 12, 2))


class SceneTestCase(unittest.TestCase):
    def test_slot_replaces(self):
        sc = Scene()
        sc.add(RectItem(box=Box(0, 0, 1, 1)), slot='a')
        second = sc.add(RectItem(box=Box(0, 0, 2, 2)), slot='a')
        self.assertEqual(len(sc.items), 1)
        self.assertIs(sc['a'], second)

    def test_remove_cascades(self):
        sc = Scene()
        parent = sc.add(GroupItem(), slot='p')
        sc.add(RectItem(box=Box(0, 0, 1, 1)), parent=parent, slot='c')
        self.assertEqual(len(sc), 2)
        sc.remove_slot('p')
        self.assertIsNone(sc['c'])
        self.assertListEqual(sc.items, [])

    def test_child_transform(self):
        sc = Scene()
        parent = sc.add(GroupItem(transform=IDENTITY.translated(10, 0)))
        child = sc.add(RectItem(box=Box(0, 0, 1, 1), transform=IDENTITY.translated(0, 5)), parent=parent)
        transforms = dict((id(item), t) for item, t in sc.walk())
        self.assertEqual(transforms[id(child)].map(0, 0), (10, 5))
        self.assertEqual(child.scene_transform().map(0, 0), (10, 5))

    def test_stacking(self):
        sc = Scene()
        front = sc.add(RectItem(box=Box(0, 0, 1, 1)))
        back = sc.add(RectItem(box=Box(0, 0, 1, 1), z=-10))
        self.assertListEqual([item for item, _ in sc.walk()], [back, front])

    def test_text_margin(self):
        sc = Scene()
        item = sc.text('42')
        self.assertIsInstance(item, TextItem)
        self.assertEqual(item.w - item.glyph_w, 2 * sc.style.text_margin)
        self.assertEqual(item.font_size, sc.style.font_size)

    def test_bounding_box(self):
        sc = Scene()
        sc.add(RectItem(box=Box(0, 0, 10, 10)))
        sc.add(RectItem(box=Box(0, 0, 10, 10), transform=IDENTITY.translated(20, 5)))
        self.assertEqual(sc.items_bounding_box(), Box(0, 0, 30, 15))


class GaugeBaseTestCase(unittest.TestCase):
    def test_make(self):
        self.assertIsInstance(Gauge.make(GaugeKind.DIAL, 100, 100), DialGauge)
        self.assertIsInstance(Gauge.make(GaugeKind.LINEAR_THUMB, 40, 100), ThumbGauge)
        self.assertEqual(set(GAUGE_CLASSES), set(GaugeKind))

    def test_constructed_dirty(self):
        g = LinearGauge(40, 100)
        self.assertTrue(g.dirty)
        g.set_reading(50)
        self.assertFalse(g.dirty)

    def test_configure_marks_dirty(self):
        g = LinearGauge(40, 100)
        g.set_reading(50)
        g.configure(tick_color=Color.BLUE)
        self.assertTrue(g.dirty)
        g.set_reading(50)
        self.assertFalse(g.dirty)
        g.configure(tick_color=Color.BLUE)
        self.assertFalse(g.dirty)

    def test_quiet_fields(self):
        g = LinearGauge(40, 100)
        g.set_reading(50)
        g.configure(reading_precision=2, draw_from=50)
        self.assertFalse(g.dirty)

    def test_set_size(self):
        g = LinearGauge(40, 100)
        g.set_reading(50)
        g.set_size(50, 120)
        self.assertTrue(g.dirty)
        g.set_reading(50)
        self.assertEqual(g.scene.rect, Box(0, 0, 50, 120))

    def test_zero_height(self):
        for kind in GaugeKind:
            g = Gauge.make(kind, 200, 0)
            g.apply_reading_def({})
            self.assertFalse(g.dirty, kind)

    def test_unknown_field(self):
        g = LinearGauge(40, 100)
        with self.assertRaises(TypeError):
            g.configure(thumb_width=0.1)
        with self.assertRaises(TypeError):
            g.configure(no_such_thing=1)

    def test_configure_clamps(self):
        g = DialGauge(100, 100)
        g.configure(minor_spacing=50, major_spacing=10, arc_width=-1)
        self.assertEqual(g.scale.minor_spacing, 10)
        self.assertEqual(g.options.arc_width, 0)

    def test_from_dict(self):
        g = Gauge.from_dict({'kind': 'linear', 'size': [50, 100], 'reading': 40,
                             'scale': {'tick_color': 'blue'}, 'options': {'tick_side': 'both'}})
        self.assertIsInstance(g, LinearGauge)
        self.assertEqual(g.size, (50, 100))
        self.assertEqual(g.scale.tick_color, Color.BLUE)
        self.assertEqual(g.options.tick_side, TickSide.BOTH)
        self.assertEqual(g.reading.pointer, 40)
        self.assertFalse(g.dirty)

    def test_from_dict_errors(self):
        with self.assertRaises(ValueError):
            Gauge.from_dict({'kind': 'gyro'})
        with self.assertRaises(ValueError):
            Gauge.from_dict({'size': [10, 10]})
        with self.assertRaises(ValueError):
            Gauge.from_dict({'kind': 'dial', 'scale': {'wobble': 3}})

    def test_logs_rebuild(self):
        g = DialGauge(100, 100)
        with self.assertLogs('GaugeScene', level='DEBUG') as cm:
            g.set_reading(10)
        self.assertTrue(any('rebuilding' in line for line in cm.output))


class AttitudeNormalizationTestCase(unittest.TestCase):
    def test_roll(self):
        self.assertEqual(normalize_roll(190), -170)
        self.assertEqual(normalize_roll(-200), 160)
        self.assertEqual(normalize_roll(180), 180)
        self.assertEqual(normalize_roll(-180), 180)
        self.assertEqual(normalize_roll(720 + 30), 30)

    def test_yaw(self):
        self.assertEqual(normalize_yaw(-10), 350)
        self.assertEqual(normalize_yaw(360), 0)
        self.assertEqual(normalize_yaw(725), 5)

    def test_stored_normalized(self):
        g = AttitudeGauge(300, 300)
        g.set_angles(190, 5, -10)
        self.assertEqual(g.state.roll, -170)
        self.assertEqual(g.state.pitch, 5)
        self.assertEqual(g.state.yaw, 350)


class AttitudeGaugeTestCase(unittest.TestCase):
    def setUp(self):
        self.gauge = AttitudeGauge(300, 300)

    def test_end_to_end(self):
        g = self.gauge
        g.configure(pitch_range=60)
        with patch.object(AttitudeGauge, 'compute_virtual_size', autospec=True,
                          side_effect=AttitudeGauge.compute_virtual_size) as mock_compute:
            g.set_angles(0, 0, 0)
            g.set_angles(30, 10, 45)
            self.assertEqual(mock_compute.call_count, 1)
        self.assertFalse(g.dirty)
        self.assertEqual(g.pixels_per_degree, 5)
        expected = IDENTITY.rotated(-30).translated(0, 10 * 5)
        self.assertEqual(g.sky_transform, expected)
        self.assertEqual(g.scene['sky'].transform, expected)

    def test_sky_covers_pitch(self):
        g = self.gauge
        g.set_angles(0, 0, 0)
        self.assertEqual(g.virtual_size, 5 * (180 + 60))
        self.assertIs(g.scene['ground'].parent, g.scene['sky'])
        self.assertIs(g.scene['ladder'].parent, g.scene['sky'])

    def test_collapsed_viewport(self):
        g = AttitudeGauge(200, 0)
        g.set_angles(10, 5, 90)
        self.assertFalse(g.dirty)
        self.assertEqual(g.pixels_per_degree, 0)
        self.assertIsNone(g.scene['ladder'])
        self.assertIsNone(g.scene['yaw_scale'])

    def test_pitch_ladder(self):
        g = self.gauge
        g.set_angles(0, 0, 0)
        texts = [child.text for child in g.scene['ladder'].children if isinstance(child, TextItem)]
        self.assertListEqual(texts, ['-10', '0', '10'])
        # Rungs start from the bottom of the ladder truncated toward zero
        g.set_angles(0, 20, 0)
        texts = [child.text for child in g.scene['ladder'].children if isinstance(child, TextItem)]
        self.assertListEqual(texts, ['0', '10', '20', '30'])

    def test_yaw_labels(self):
        g = self.gauge
        g.set_angles(0, 0, 0)
        texts = [child.text for child in g.scene['yaw_scale'].children if isinstance(child, TextItem)]
        self.assertIn('330', texts)
        self.assertIn('30', texts)
        self.assertNotIn('-10', texts)
        # The center readout hides the tick label under it
        self.assertEqual(texts.count('0'), 1)

    def test_alarm_colors(self):
        g = self.gauge
        g.set_angles(10, 0, 0)
        self.assertEqual(g.scene['roll_label'].children[0].brush, Color.YELLOW)
        g.set_angles(50, 0, 0)
        self.assertEqual(g.scene['roll_label'].children[0].brush, Color.RED)
        g.set_angles(0, 30, 0)
        self.assertEqual(g.scene['reticle'].children[0].pen.color, Color.RED)
        g.set_angles(0, 20, 0)
        self.assertEqual(g.scene['reticle'].children[0].pen.color, Color.YELLOW)

    def test_alarm_settings_quiet(self):
        g = self.gauge
        g.set_angles(20, 0, 0)
        g.configure(roll_alarm=10, alarm_color=Color.MAGENTA)
        self.assertFalse(g.dirty)
        g.set_angles(20, 0, 0)
        self.assertEqual(g.scene['roll_label'].children[0].brush, Color.MAGENTA)
        g.configure(pitch_range=30)
        self.assertTrue(g.dirty)

    def test_roll_label_hidden(self):
        g = self.gauge
        g.set_angles(150, 0, 0)
        self.assertIsNone(g.scene['roll_label'])
        g.set_angles(0, 0, 0)
        self.assertIsNotNone(g.scene['roll_label'])

    def test_zero_ticks_disable(self):
        g = self.gauge
        g.configure(major_spacing=0, roll_major_spacing=-5)
        g.set_angles(0, 0, 0)
        self.assertIsNone(g.scene['ladder'])
        self.assertIsNone(g.scene['roll_scale'])
        self.assertIsNone(g.scene['yaw_scale'])

    def test_update_idempotent(self):
        g = self.gauge
        g.set_angles(0, 0, 0)
        g.set_angles(30, 10, 45)
        first = g.scene.snapshot()
        g.set_angles(30, 10, 45)
        self.assertListEqual(g.scene.snapshot(), first)

    def test_rebuild_matches_update(self):
        g = self.gauge
        g.set_angles(30, 10, 45)
        rebuilt = g.scene.snapshot()
        g.set_angles(30, 10, 45)
        self.assertListEqual(g.scene.snapshot(), rebuilt)

    def test_reading_triple(self):
        g = self.gauge
        g.set_reading((10, 2, 90))
        self.assertEqual(g.state.yaw, 90)


class DialGaugeTestCase(unittest.TestCase):
    def setUp(self):
        self.gauge = DialGauge(200, 200)

    def test_build(self):
        g = self.gauge
        g.set_reading(50)
        self.assertFalse(g.dirty)
        for slot in ('band_0', 'band_1', 'band_2', 'major_ticks', 'minor_ticks', 'tick_labels', 'pointer', 'reading'):
            self.assertIsNotNone(g.scene[slot], slot)
        self.assertIsNone(g.scene['label'])
        texts = [label.text for label in g.scene['tick_labels'].children]
        self.assertListEqual(texts, [str(v) for v in range(0, 101, 10)])

    def test_pointer_color(self):
        g = self.gauge
        for reading, col in ((10, Color.WHITE), (50, Color.GREEN), (95, Color.RED)):
            g.set_reading(reading)
            self.assertEqual(g.scene['pointer'].brush, col)
            self.assertEqual(g.scene['reading'].brush, col)

    def test_pointer_rotation(self):
        g = self.gauge
        g.set_reading(0)
        self.assertEqual(g.pointer_rotation(), -315)
        g.set_reading(150)
        self.assertEqual(g.pointer_rotation(), -45)
        cx, cy = g.center_of_dial()
        self.assertEqual(g.scene['pointer'].transform, IDENTITY.translated(cx, cy).rotated(-45))

    def test_pointer_hub(self):
        g = self.gauge
        g.set_reading(50)
        hub = g.scene['pointer'].children[0]
        self.assertEqual(hub.brush, Color.BLACK)

    def test_incremental_keeps_bands(self):
        g = self.gauge
        g.set_reading(50)
        band, pointer = g.scene['band_0'], g.scene['pointer']
        g.set_reading(60)
        self.assertIs(g.scene['band_0'], band)
        self.assertIsNot(g.scene['pointer'], pointer)

    def test_reading_text(self):
        g = self.gauge
        g.set_reading(50, 51)
        self.assertEqual(g.scene['reading'].children[0].text, '51')
        g.configure(reading_precision=1)
        self.assertFalse(g.dirty)
        g.set_reading(42.5)
        self.assertEqual(g.scene['reading'].children[0].text, '42.5')

    def test_label(self):
        g = self.gauge
        g.set_reading(50)
        g.configure(label='PSI')
        self.assertTrue(g.dirty)
        g.set_reading(50)
        self.assertEqual(g.scene['label'].text, 'PSI')

    def test_zero_band_skipped(self):
        g = self.gauge
        g.configure(mid_range=0)
        g.set_reading(50)
        self.assertIsNone(g.scene['band_1'])
        self.assertIsNotNone(g.scene['band_2'])

    def test_label_offset(self):
        x, y = DialGauge.label_offset(0, 20, 10)
        self.assertAlmostEqual(x, -10)
        self.assertAlmostEqual(y, 0)
        x, y = DialGauge.label_offset(90, 20, 10)
        self.assertAlmostEqual(x, 0)
        self.assertAlmostEqual(y, 5)
        x, y = DialGauge.label_offset(180, 20, 10)
        self.assertAlmostEqual(x, 10)
        self.assertAlmostEqual(y, 0)
        x, y = DialGauge.label_offset(270, 20, 10)
        self.assertAlmostEqual(x, 0)
        self.assertAlmostEqual(y, -5)

    def test_arc_centered(self):
        g = self.gauge
        g.set_reading(50)
        bounds = g.scene['band_0'].local_box().united(g.scene['band_2'].local_box())
        self.assertGreaterEqual(bounds.x, -1)
        self.assertLessEqual(bounds.right, 201)


class LinearGaugeTestCase(unittest.TestCase):
    def setUp(self):
        self.gauge = LinearGauge(60, 200)

    def test_value_to_pixel(self):
        g = self.gauge
        self.assertEqual(g.value_to_pixel(0), 200)
        self.assertEqual(g.value_to_pixel(100), 0)
        self.assertEqual(g.value_to_pixel(50), 100)
        self.assertEqual(g.value_to_pixel(120), 0)

    def test_filled_bar(self):
        g = self.gauge
        g.set_reading(50)
        bar = g.scene['bar']
        self.assertEqual(bar.z, -10)
        fill = bar.children[0]
        self.assertEqual(fill.box, Box(0, 100, 60, 100))
        self.assertEqual(fill.brush, Color.GREEN)

    def test_draw_from(self):
        g = self.gauge
        g.set_reading(50)
        g.configure(draw_from=50)
        self.assertFalse(g.dirty)
        g.set_reading(20)
        self.assertEqual(g.scene['bar'].children[0].box, Box(0, 100, 60, 60))
        self.assertEqual(g.scene['bar'].children[0].brush, Color.WHITE)
        g.configure(draw_from=150)
        g.set_reading(20)
        self.assertEqual(g.scene['bar'].children[0].box, Box(0, 160, 60, 40))

    def test_dual_value(self):
        g = LinearGauge(200, 40, options=LinearOptions(horizontal=True, dual_value=True))
        g.set_dual_readings(20, 80)
        bar = g.scene['bar']
        self.assertEqual(bar.pen.color, (255, 128, 128))
        self.assertEqual(bar.children[0].box, Box(0, 0, 40, 20))
        self.assertEqual(bar.children[1].box, Box(0, 20, 160, 20))
        self.assertEqual(bar.children[1].brush, Color.RED)
        self.assertEqual(g.scene['reading'].text, '20 : 80')

    def test_ticks_skip_border(self):
        g = self.gauge
        g.set_reading(50)
        major = g.scene['major_ticks']
        self.assertEqual(len(major.path), 2 * 9)
        self.assertEqual(major.pen.width, LinearGauge.MAJOR_PEN)
        minor = g.scene['minor_ticks']
        self.assertEqual(len(minor.path), 2 * 49)
        self.assertEqual(minor.pen.width, LinearGauge.MINOR_PEN)

    def test_ticks_both_sides(self):
        g = self.gauge
        g.configure(tick_side=TickSide.BOTH)
        g.set_reading(50)
        self.assertEqual(len(g.scene['major_ticks'].path), 4 * 9)

    def test_edge_labels_nudged(self):
        g = self.gauge
        g.set_reading(50)
        labels = g.scene['tick_labels'].children
        first, last = labels[0], labels[-1]
        self.assertEqual(first.x, 15)
        self.assertAlmostEqual(first.y, 200 - first.h / 2 - first.margin)
        self.assertAlmostEqual(last.y, -last.h / 2 + last.margin)

    def test_reading_label_away_from_ticks(self):
        g = self.gauge
        g.set_reading(50)
        label = g.scene['reading']
        self.assertAlmostEqual(label.x + label.w, 60)
        self.assertAlmostEqual(label.y + label.h / 2, 110)
        g.configure(tick_side=TickSide.RIGHT_BOTTOM)
        g.set_reading(50)
        self.assertEqual(g.scene['reading'].x, 0)

    def test_reading_label_centered_without_ticks(self):
        g = self.gauge
        g.configure(major_tick_length=0)
        g.set_reading(50)
        cx, cy = g.scene['reading'].local_box().center
        self.assertAlmostEqual(cx, 30)
        self.assertAlmostEqual(cy, 100)
        self.assertIsNone(g.scene['tick_labels'])

    def test_update_idempotent(self):
        g = self.gauge
        g.set_reading(30)
        g.set_reading(70)
        first = g.scene.snapshot()
        g.set_reading(70)
        self.assertListEqual(g.scene.snapshot(), first)


class ThumbGaugeTestCase(unittest.TestCase):
    def setUp(self):
        self.gauge = ThumbGauge(40, 200)

    def test_track_zones(self):
        g = self.gauge
        g.set_reading(50)
        zones = g.scene['track'].children
        self.assertListEqual([z.brush for z in zones], [Color.WHITE, Color.GREEN, Color.RED])
        self.assertEqual(zones[1].box, Box(15, 60, 10, 80))
        self.assertIsNone(g.scene['reading'])

    def test_single_track(self):
        g = self.gauge
        g.configure(zones=False)
        g.set_reading(50)
        zones = g.scene['track'].children
        self.assertEqual(len(zones), 1)
        self.assertEqual(zones[0].brush, Color.GREEN)

    def test_chevron(self):
        g = self.gauge
        g.set_reading(50)
        thumb = g.scene['thumb']
        self.assertListEqual(thumb.points, [(40, 95), (40, 105), (20, 105), (0, 100), (20, 95)])
        self.assertEqual(thumb.brush, Color.WHITE)
        self.assertEqual(thumb.pen, Pen(Color.BLACK, 0.5))

    def test_rect_without_ticks(self):
        g = self.gauge
        g.configure(major_tick_length=0)
        g.set_reading(50)
        self.assertListEqual(g.scene['thumb'].points, [(0, 95), (0, 105), (40, 105), (40, 95)])

    def test_dual_thumbs_opposite(self):
        g = ThumbGauge(40, 200, options=ThumbOptions(dual_value=True))
        g.set_dual_readings(25, 75)
        tip1 = g.scene['thumb'].points[2]
        tip2 = g.scene['thumb2'].points[2]
        self.assertEqual(tip1, (0, 150))
        self.assertEqual(tip2, (40, 50))

    def test_no_thumb(self):
        g = self.gauge
        g.configure(thumb_width=0)
        g.set_reading(50)
        self.assertIsNone(g.scene['thumb'])


class PlotRangeTestCase(unittest.TestCase):
    def test_scaler(self):
        self.assertListEqual(PlotData([1, 2], scaler=10).values(), [10, 20])

    def test_include_zero(self):
        self.assertEqual(axis_range([PlotData([5.0, 9.0], include_zero=True)], 5), TickRange(0, 10, 5, 0))
        self.assertEqual(axis_range([PlotData([5.0, 9.0])], 5), TickRange(5, 9, 4, 0))

    def test_degenerate(self):
        self.assertEqual(axis_range([PlotData([])], 5), TickRange.unit())
        self.assertEqual(axis_range([PlotData([3.0])], 5), TickRange.unit())
        self.assertEqual(axis_range([PlotData([2.0, 2.0, 2.0])], 5), TickRange.unit())
        self.assertEqual(axis_range([], 5), TickRange.unit())

    def test_dual_axis_reconcile(self):
        x = PlotData([0.0, 1.0])
        layout = PlotLayout.compute(Box(0, 0, 400, 300), x, [PlotData([0.0, 3.5])], [PlotData([0.0, 5.5])], 5, 6)
        self.assertEqual(layout.y_range.num_ticks, 6)
        self.assertEqual(layout.r_range.num_ticks, 6)
        for y, r in zip(layout.y_range.values(), layout.r_range.values()):
            self.assertAlmostEqual(layout.y_pixel(y), layout.r_pixel(r))

    def test_scale_equals_x(self):
        x = PlotData([0.0, 10.0])
        layout = PlotLayout.compute(Box(0, 0, 400, 300), x, [PlotData([0.0, 2.0])], [], 5, 5,
                                    y_scale_equals_x=True)
        self.assertEqual(layout.y_scale, -layout.x_scale)

    def test_aspect_ratio(self):
        x = PlotData([0.0, 10.0])
        layout = PlotLayout.compute(Box(0, 0, 400, 300), x, [PlotData([0.0, 10.0])], [], 5, 5, aspect_ratio=1)
        self.assertAlmostEqual(layout.x_scale * layout.x_range.span, 300)
        self.assertAlmostEqual(-layout.y_scale * layout.y_range.span, 300)


class PlotTestCase(unittest.TestCase):
    def setUp(self):
        self.x = PlotData([0.0, 1.0, 2.0, 3.0, 4.0], title='Time')
        self.y = PlotData([0.0, 1.0, 4.0, 9.0, 16.0], color=Color.BLUE, title='Square')
        self.r = PlotData([0.0, 1.0, 1.4, 1.7, 2.0], color=Color.RED, title='Root')

    def test_generate(self):
        plot = Plot(400, 300).generate_plot('Curves', self.x, [self.y], [self.r])
        for slot in ('grid', 'x_axis', 'y_axis', 'r_axis', 'title', 'y_0', 'r_0'):
            self.assertIsNotNone(plot.scene[slot], slot)
        self.assertEqual(plot.scene['y_0'].pen.color, Color.BLUE)
        self.assertEqual(len(plot.scene['y_0'].path), 5)

    def test_grid_lines(self):
        plot = Plot(400, 300).generate_plot('', self.x, [self.y])
        layout = plot.layout
        lines = (layout.x_range.num_ticks * 2 + 1) + (layout.y_range.num_ticks * 2 + 1)
        self.assertEqual(len(plot.scene['grid'].path), 2 * lines)
        self.assertEqual(plot.scene['grid'].pen.color, Color.GREY)

    def test_fit_all_in_view(self):
        plot = Plot(400, 300).generate_plot('Curves', self.x, [self.y], [self.r])
        bounds = plot.scene.view_transform.map_box(plot.scene.items_bounding_box())
        self.assertGreater(bounds.x, -1e-6)
        self.assertGreater(bounds.y, -1e-6)
        self.assertLess(bounds.right, 400 + 1e-6)
        self.assertLess(bounds.bottom, 300 + 1e-6)
        self.assertTrue(abs(bounds.w - 400) < 1e-6 or abs(bounds.h - 300) < 1e-6)
        cx, cy = bounds.center
        self.assertAlmostEqual(cx, 200)
        self.assertAlmostEqual(cy, 150)

    def test_blended_axis(self):
        blue = PlotData([0.0, 1.0, 2.0, 3.0, 4.0], color=Color.BLUE)
        plot = Plot().generate_plot('', self.x, [self.y], [self.r, blue])
        self.assertEqual(plot.scene['r_axis'].children[0].pen.color, (128, 0, 128))

    def test_first_label_skipped(self):
        untitled = PlotData([0.0, 1.0, 4.0, 9.0, 16.0], draw_first_label=False)
        plot = Plot().generate_plot('', self.x, [untitled])
        labels = [c for c in plot.scene['y_axis'].children if isinstance(c, TextItem)]
        self.assertEqual(len(labels), plot.layout.y_range.num_ticks)

    def test_mismatched_lengths(self):
        short = PlotData([1.0, 2.0, 3.0])
        plot = Plot().generate_plot('', self.x, [short, PlotData([1.0])])
        self.assertEqual(len(plot.scene['y_0'].path), 3)
        self.assertIsNone(plot.scene['y_1'])

    def test_region_adds(self):
        plot = Plot(400, 300)
        plot.generate_plot('A', self.x, [self.y], region=Box(0, 0, 200, 150))
        count = len(plot.scene)
        plot.generate_plot('B', self.x, [self.y], region=Box(200, 0, 200, 150))
        self.assertGreater(len(plot.scene), count)
        self.assertIsNotNone(plot.scene['grid'])
        self.assertIsNotNone(plot.scene['grid_1'])
        self.assertIsNotNone(plot.scene['y_0_1'])
        self.assertIsNone(plot.scene.view_transform)
        plot.generate_plot('C', self.x, [self.y])
        self.assertIsNone(plot.scene['grid_1'])

    def test_from_dict(self):
        plot = Plot.from_dict({'title': 'T', 'size': [300, 200], 'x_ticks': 4,
                               'x': {'data': [0.0, 1.0, 2.0]}, 'y': [{'data': [1.0, 3.0, 2.0], 'color': 'blue'}]})
        self.assertEqual(plot.size, (300, 200))
        self.assertEqual(plot.scene['y_0'].pen.color, Color.BLUE)
        with self.assertRaises(ValueError):
            Plot.from_dict({'y': []})
        with self.assertRaises(ValueError):
            Plot.from_dict({'x': {'data': [0.0, 1.0]}, 'y': [{'values': [1.0]}]})


class RenderingTestCase(unittest.TestCase):
    def setUp(self):
        self.panel = Panel.from_dict('Test', {
            'gauges': [{'kind': 'dial', 'size': [120, 120], 'reading': 40},
                       {'kind': 'attitude', 'size': [120, 120], 'roll': 20, 'pitch': 5},
                       {'kind': 'linear_thumb', 'size': [40, 120], 'reading': 70}],
            'plots': [{'size': [160, 120], 'x': {'data': [0.0, 1.0, 2.0]}, 'y': [{'data': [2.0, 0.0, 1.0]}]}],
        })

    def test_dims(self):
        self.assertEqual(self.panel.dims(), (120 + 120 + 40 + 160 + 50, 140))

    def test_png(self):
        img = render_panel(self.panel, OutFormat.PNG)
        self.assertIsInstance(img, Image.Image)
        self.assertEqual(img.size, self.panel.dims())
        self.assertEqual(img.getpixel((1, 1)), (255, 255, 255, 255))
        self.assertGreater(len(img.getcolors(img.width * img.height)), 2)

    def test_svg(self):
        drawing = render_panel(self.panel, OutFormat.SVG)
        self.assertIsInstance(drawing, svg.Drawing)
        text = drawing.as_svg()
        self.assertIn('<path', text)
        self.assertIn('linearGradient', text)
        self.assertIn('clipPath', text)

    def test_scenes_clipped(self):
        img = render_panel(Panel.from_example('Demo'), OutFormat.PNG)
        white = (255, 255, 255, 255)
        # Dial corner, then the gap between the dial and the attitude gauge
        self.assertEqual(img.getpixel((12, 12)), white)
        self.assertEqual(img.getpixel((235, 120)), white)
        self.assertNotEqual(img.getpixel((250, 20)), white)

    def test_math_label_svg(self):
        g = DialGauge(120, 120)
        g.configure(label=r'\sqrt{x}')
        g.set_reading(10)
        drawing = image_for_rendering(120, 120, OutFormat.SVG)
        Renderer.to_image(drawing).draw_scene(g.scene)
        self.assertIn('<svg', drawing.as_svg())

    def test_example_panels(self):
        names = set(Panel.example_names())
        self.assertIn('Demo', names)
        demo = Panel.from_example('Demo')
        self.assertEqual([g.kind for g in demo.gauges],
                         [GaugeKind.DIAL, GaugeKind.ATTITUDE, GaugeKind.LINEAR, GaugeKind.LINEAR, GaugeKind.LINEAR_THUMB])
        self.assertTrue(demo.gauges[3].options.dual_value)
        plot_panel = Panel.load(os.path.join(Panel.example_dir_path, 'Panel-Plot.toml'))
        self.assertEqual(plot_panel.name, 'Plot')
        self.assertEqual(len(plot_panel.plots), 2)

    def test_missing_kind(self):
        with self.assertRaises(ValueError):
            Panel.from_dict('Bad', {'gauges': [{'size': [10, 10]}]})


if __name__ == '__main__':
    unittest.main()
