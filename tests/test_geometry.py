import unittest

import numpy as np

from batch_transformer.buffer import PixelBuffer
from batch_transformer.errors import EmptyImage
from batch_transformer.geometry import auto_crop, compute_target_size, find_content_box, resize


def _canvas_with_square(w: int, h: int, x0: int, y0: int, size: int) -> PixelBuffer:
    px = np.zeros((h, w, 4), dtype=np.uint8)
    px[y0 : y0 + size, x0 : x0 + size] = (255, 0, 0, 255)
    return PixelBuffer(px)


class TestAutoCrop(unittest.TestCase):
    def test_red_square_with_margin(self):
        buf = _canvas_with_square(300, 250, 50, 70, 100)
        out = auto_crop(buf, margin=10)

        self.assertEqual(out.size, (120, 120))
        self.assertTrue(np.all(out.pixels[10:110, 10:110] == np.array([255, 0, 0, 255], dtype=np.uint8)))
        margin = np.ones((120, 120), dtype=bool)
        margin[10:110, 10:110] = False
        self.assertTrue(np.all(out.pixels[margin] == 0))

    def test_idempotent(self):
        buf = _canvas_with_square(64, 48, 5, 9, 20)
        buf.pixels[30, 40] = (0, 0, 0, 1)  # any visible pixel counts as content
        once = auto_crop(buf, margin=3)
        twice = auto_crop(once, margin=3)
        np.testing.assert_array_equal(once.pixels, twice.pixels)

    def test_fully_transparent_is_noop(self):
        buf = PixelBuffer.blank(10, 10)
        self.assertIs(auto_crop(buf, margin=5), buf)

    def test_already_framed_is_noop(self):
        buf = _canvas_with_square(20, 20, 0, 0, 20)
        self.assertIs(auto_crop(buf, margin=0), buf)

    def test_content_box(self):
        buf = _canvas_with_square(30, 30, 4, 6, 5)
        box = find_content_box(buf)
        self.assertEqual((box.min_x, box.min_y, box.max_x, box.max_y), (4, 6, 8, 10))
        self.assertEqual((box.width, box.height), (5, 5))

    def test_empty_image(self):
        with self.assertRaises(EmptyImage):
            auto_crop(PixelBuffer.blank(0, 5), margin=1)


class TestResize(unittest.TestCase):
    def test_keep_ratio_scenario(self):
        self.assertEqual(compute_target_size(200, 100, 50, 100, True), (50, 25))

    def test_ignore_ratio(self):
        self.assertEqual(compute_target_size(200, 100, 50, 100, False), (50, 100))

    def test_missing_or_invalid_axis_uses_current(self):
        self.assertEqual(compute_target_size(200, 100, 100, None, True), (100, 50))
        self.assertEqual(compute_target_size(200, 100, None, 0, True), (200, 100))
        self.assertEqual(compute_target_size(200, 100, -5, 40, False), (200, 40))

    def test_dimension_floor_of_one(self):
        self.assertEqual(compute_target_size(1000, 10, 10, None, True), (10, 1))

    def test_round_half_up(self):
        # 3 * 0.5 = 1.5 -> 2
        self.assertEqual(compute_target_size(4, 3, 2, None, True), (2, 2))

    def test_aspect_ratio_law(self):
        cases = [(1920, 1080, 200, None), (333, 777, None, 100), (640, 480, 123, 321), (17, 3, 5, 5)]
        for w, h, tw, th in cases:
            nw, nh = compute_target_size(w, h, tw, th, True)
            ratio = min((tw or w) / w, (th or h) / h)
            self.assertLessEqual(abs(nw - w * ratio), 0.5 + 1e-9)
            self.assertLessEqual(abs(nh - h * ratio), max(0.5, 1 - h * ratio) + 1e-9)

    def test_resize_pixels(self):
        buf = PixelBuffer(np.full((4, 4, 4), (255, 0, 0, 255), dtype=np.uint8))
        out = resize(buf, 2, None, True)
        self.assertEqual(out.size, (2, 2))
        self.assertTrue(np.all(out.pixels == np.array([255, 0, 0, 255], dtype=np.uint8)))

    def test_no_op_when_size_unchanged(self):
        buf = PixelBuffer.blank(8, 4)
        self.assertIs(resize(buf, 8, 4, True), buf)

    def test_transparent_colour_does_not_bleed(self):
        px = np.zeros((2, 2, 4), dtype=np.uint8)
        px[:, 0] = (255, 0, 0, 255)
        px[:, 1] = (0, 255, 0, 0)
        out = resize(PixelBuffer(px), 8, 8, False)
        visible = out.pixels[..., 3] > 0
        self.assertTrue(visible.any())
        self.assertTrue(np.all(out.pixels[..., 1][visible] == 0))


if __name__ == "__main__":
    unittest.main()
