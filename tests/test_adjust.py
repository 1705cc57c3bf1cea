import unittest

import numpy as np

from batch_transformer.adjust import blend_grayscale
from batch_transformer.buffer import PixelBuffer


class TestGrayscale(unittest.TestCase):
    def test_full_intensity_red(self):
        out = blend_grayscale(PixelBuffer(np.array([[[255, 0, 0, 255]]], dtype=np.uint8)), 100)
        self.assertEqual(tuple(out.pixels[0, 0]), (85, 85, 85, 255))

    def test_half_intensity_rounding(self):
        # 255*.5 + 85*.5 = 170 ; 0*.5 + 85*.5 = 42.5 -> 42 (ties to even)
        out = blend_grayscale(PixelBuffer(np.array([[[255, 0, 0, 255]]], dtype=np.uint8)), 50)
        self.assertEqual(tuple(out.pixels[0, 0]), (170, 42, 42, 255))

    def test_transparent_pixels_untouched(self):
        px = np.array([[[255, 0, 0, 0], [0, 0, 255, 255]]], dtype=np.uint8)
        out = blend_grayscale(PixelBuffer(px), 100)
        self.assertEqual(tuple(out.pixels[0, 0]), (255, 0, 0, 0))
        self.assertEqual(tuple(out.pixels[0, 1]), (85, 85, 85, 255))

    def test_zero_intensity_identity(self):
        rng = np.random.default_rng(7)
        px = rng.integers(0, 256, size=(5, 5, 4), dtype=np.uint8)
        out = blend_grayscale(PixelBuffer(px), 0)
        np.testing.assert_array_equal(out.pixels, px)


if __name__ == "__main__":
    unittest.main()
