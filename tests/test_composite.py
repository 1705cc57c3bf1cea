import unittest

import numpy as np

from batch_transformer.buffer import PixelBuffer
from batch_transformer.composite import apply_mask, flatten, resample_alpha
from batch_transformer.errors import EmptyImage


def _solid(h: int, w: int, rgba) -> PixelBuffer:
    px = np.zeros((h, w, 4), dtype=np.uint8)
    px[...] = rgba
    return PixelBuffer(px)


def _mask(alpha: np.ndarray) -> PixelBuffer:
    px = np.full(alpha.shape + (4,), 255, dtype=np.uint8)
    px[..., 3] = alpha
    return PixelBuffer(px)


class TestApplyMask(unittest.TestCase):
    def test_rgb_untouched_alpha_multiplied(self):
        orig = _solid(3, 3, (12, 34, 56, 200))
        out = apply_mask(orig, _mask(np.full((3, 3), 128, dtype=np.uint8)))
        np.testing.assert_array_equal(out.pixels[..., :3], orig.pixels[..., :3])
        # round(200 * 128 / 255) = 100
        self.assertTrue(np.all(out.pixels[..., 3] == 100))

    def test_low_res_mask_resampled_to_source_size(self):
        orig = _solid(40, 60, (255, 0, 0, 255))
        alpha = np.zeros((10, 15), dtype=np.uint8)
        alpha[3:7, 4:11] = 255
        out = apply_mask(orig, _mask(alpha))

        self.assertEqual(out.size, (60, 40))
        self.assertEqual(int(out.pixels[20, 30, 3]), 255)
        self.assertEqual(int(out.pixels[0, 0, 3]), 0)
        self.assertEqual(int(out.pixels[39, 59, 3]), 0)

    def test_does_not_mutate_original(self):
        orig = _solid(2, 2, (1, 2, 3, 255))
        apply_mask(orig, _mask(np.zeros((2, 2), dtype=np.uint8)))
        self.assertTrue(np.all(orig.pixels[..., 3] == 255))

    def test_resample_same_size_is_copy(self):
        m = _mask(np.arange(6, dtype=np.uint8).reshape(2, 3))
        np.testing.assert_array_equal(resample_alpha(m, 3, 2), m.pixels[..., 3])

    def test_empty_original(self):
        with self.assertRaises(EmptyImage):
            apply_mask(PixelBuffer.blank(0, 4), _mask(np.zeros((2, 2), dtype=np.uint8)))


class TestFlatten(unittest.TestCase):
    def test_transparent_becomes_white_opaque_stays(self):
        px = np.zeros((1, 3, 4), dtype=np.uint8)
        px[0, 0] = (0, 0, 0, 0)
        px[0, 1] = (255, 0, 0, 255)
        px[0, 2] = (0, 0, 0, 128)
        out = flatten(PixelBuffer(px))

        self.assertEqual(tuple(out.pixels[0, 0]), (255, 255, 255, 255))
        self.assertEqual(tuple(out.pixels[0, 1]), (255, 0, 0, 255))
        # half-transparent black over white -> mid gray
        self.assertTrue(np.all(np.abs(out.pixels[0, 2, :3].astype(int) - 127) <= 1))
        self.assertTrue(np.all(out.pixels[..., 3] == 255))

    def test_keeps_dimensions(self):
        out = flatten(PixelBuffer.blank(7, 5))
        self.assertEqual(out.size, (7, 5))


if __name__ == "__main__":
    unittest.main()
