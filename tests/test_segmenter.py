import unittest

import numpy as np
import torch

from batch_transformer.buffer import PixelBuffer, SegmentationMask
from batch_transformer.segmenter import SaliencySegmenter, predict_mask, to_model_input


class _BoxModel(torch.nn.Module):
    """Stands in for a saliency net: nested stage outputs, logits in the first."""

    def forward(self, x: torch.Tensor):
        _, _, h, w = x.shape
        y = torch.full((1, 1, h, w), -6.0)
        y[:, :, h // 4 : 3 * h // 4, w // 4 : 3 * w // 4] = 6.0
        return [[y, torch.zeros_like(y)], torch.zeros(1)]


class TestSegmenter(unittest.TestCase):
    def _make_buffer(self, h: int, w: int) -> PixelBuffer:
        px = np.zeros((h, w, 4), dtype=np.uint8)
        px[..., 0] = 10
        px[..., 1] = 20
        px[..., 2] = 30
        px[..., 3] = 255
        return PixelBuffer(px)

    def test_model_input_is_square_and_normalized(self):
        x = to_model_input(self._make_buffer(30, 90), size=32)
        self.assertEqual(tuple(x.shape), (1, 3, 32, 32))
        self.assertEqual(x.dtype, torch.float32)
        # mean 0.5, std 1.0
        self.assertAlmostEqual(float(x[0, 0, 0, 0]), 10 / 255.0 - 0.5, places=5)

    def test_predict_mask_stretches_to_full_range(self):
        m = predict_mask(_BoxModel(), torch.zeros(1, 3, 16, 16), torch.device("cpu"))
        self.assertEqual(m.shape, (16, 16))
        self.assertEqual(m.dtype, np.uint8)
        self.assertEqual(int(m[8, 8]), 255)
        self.assertEqual(int(m[0, 0]), 0)

    def test_predict_mask_rejects_batches(self):
        with self.assertRaises(ValueError):
            predict_mask(_BoxModel(), torch.zeros(2, 3, 8, 8), torch.device("cpu"))

    def test_segmenter_returns_model_resolution_mask(self):
        seg = SaliencySegmenter(model_spec="unused.pt", device="cpu")
        seg._model = _BoxModel()
        seg.input_size = 24
        mask = seg(self._make_buffer(10, 40))
        self.assertIsInstance(mask, SegmentationMask)
        self.assertEqual(mask.channels, 1)
        self.assertEqual((mask.width, mask.height), (24, 24))


if __name__ == "__main__":
    unittest.main()
