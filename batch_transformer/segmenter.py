from __future__ import annotations

import os
from typing import Any, Optional

import numpy as np
import torch
from PIL import Image

from .buffer import PixelBuffer, SegmentationMask
from .config import DEFAULT_SEGMENTATION_MODEL, SEGMENTATION_INPUT_SIZE, SEGMENTATION_MEAN, SEGMENTATION_STD


def get_device(preferred: Optional[str] = None) -> torch.device:
    """
    Explicit device if given, else CUDA, then MPS, then CPU.
    """
    if preferred:
        return torch.device(preferred)
    if torch.cuda.is_available():
        return torch.device("cuda")
    if torch.backends.mps.is_available():
        return torch.device("mps")
    return torch.device("cpu")


def load_hf_segmentation_model(hf_repo: str, device: torch.device) -> torch.nn.Module:
    """
    Load a saliency model via Hugging Face transformers (trust_remote_code).
    """
    try:
        from transformers import AutoModelForImageSegmentation
    except Exception as e:  # noqa: BLE001
        raise RuntimeError("transformers is not installed. Run: pip install transformers") from e

    model = AutoModelForImageSegmentation.from_pretrained(hf_repo, trust_remote_code=True)
    model.eval()
    for p in model.parameters():
        p.requires_grad_(False)
    return model.to(dtype=torch.float32).to(device)


def load_torchscript_model(model_path: str, device: torch.device) -> torch.nn.Module:
    if not os.path.exists(model_path):
        raise FileNotFoundError(f"Model not found: {model_path}")
    try:
        # Load on CPU first, then cast; some archives carry float64 attributes.
        model = torch.jit.load(model_path, map_location="cpu")
    except Exception as e:  # noqa: BLE001 - surface a helpful error
        raise RuntimeError(
            "Failed to load model. Expected a TorchScript module saved with torch.jit.save()."
        ) from e
    model.eval()
    return model.to(dtype=torch.float32).to(device)


def to_model_input(buffer: PixelBuffer, size: int = SEGMENTATION_INPUT_SIZE) -> torch.Tensor:
    """
    RGBA buffer -> normalized float32 tensor (1, 3, size, size).
    The model sees a plain square resize; the mask comes back at that size and
    the compositor stretches it back to the source aspect.
    """
    rgb = buffer.to_pil().convert("RGB").resize((size, size), Image.Resampling.BILINEAR)
    x = np.asarray(rgb, dtype=np.float32) / 255.0
    mean = np.array(SEGMENTATION_MEAN, dtype=np.float32).reshape(1, 1, 3)
    std = np.array(SEGMENTATION_STD, dtype=np.float32).reshape(1, 1, 3)
    x = (x - mean) / std
    x = np.transpose(x, (2, 0, 1))  # CHW
    return torch.from_numpy(np.ascontiguousarray(x)).unsqueeze(0)


def _extract_primary_output(y: Any) -> Any:
    """
    Segmentation models may return a tensor, a (nested) tuple/list of stage
    outputs, or a dict-like ModelOutput. Pick the final full-resolution map.
    """
    while isinstance(y, (list, tuple)) and len(y) > 0:
        y = y[0]
    if isinstance(y, dict):
        for k in ("logits", "pred", "alpha", "mask"):
            v = y.get(k, None)
            if isinstance(v, torch.Tensor):
                return v
        return next(iter(y.values()))
    return y


def _to_unit_range(y: torch.Tensor) -> torch.Tensor:
    # RMBG already emits probabilities; logits-style outputs need a sigmoid.
    if float(y.min()) < 0.0 or float(y.max()) > 1.0:
        return torch.sigmoid(y)
    return y


def predict_mask(model: torch.nn.Module, x: torch.Tensor, device: torch.device) -> np.ndarray:
    """
    Forward pass -> uint8 saliency map (H, W), min-max stretched to 0..255.
    """
    if x.ndim != 4 or x.shape[0] != 1:
        raise ValueError(f"Expected input tensor (1,3,H,W), got {tuple(x.shape)}")

    with torch.no_grad():
        y = model(x.to(device))
    y = _extract_primary_output(y)
    if not isinstance(y, torch.Tensor):
        raise RuntimeError(f"Model output is not a tensor: {type(y)}")

    if y.ndim == 4:
        y = y[0, 0]
    elif y.ndim == 3:
        y = y[0]
    elif y.ndim != 2:
        raise RuntimeError(f"Unexpected output tensor shape: {tuple(y.shape)}")

    p = _to_unit_range(y.float())
    if torch.isnan(p).any():
        raise RuntimeError("NaNs detected in predicted mask.")

    lo, hi = p.min(), p.max()
    if float(hi - lo) > 0:
        p = (p - lo) / (hi - lo)
    m = p.detach().to("cpu").numpy()
    return np.floor(np.clip(m, 0.0, 1.0) * 255.0 + 0.5).astype(np.uint8)


class SaliencySegmenter:
    """
    Default segmentation collaborator. The model is loaded lazily on first
    call and reused for every later image handled by this instance.

    model_spec: "hf:<repo>" for a Hugging Face model, or a TorchScript file path.
    """

    def __init__(
        self,
        model_spec: str = DEFAULT_SEGMENTATION_MODEL,
        device: Optional[str] = None,
        input_size: int = SEGMENTATION_INPUT_SIZE,
    ):
        self.model_spec = model_spec
        self.input_size = input_size
        self.device = get_device(device)
        self._model: Optional[torch.nn.Module] = None

    def _load(self) -> torch.nn.Module:
        if self._model is None:
            torch.set_default_dtype(torch.float32)
            if self.model_spec.startswith("hf:"):
                self._model = load_hf_segmentation_model(self.model_spec[len("hf:") :], self.device)
            else:
                self._model = load_torchscript_model(self.model_spec, self.device)
        return self._model

    def __call__(self, image: PixelBuffer) -> SegmentationMask:
        model = self._load()
        x = to_model_input(image, self.input_size)
        return SegmentationMask(predict_mask(model, x, self.device))
