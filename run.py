from __future__ import annotations

import argparse
import logging
import math
import mimetypes
import os
import time
from pathlib import Path

from dotenv import load_dotenv
from tqdm import tqdm

from batch_transformer.config import DEFAULT_SEGMENTATION_MODEL, INPUT_EXTENSIONS
from batch_transformer.contracts import ImageJob, JobStatus, OutputFormat, PipelineConfig
from batch_transformer.io import download_filename, load_config, unique_filename, write_bytes
from batch_transformer.pipeline import process_job


def _iter_images(input_dir: Path):
    for p in sorted(input_dir.rglob("*")):
        if p.is_file() and p.suffix.lower() in INPUT_EXTENSIONS:
            yield p


def _format_bytes(n: int) -> str:
    if n <= 0:
        return "0 B"
    units = ("B", "KB", "MB", "GB", "TB")
    i = min(int(math.log(n, 1024)), len(units) - 1)
    return f"{n / 1024**i:.1f} {units[i]}"


def main() -> int:
    load_dotenv()

    parser = argparse.ArgumentParser(description="Batch image transform (background removal, crop, resize, recompress).")
    parser.add_argument("--input", required=True, type=str, help="Input directory containing images.")
    parser.add_argument("--output", required=True, type=str, help="Output directory.")
    parser.add_argument("--config", type=str, default=None, help="Pipeline config JSON (nested or exported settings).")
    parser.add_argument(
        "--model",
        default=os.getenv("BATCH_TRANSFORMER_MODEL", DEFAULT_SEGMENTATION_MODEL),
        type=str,
        help="Segmentation model: 'hf:<repo>' or a TorchScript file path.",
    )
    parser.add_argument("--device", default=os.getenv("BATCH_TRANSFORMER_DEVICE"), type=str, help="torch device.")
    parser.add_argument("--format", default=None, type=str, help="Force output format (PNG, JPEG, WEBP, GIF).")
    parser.add_argument("--verbose", action="store_true", help="Log pipeline details.")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
    )

    input_dir = Path(args.input)
    output_dir = Path(args.output)
    if not input_dir.exists():
        raise FileNotFoundError(f"Input dir not found: {input_dir}")

    config = load_config(args.config) if args.config else PipelineConfig()
    if args.format:
        config = config.model_copy(update={"output_format": OutputFormat.parse(args.format)})

    segment = None
    if config.background_removal.enabled:
        # Imported here so runs without background removal never load torch.
        from batch_transformer.segmenter import SaliencySegmenter

        segment = SaliencySegmenter(args.model, device=args.device)

    images = list(_iter_images(input_dir))
    if not images:
        print(f"No images found under {input_dir}")
        return 0

    name_counts: dict[str, dict[str, int]] = {}
    failed = 0
    before = after = 0

    total0 = time.perf_counter()
    for img_path in tqdm(images, desc="Processing", unit="img"):
        job = ImageJob(
            name=img_path.name,
            source=img_path.read_bytes(),
            mime_type=mimetypes.guess_type(img_path.name)[0] or "",
        )
        process_job(job, config, segment=segment)

        if job.status is not JobStatus.DONE:
            failed += 1
            print(f"{img_path.name}: ERROR {job.error}")
            continue

        rel_dir = img_path.parent.relative_to(input_dir)
        filename = unique_filename(
            download_filename(img_path.name, job.result_mime_type or ""), name_counts.setdefault(str(rel_dir), {})
        )
        write_bytes(str(output_dir / rel_dir / filename), job.result or b"")

        before += job.original_size
        after += job.result_size or 0
        stages = " ".join(f"{k}={v:.3f}s" for k, v in job.timings.items())
        print(
            f"{img_path.name}: {_format_bytes(job.original_size)} -> {_format_bytes(job.result_size or 0)} "
            f"total={sum(job.timings.values()):.3f}s ({stages})"
        )

    total1 = time.perf_counter()
    print(
        f"Done. {len(images) - failed}/{len(images)} images in {total1-total0:.2f}s "
        f"({_format_bytes(before)} -> {_format_bytes(after)})"
    )
    return 1 if failed else 0


if __name__ == "__main__":
    raise SystemExit(main())
