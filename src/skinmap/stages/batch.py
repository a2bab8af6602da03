from __future__ import annotations

from pathlib import Path
import json
import traceback
from concurrent.futures import ProcessPoolExecutor, as_completed
from dataclasses import asdict

import cv2
import numpy as np
from tqdm import tqdm

from ..detectors.person_segmentation import SegmenterConfig
from ..schemas.detection import DetectionRecord, SkinDetectionResult, Status
from ..util.image_io import IMAGE_EXTS, load_rgb
from .detect import SkinDetector

# BGR, one colour per body part for debug overlays.
BODY_PART_COLORS = {
    "face": (38, 38, 220),
    "neck": (12, 88, 234),
    "arm": (237, 58, 124),
    "hand": (235, 99, 37),
    "torso": (178, 145, 8),
    "leg": (105, 150, 5),
    "foot": (81, 65, 55),
    "unknown": (160, 160, 160),
}

def _iter_images(dataset_dir: Path) -> list[Path]:
    out = [p for p in dataset_dir.rglob("*") if p.is_file() and p.suffix.lower() in IMAGE_EXTS]
    out.sort()
    return out

def _safe_relpath(p: Path, root: Path) -> str:
    try:
        return p.relative_to(root).as_posix()
    except ValueError:
        return p.as_posix()

def _image_id_from_rel(rel: str) -> str:
    base = rel.replace("/", "__")
    base = "".join(ch if (ch.isalnum() or ch in "._-") else "_" for ch in base)
    return base.replace(".", "_")

def draw_region_overlay(bgr: np.ndarray, result: SkinDetectionResult, *, alpha: float = 0.35) -> np.ndarray:
    """Hull polygons filled per body part, labelled with id and part name."""
    out = bgr.copy()
    fill = bgr.copy()
    for region in result.regions:
        color = BODY_PART_COLORS.get(region.body_part, BODY_PART_COLORS["unknown"])
        if len(region.polygon) >= 3:
            pts = np.array([[int(round(p.x)), int(round(p.y))] for p in region.polygon], dtype=np.int32)
            cv2.fillPoly(fill, [pts], color)
            cv2.polylines(out, [pts], True, color, 2, cv2.LINE_AA)
    out = cv2.addWeighted(fill, alpha, out, 1.0 - alpha, 0)

    for region in result.regions:
        x = int(round(region.center_point.x))
        y = int(round(region.center_point.y))
        label = f"{region.id.rsplit('_', 1)[-1]}:{region.body_part}"
        cv2.putText(out, label, (x, y), cv2.FONT_HERSHEY_SIMPLEX, 0.45, (0, 0, 0), 3, cv2.LINE_AA)
        cv2.putText(out, label, (x, y), cv2.FONT_HERSHEY_SIMPLEX, 0.45, (255, 255, 255), 1, cv2.LINE_AA)

    summary = f"{len(result.regions)} regions, {result.skin_coverage_percentage:.1f}% skin"
    cv2.putText(out, summary, (10, 26), cv2.FONT_HERSHEY_SIMPLEX, 0.65, (0, 0, 0), 4, cv2.LINE_AA)
    cv2.putText(out, summary, (10, 26), cv2.FONT_HERSHEY_SIMPLEX, 0.65, (255, 255, 255), 1, cv2.LINE_AA)
    return out

# ---- multiprocessing worker state ----
_DETECTOR: SkinDetector | None = None
_WORKER_CFG: SegmenterConfig | None = None

def _init_worker(cfg_dict: dict | None = None):
    global _DETECTOR, _WORKER_CFG
    _WORKER_CFG = SegmenterConfig(**cfg_dict) if cfg_dict else SegmenterConfig()
    _DETECTOR = SkinDetector(cfg=_WORKER_CFG)

def _process_one(
    image_path: Path,
    dataset_dir: Path,
    out_dir: Path,
    debug_overlays: bool,
    save_masks: bool,
) -> tuple[str, bool, float]:
    global _DETECTOR
    if _DETECTOR is None:
        _DETECTOR = SkinDetector(cfg=_WORKER_CFG or SegmenterConfig())

    rel = _safe_relpath(image_path, dataset_dir)
    image_id = _image_id_from_rel(rel)
    record_path = out_dir / "results" / f"{image_id}.json"
    w = h = 0

    try:
        rgb = load_rgb(image_path)
        h, w = rgb.shape[:2]
        result = _DETECTOR.detect_skin_areas(rgb)

        if save_masks:
            if result.person_mask is not None:
                cv2.imwrite(str(out_dir / "masks" / f"{image_id}_person.png"), result.person_mask)
            if result.skin_mask is not None:
                cv2.imwrite(str(out_dir / "masks" / f"{image_id}_skin.png"), result.skin_mask)

        if debug_overlays and result.success:
            bgr = cv2.cvtColor(rgb, cv2.COLOR_RGB2BGR)
            cv2.imwrite(str(out_dir / "overlays" / f"{image_id}.png"), draw_region_overlay(bgr, result))

        status = Status(ok=result.success, errors=[] if result.success else [result.message])
        record = DetectionRecord(
            image_id=image_id,
            rel_image_path=rel,
            width=w,
            height=h,
            status=status,
            result=result,
            meta={"visible_body_parts": result.visible_body_parts},
        )
        record_path.parent.mkdir(parents=True, exist_ok=True)
        record_path.write_text(record.model_dump_json(indent=2))
        return (image_id, result.success, result.skin_coverage_percentage)

    except Exception as e:
        tb = traceback.format_exc()
        record = DetectionRecord(
            image_id=image_id,
            rel_image_path=rel,
            width=w,
            height=h,
            status=Status(ok=False, errors=[f"{type(e).__name__}: {e}"]),
            meta={"traceback": tb},
        )
        record_path.parent.mkdir(parents=True, exist_ok=True)
        record_path.write_text(record.model_dump_json(indent=2))
        return (image_id, False, 0.0)

def run_batch_detection(
    dataset_dir: Path,
    out_dir: Path,
    workers: int = 4,
    debug_overlays: bool = False,
    save_masks: bool = False,
    seg_cfg: SegmenterConfig | None = None,
    max_images: int | None = None,
) -> Path:
    """Detect skin regions for every image under `dataset_dir`; returns the index path."""
    images = _iter_images(dataset_dir)
    if max_images is not None:
        images = images[:max_images]

    out_dir.mkdir(parents=True, exist_ok=True)
    (out_dir / "results").mkdir(parents=True, exist_ok=True)
    if debug_overlays:
        (out_dir / "overlays").mkdir(parents=True, exist_ok=True)
    if save_masks:
        (out_dir / "masks").mkdir(parents=True, exist_ok=True)

    ok = 0
    failed = 0
    coverages: list[float] = []
    index_path = out_dir / "detect_index.jsonl"
    if index_path.exists():
        index_path.unlink()

    cfg_dict = asdict(seg_cfg or SegmenterConfig())

    with ProcessPoolExecutor(max_workers=workers, initializer=_init_worker, initargs=(cfg_dict,)) as ex:
        futures = [
            ex.submit(_process_one, p, dataset_dir, out_dir, debug_overlays, save_masks)
            for p in images
        ]
        for fut in tqdm(as_completed(futures), total=len(futures), desc="Skin detection"):
            image_id, is_ok, coverage = fut.result()
            if is_ok:
                ok += 1
                coverages.append(coverage)
            else:
                failed += 1
            with open(index_path, "a", encoding="utf-8") as f:
                f.write(json.dumps({"image_id": image_id, "ok": is_ok, "skin_coverage_percentage": coverage}) + "\n")

    summary = {
        "dataset_dir": str(dataset_dir.resolve()),
        "total_images": len(images),
        "ok": ok,
        "failed": failed,
        "mean_skin_coverage_percentage": (sum(coverages) / len(coverages)) if coverages else None,
        "segmenter": {"model": (seg_cfg or SegmenterConfig()).model, "running_mode": (seg_cfg or SegmenterConfig()).running_mode},
        "outputs": {
            "index": index_path.name,
            "results_dir": "results",
            "overlays_dir": "overlays" if debug_overlays else None,
            "masks_dir": "masks" if save_masks else None,
        },
    }
    (out_dir / "detect_summary.json").write_text(json.dumps(summary, indent=2))
    return index_path
