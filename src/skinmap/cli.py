from __future__ import annotations

from pathlib import Path
import typer
from rich.console import Console
from rich.table import Table

from .detectors.person_segmentation import SegmenterConfig
from .schemas.detection import DetectionRecord
from .stages.batch import run_batch_detection
from .stages.detect import is_point_in_skin_area

app = typer.Typer(add_completion=False, help="Exposed-skin region detection.")
console = Console()

@app.command()
def detect(
    dataset_dir: Path = typer.Argument(..., exists=True, file_okay=False, dir_okay=True, readable=True, help="Directory of images (nested folders are scanned)."),
    out: Path = typer.Option(Path("outputs/runs/run1"), "--out", help="Output run directory."),
    workers: int = typer.Option(4, "--workers", min=1, help="Number of worker processes."),
    model: str = typer.Option("landscape", "--model", help="Selfie segmenter variant: general|landscape"),
    running_mode: str = typer.Option("image", "--running-mode", help="MediaPipe running mode: image|live_stream"),
    timeout: float = typer.Option(10.0, "--timeout", min=0.1, help="Seconds to wait for a live-stream segmentation result."),
    debug_overlays: bool = typer.Option(False, "--debug-overlays", help="Write region overlay images to outputs."),
    save_masks: bool = typer.Option(False, "--save-masks", help="Write person and skin masks to outputs."),
    max_images: int | None = typer.Option(None, "--max-images", help="Optional cap for debugging."),
):
    """Detect skin regions in every image of DATASET_DIR."""
    try:
        seg_cfg = SegmenterConfig(model=model, running_mode=running_mode, timeout_seconds=timeout)
    except ValueError as e:
        raise typer.BadParameter(str(e))

    out.mkdir(parents=True, exist_ok=True)
    console.print(f"[bold]skinmap detect[/bold]\nDataset: {dataset_dir}\nOut: {out}\nWorkers: {workers}\nModel: {seg_cfg.model_file} ({seg_cfg.running_mode})")

    index_path = run_batch_detection(
        dataset_dir=dataset_dir,
        out_dir=out,
        workers=workers,
        debug_overlays=debug_overlays,
        save_masks=save_masks,
        seg_cfg=seg_cfg,
        max_images=max_images,
    )
    console.print(f"Index written to {index_path}")

@app.command()
def query(
    record_path: Path = typer.Argument(..., exists=True, dir_okay=False, readable=True, help="A results/<image_id>.json record."),
    x: float = typer.Argument(..., help="Pixel x coordinate."),
    y: float = typer.Argument(..., help="Pixel y coordinate."),
):
    """Report which skin region (if any) contains the point (X, Y)."""
    record = DetectionRecord.model_validate_json(record_path.read_text())
    if record.result is None or not record.result.success:
        console.print(f"[red]No detection result in {record_path}[/red]")
        raise typer.Exit(code=1)

    hit = is_point_in_skin_area((x, y), record.result.regions)
    if not hit.in_skin:
        console.print(f"({x:g}, {y:g}) is not in a skin region")
        raise typer.Exit(code=2)

    region = hit.region
    table = Table(title=f"({x:g}, {y:g}) is in {region.id}")
    for col in ("body part", "area", "confidence", "bbox"):
        table.add_column(col)
    bb = region.bounding_box
    table.add_row(region.body_part, str(region.area), f"{region.confidence:.2f}", f"{bb.x},{bb.y} {bb.width}x{bb.height}")
    console.print(table)

if __name__ == "__main__":
    app()
