from __future__ import annotations

import json
import math
from collections import Counter, defaultdict
from pathlib import Path
from typing import Iterable

import typer

app = typer.Typer(add_completion=False, help="Aggregate skin coverage and body-part statistics across detection runs.")


def _percentile(values: list[float], pct: float) -> float | None:
    if not values:
        return None
    if len(values) == 1:
        return float(values[0])
    pct = min(max(pct, 0.0), 1.0)
    sorted_vals = sorted(values)
    idx = (len(sorted_vals) - 1) * pct
    lower = math.floor(idx)
    upper = math.ceil(idx)
    if lower == upper:
        return float(sorted_vals[int(idx)])
    weight = idx - lower
    return float(sorted_vals[lower] * (1.0 - weight) + sorted_vals[upper] * weight)


def _collect_record_paths(run_dir: Path) -> list[Path]:
    results_dir = run_dir / "results"
    if results_dir.is_dir():
        return sorted(results_dir.glob("*.json"))
    return []


def _load_record(path: Path) -> dict[str, object]:
    data = json.loads(path.read_text())
    result = data.get("result") or {}
    ok = bool((data.get("status") or {}).get("ok"))
    regions = result.get("regions") or []
    return {
        "ok": ok,
        "coverage": float(result["skin_coverage_percentage"]) if ok and "skin_coverage_percentage" in result else None,
        "region_count": len(regions) if ok else None,
        "body_parts": [r.get("body_part", "unknown") for r in regions] if ok else [],
        "error": None if ok else "; ".join((data.get("status") or {}).get("errors") or []) or "unknown error",
    }


def _summarize(values: list[float]) -> dict[str, float]:
    if not values:
        return {}
    return {
        "count": len(values),
        "mean": sum(values) / len(values),
        "p10": _percentile(values, 0.10),
        "p50": _percentile(values, 0.50),
        "p90": _percentile(values, 0.90),
    }


def _aggregate_runs(run_dirs: Iterable[Path]) -> dict[str, dict[str, list]]:
    runs: dict[str, dict[str, list]] = defaultdict(lambda: defaultdict(list))
    for run_dir in run_dirs:
        for path in _collect_record_paths(run_dir):
            rec = _load_record(path)
            bucket = runs[run_dir.name]
            if rec["ok"]:
                bucket["coverage"].append(rec["coverage"])
                bucket["region_count"].append(float(rec["region_count"]))
                bucket["body_parts"].extend(rec["body_parts"])
            else:
                bucket["errors"].append(rec["error"])
    return runs


def _emit_run_report(name: str, stats: dict[str, list], out_lines: list[str]) -> None:
    coverage = _summarize(stats.get("coverage", []))
    counts = _summarize(stats.get("region_count", []))
    parts: Counter[str] = Counter(stats.get("body_parts", []))
    errors: Counter[str] = Counter(stats.get("errors", []))

    out_lines.append(f"\n=== Run: {name} ===")
    out_lines.append(f"images: {len(stats.get('coverage', []))} ok, {sum(errors.values())} failed")
    if coverage:
        out_lines.append(
            f"skin coverage %: mean={coverage['mean']:.2f} p10={coverage['p10']:.2f} "
            f"p50={coverage['p50']:.2f} p90={coverage['p90']:.2f}"
        )
    if counts:
        out_lines.append(f"regions per image: mean={counts['mean']:.2f} p50={counts['p50']:.1f} p90={counts['p90']:.1f}")
    if parts:
        total = sum(parts.values())
        out_lines.append("body parts: " + ", ".join(f"{part}={n} ({n / total * 100:.1f}%)" for part, n in parts.most_common()))
    for msg, n in errors.most_common(5):
        out_lines.append(f"  error x{n}: {msg}")


@app.command()
def summarize(
    root: Path = typer.Argument(Path("outputs/runs"), exists=True, help="A run directory, or a folder of run directories."),
    report_path: Path | None = typer.Option(None, "--report", help="Optional path to save the text report."),
):
    """Print per-run coverage and body-part frequencies."""
    if (root / "results").is_dir():
        run_dirs = [root]
    else:
        run_dirs = [p for p in root.iterdir() if p.is_dir() and (p / "results").is_dir()]

    if not run_dirs:
        typer.echo(f"No results folders found under {root}.")
        raise typer.Exit(code=1)

    runs = _aggregate_runs(run_dirs)
    if not runs:
        typer.echo("No detection records found.")
        raise typer.Exit(code=1)

    lines = ["skinmap coverage summary", f"scanned runs: {', '.join(sorted(p.name for p in run_dirs))}"]
    for name, stats in sorted(runs.items()):
        _emit_run_report(name, stats, lines)

    report = "\n".join(lines)
    typer.echo(report)
    if report_path:
        report_path.parent.mkdir(parents=True, exist_ok=True)
        report_path.write_text(report)
        typer.echo(f"Saved report to {report_path}")


if __name__ == "__main__":
    app()
