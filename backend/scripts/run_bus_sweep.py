from __future__ import annotations

import argparse
import csv
import json
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Sequence

import httpx

CSV_COLUMNS: tuple[str, ...] = (
    "time_hour",
    "reduction_factor",
    "traffic_reduction",
    "aqi_improvement",
    "avg_density",
    "sample_count",
)


def _utc_now_compact() -> str:
    return datetime.now(UTC).strftime("%Y%m%dT%H%M%SZ")


def parse_hours(spec: str) -> list[int]:
    """Parse "7-9,17" into [7, 8, 9, 17]."""
    hours: list[int] = []
    for part in spec.split(","):
        part = part.strip()
        if not part:
            continue
        if "-" in part:
            lo_s, hi_s = part.split("-", 1)
            lo, hi = int(lo_s), int(hi_s)
            if hi < lo:
                raise ValueError(f"invalid hour range: {part}")
            hours.extend(range(lo, hi + 1))
        else:
            hours.append(int(part))
    if not hours:
        raise ValueError("no hours given")
    return hours


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Sweep the bus-route simulation across hours and save a summary."
    )
    parser.add_argument("--backend-url", default="http://localhost:8000")
    parser.add_argument("--hours", default="0-23")
    parser.add_argument("--reduction-factor", type=float, default=0.1)
    parser.add_argument("--save-scenario", default=None, help="Save the sweep as a scenario with this name.")
    parser.add_argument("--save-dir", default="out/bus_sweeps")
    parser.add_argument("--summary-path", default=None)
    return parser


def _write_csv(path: Path, rows: list[dict[str, Any]]) -> None:
    with path.open("w", encoding="utf-8", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=list(CSV_COLUMNS))
        writer.writeheader()
        for row in rows:
            writer.writerow({k: row.get(k, "") for k in CSV_COLUMNS})


def execute_bus_sweep(
    hours: list[int],
    *,
    backend_url: str,
    reduction_factor: float,
    save_dir: str,
    save_scenario: str | None = None,
    summary_path: str | None = None,
    client: httpx.Client | None = None,
) -> dict[str, Any]:
    base = backend_url.rstrip("/")
    own_client = client is None
    if client is None:
        client = httpx.Client(timeout=30.0)

    try:
        rows: list[dict[str, Any]] = []
        for hour in hours:
            resp = client.post(
                f"{base}/api/simulate/bus",
                json={"timeHour": hour, "reductionFactor": reduction_factor},
            )
            resp.raise_for_status()
            body = resp.json()
            stats = body["statistics"]
            rows.append(
                {
                    "time_hour": hour,
                    "reduction_factor": reduction_factor,
                    "traffic_reduction": stats["trafficReduction"],
                    "aqi_improvement": stats["aqiImprovement"],
                    "avg_density": stats["avgDensity"],
                    "sample_count": len(body["trafficData"]),
                }
            )

        scenario_id: str | None = None
        if save_scenario:
            scenario_resp = client.post(
                f"{base}/api/scenarios",
                json={
                    "name": save_scenario,
                    "description": f"Bus sweep over hours {hours[0]}-{hours[-1]}",
                    "data": {"type": "bus_sweep", "hours": hours, "rows": rows},
                    "trafficReduction": reduction_factor * 100,
                    "aqiImprovement": rows[0]["aqi_improvement"] if rows else 0,
                },
            )
            scenario_resp.raise_for_status()
            scenario_id = scenario_resp.json()["id"]

        out_dir = Path(save_dir)
        out_dir.mkdir(parents=True, exist_ok=True)
        stamp = _utc_now_compact()
        csv_path = out_dir / f"bus_sweep_{stamp}.csv"
        _write_csv(csv_path, rows)

        peak = max(rows, key=lambda r: r["avg_density"]) if rows else None
        summary = {
            "timestamp": datetime.now(UTC).isoformat(),
            "hour_count": len(rows),
            "reduction_factor": reduction_factor,
            "peak_hour": peak["time_hour"] if peak else None,
            "peak_avg_density": peak["avg_density"] if peak else None,
            "scenario_id": scenario_id,
            "csv_file": str(csv_path),
        }

        summary_file = Path(summary_path) if summary_path else out_dir / f"bus_sweep_summary_{stamp}.json"
        summary_file.parent.mkdir(parents=True, exist_ok=True)
        summary_file.write_text(json.dumps(summary, indent=2), encoding="utf-8")
        summary["summary_file"] = str(summary_file)
        return summary
    finally:
        if own_client and client is not None:
            client.close()


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(list(argv) if argv is not None else None)

    summary = execute_bus_sweep(
        parse_hours(args.hours),
        backend_url=args.backend_url,
        reduction_factor=args.reduction_factor,
        save_dir=args.save_dir,
        save_scenario=args.save_scenario,
        summary_path=args.summary_path,
    )
    print(json.dumps(summary, indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
