from __future__ import annotations

import argparse
import re
from collections import Counter
from pathlib import Path

_SCORED = re.compile(r"^Image: (?P<path>.+), IoU: (?P<iou>[-+0-9.eE]+|nan|inf)(?P<no_gt> \(no ground truth\))?$")
_FAILURES = {
    "No rectangle found for: ": "no_rectangle",
    "Cannot load image: ": "load_failed",
    "Detection failed for: ": "detection_failed",
    "Scoring failed for: ": "scoring_failed",
    "Timed out: ": "timed_out",
}


def parse_report(lines: list[str]) -> tuple[list[float], Counter[str]]:
    """
    Returns the IoU of every scored image and a count of line kinds.
    """
    ious: list[float] = []
    kinds: Counter[str] = Counter()
    for raw in lines:
        line = raw.rstrip("\n")
        if not line.strip():
            continue
        m = _SCORED.match(line)
        if m:
            if m.group("no_gt"):
                kinds["no_ground_truth"] += 1
            else:
                kinds["ok"] += 1
                ious.append(float(m.group("iou")))
            continue
        for prefix, kind in _FAILURES.items():
            if line.startswith(prefix):
                kinds[kind] += 1
                break
        else:
            kinds["unrecognized"] += 1
    return ious, kinds


def main() -> None:
    parser = argparse.ArgumentParser(description="Summarize an IoU text report.")
    parser.add_argument("report", help="Path to the report written by rectangle-eval.")
    parser.add_argument(
        "--thresholds",
        default="0.5,0.75,0.9",
        help="Comma-separated IoU thresholds for hit rates (default: 0.5,0.75,0.9).",
    )
    args = parser.parse_args()

    report_path = Path(args.report).expanduser().resolve()
    if not report_path.exists():
        print(f"Report not found: {report_path}")
        return

    ious, kinds = parse_report(report_path.read_text(encoding="utf-8").splitlines())
    total = sum(kinds.values())
    print(f"Lines: {total}")
    print("Kinds: " + ", ".join(f"{k}:{v}" for k, v in kinds.most_common()))

    if not ious:
        print("No scored images.")
        return

    ious_sorted = sorted(ious)
    n = len(ious_sorted)
    print(f"Scored: {n}")
    print(f"IoU: mean={sum(ious_sorted) / n:.4f} min={ious_sorted[0]:.4f} median={ious_sorted[n // 2]:.4f} max={ious_sorted[-1]:.4f}")

    thresholds = [float(x) for x in args.thresholds.split(",") if x.strip()]
    for t in thresholds:
        hits = sum(1 for v in ious_sorted if v >= t)
        print(f"IoU>={t:g}: {hits}/{total} ({hits / max(total, 1):.1%})")


if __name__ == "__main__":
    main()
