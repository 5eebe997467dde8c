"""
Per-frame diagnostics of a tracked body as a pandas table.

frames_to_dataframe flattens FrameResult objects into one row per frame,
summarize_frames reduces the table to a handful of run statistics and
print_frame_report writes both to the console. write_frame_report saves the
table as CSV next to a short text summary.
"""

import math
from pathlib import Path
from typing import Dict, Sequence, Union

import numpy as np
import pandas as pd

from footprint_tracker import FrameResult

COLUMNS = [
    'frame', 'candidates', 'filtered', 'final', 'real', 'synthetic', 'hull_vertices',
    'manifold_contacts', 'node_contacts', 'removed_dedupe', 'removed_iqr', 'removed_neighbors',
    'augmented', 'degraded', 'rejected', 'held', 'reasons',
    'centroid_x', 'centroid_y', 'centroid_z',
    'box_x', 'box_y', 'box_z', 'width', 'height', 'theta_deg', 'area', 'speed',
]


def frame_row(result: FrameResult) -> Dict:
    diag = result.sample.diagnostics
    flags = result.sample.flags
    centroid = result.sample.centroid
    row = {
        'frame': result.frame,
        'candidates': diag.candidate_count,
        'filtered': diag.filtered_count,
        'final': diag.final_count,
        'real': diag.real_contact_count,
        'synthetic': diag.synthetic_count,
        'hull_vertices': diag.hull_vertex_count,
        'manifold_contacts': diag.manifold_contacts,
        'node_contacts': diag.node_contacts,
        'removed_dedupe': diag.removed.get('grid_dedupe', 0),
        'removed_iqr': diag.removed.get('iqr', 0),
        'removed_neighbors': diag.removed.get('neighbor_support', 0),
        'augmented': diag.augmented,
        'degraded': flags.degraded,
        'rejected': flags.rejected,
        'held': flags.held,
        'reasons': ','.join(flags.reasons),
        'centroid_x': float(centroid[0]),
        'centroid_y': float(centroid[1]),
        'centroid_z': float(centroid[2]),
    }

    box = result.box
    if box is not None:
        row.update({
            'box_x': float(box.center[0]),
            'box_y': float(box.center[1]),
            'box_z': float(box.center[2]),
            'width': box.width,
            'height': box.height,
            'theta_deg': math.degrees(box.theta),
            'area': box.area,
        })
    else:
        row.update({key: np.nan for key in ('box_x', 'box_y', 'box_z', 'width', 'height', 'theta_deg', 'area')})

    if result.velocity is not None:
        row['speed'] = float(math.hypot(result.velocity[0], result.velocity[2]))
    else:
        row['speed'] = np.nan
    return row


def frames_to_dataframe(results: Sequence[FrameResult]) -> pd.DataFrame:
    return pd.DataFrame([frame_row(r) for r in results], columns=COLUMNS)


def summarize_frames(df: pd.DataFrame) -> Dict:
    """Run statistics: counts of flagged frames and spread of the fitted box."""
    if df.empty:
        return {'frames': 0}

    boxed = df.dropna(subset=['width'])
    theta = boxed['theta_deg']
    summary = {
        'frames': int(len(df)),
        'frames_with_box': int(len(boxed)),
        'held_frames': int(df['held'].sum()),
        'degraded_frames': int(df['degraded'].sum()),
        'rejected_frames': int(df['rejected'].sum()),
        'augmented_frames': int(df['augmented'].sum()),
        'mean_real_contacts': float(df['real'].mean()),
        'mean_synthetic_contacts': float(df['synthetic'].mean()),
        'removed_total': int(df[['removed_dedupe', 'removed_iqr', 'removed_neighbors']].to_numpy().sum()),
        'mean_width': float(boxed['width'].mean()) if len(boxed) else float('nan'),
        'mean_height': float(boxed['height'].mean()) if len(boxed) else float('nan'),
        'theta_range_deg': float(theta.max() - theta.min()) if len(boxed) else float('nan'),
        # frames whose angle changed from the previous boxed frame
        'angle_changes': int((theta.diff().abs() > 1e-9).sum()) if len(boxed) > 1 else 0,
    }
    reasons = df['reasons'].str.split(',').explode()
    reasons = reasons[reasons.astype(bool)]
    summary['reasons'] = reasons.value_counts().to_dict()
    return summary


def print_frame_report(df: pd.DataFrame, summary: Dict = None, max_rows: int = 20):
    summary = summary or summarize_frames(df)

    print("\n" + "=" * 60)
    print("CONTACT FOOTPRINT REPORT")
    print("=" * 60)
    print(f"Frames: {summary['frames']}  (with box: {summary.get('frames_with_box', 0)})")
    if summary['frames'] == 0:
        print("=" * 60)
        return

    print(f"Held: {summary['held_frames']}  degraded: {summary['degraded_frames']}  "
          f"rejected: {summary['rejected_frames']}  augmented: {summary['augmented_frames']}")
    print(f"Contacts per frame: {summary['mean_real_contacts']:.1f} real, "
          f"{summary['mean_synthetic_contacts']:.1f} synthetic; removed by filters: {summary['removed_total']}")
    print(f"Mean box: {summary['mean_width']:.4f} x {summary['mean_height']:.4f}, "
          f"theta range {summary['theta_range_deg']:.2f} deg, angle changes {summary['angle_changes']}")

    if summary['reasons']:
        print("\nQuality flags:")
        for reason, count in summary['reasons'].items():
            print(f"    - {reason}: {count}")

    print("\n--- Frames ---")
    header = f"{'#':>4} {'cand':>5} {'real':>5} {'syn':>4} {'width':>8} {'height':>8} {'theta':>8}  flags"
    print(header)
    print("-" * len(header))
    for _, row in df.head(max_rows).iterrows():
        if np.isnan(row['width']):
            box = f"{'-':>8} {'-':>8} {'-':>8}"
        else:
            box = f"{row['width']:8.4f} {row['height']:8.4f} {row['theta_deg']:8.2f}"
        print(f"{int(row['frame']):>4} {int(row['candidates']):>5} {int(row['real']):>5} "
              f"{int(row['synthetic']):>4} {box}  {row['reasons']}")
    if len(df) > max_rows:
        print(f"... {len(df) - max_rows} more frames")
    print("=" * 60)


def write_frame_report(df: pd.DataFrame, out_dir: Union[str, Path]) -> Path:
    """Writes frames.csv and summary.txt into out_dir; returns the CSV path."""
    out_dir = Path(out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    csv_path = out_dir / "frames.csv"
    df.to_csv(csv_path, index=False)

    summary = summarize_frames(df)
    lines = ["=== CONTACT FOOTPRINT SUMMARY ==="]
    for key, value in summary.items():
        lines.append(f"{key}: {value}")
    (out_dir / "summary.txt").write_text("\n".join(lines) + "\n", encoding="utf-8")
    return csv_path
