from typing import Iterable

from ..planning.types import CapacitySnapshot


def scan_bottlenecks(snapshots: Iterable[CapacitySnapshot], util_threshold: float = 90.0):
    """Machines at or above ``util_threshold`` percent of their capacity."""
    snaps = list(snapshots)
    hot = sorted(
        (
            (s.machine_id, round(s.utilization_percentage, 2), s.capacity_status.value)
            for s in snaps
            if s.max_capacity > 0 and s.utilization_percentage >= util_threshold
        ),
        key=lambda t: (-t[1], t[0]),
    )
    loaded = [s for s in snaps if s.max_capacity > 0]
    summary = {
        "machines": len(snaps),
        "hot": len(hot),
        "max_util": round(max((s.utilization_percentage for s in loaded), default=0.0), 2),
        "avg_util": round(sum(s.utilization_percentage for s in loaded) / max(1, len(loaded)), 2),
    }
    return summary, hot
