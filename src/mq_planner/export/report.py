import os

import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt
import pandas as pd
from sqlalchemy.orm import Session

from ..analysis.bottlenecks import scan_bottlenecks
from ..planning.capacity import capacity_frame
from ..planning.types import DistributionParams
from ..service import DistributionService


def _utilization_chart(df_cap: pd.DataFrame, df_prev: pd.DataFrame, png_path: str) -> str | None:
    if df_cap.empty:
        return None
    fig, ax = plt.subplots(figsize=(10, 5))
    x = range(len(df_cap))
    ax.bar([i - 0.2 for i in x], df_cap["utilization_percentage"], width=0.4, label="current")
    if not df_prev.empty:
        proposed = df_cap["machine_id"].map(df_prev.set_index("machine_id")["proposed_utilization"]).fillna(0.0)
        ax.bar([i + 0.2 for i in x], proposed, width=0.4, label="after plan")
    ax.axhline(90.0, color="red", linewidth=0.8, linestyle="--")
    ax.set_xticks(list(x))
    ax.set_xticklabels(df_cap["machine_id"], rotation=45, ha="right")
    ax.set_ylabel("Utilization, %")
    ax.set_title("Machine utilization")
    ax.legend()
    plt.tight_layout()
    fig.savefig(png_path, dpi=150)
    plt.close(fig)
    return png_path


def export_excel(session: Session, out_path: str, params: DistributionParams | None = None):
    """Capacity, queues and a distribution preview in one workbook.

    Returns (xlsx path, chart png path or None).
    """
    params = params or DistributionParams()
    svc = DistributionService(session)

    snaps = svc.capacity_stats()
    df_cap = capacity_frame(snaps)
    df_q = pd.DataFrame(svc.list_queues())
    preview = svc.preview(params)
    df_prev = pd.DataFrame([
        {
            "machine_id": m["machineId"],
            "current_load": m["currentLoad"],
            "proposed_load": m["proposedLoad"],
            "current_utilization": m["currentUtilization"],
            "proposed_utilization": m["proposedUtilization"],
            "new_status": m["newCapacityStatus"],
            "proposed_orders": ", ".join(str(o["productionOrderNumber"] or o["id"]) for o in m["proposedOrders"]),
        }
        for m in preview["perMachine"]
    ])

    out_dir = os.path.dirname(out_path)
    if out_dir:
        os.makedirs(out_dir, exist_ok=True)
    chart_png = _utilization_chart(df_cap, df_prev, out_path.replace(".xlsx", "_util.png"))

    summary, _ = scan_bottlenecks(snaps)
    with pd.ExcelWriter(out_path, engine="xlsxwriter") as writer:
        df_cap.to_excel(writer, sheet_name="Capacity", index=False)
        df_q.to_excel(writer, sheet_name="Queues", index=False)
        df_prev.to_excel(writer, sheet_name="Preview", index=False)

        workbook = writer.book
        kpi_sheet = workbook.add_worksheet("KPI")
        writer.sheets["KPI"] = kpi_sheet
        rows = [
            ("Algorithm", preview["algorithm"]),
            ("# unassigned orders", int(preview["totalOrders"])),
            ("# planned", int(preview["assignedCount"])),
            ("# active machines", int(preview["machineCount"])),
            ("Efficiency after plan, %", float(preview["efficiency"])),
            ("Max utilization, %", float(summary["max_util"])),
            ("Machines >= 90%", int(summary["hot"])),
        ]
        for i, (label, value) in enumerate(rows):
            kpi_sheet.write(i, 0, label)
            kpi_sheet.write(i, 1, value)
        if chart_png:
            kpi_sheet.insert_image(len(rows) + 1, 0, chart_png, {"x_scale": 0.8, "y_scale": 0.8})

    return out_path, chart_png
