import json

import pandas as pd

from mq_planner.cli import main
from mq_planner.export.report import export_excel
from mq_planner.planning.types import DistributionParams


def test_export_excel_writes_all_sheets(db, add_machine, add_order, tmp_path):
    add_machine("M001", cap=100)
    add_machine("M002", cap=100)
    add_order(30)
    add_order(40)

    out = tmp_path / "report.xlsx"
    xlsx, png = export_excel(db, str(out), DistributionParams.parse("load-based"))
    assert xlsx == str(out)
    assert png and png.endswith("_util.png")

    sheets = pd.read_excel(xlsx, sheet_name=None, engine="openpyxl")
    assert set(sheets) == {"Capacity", "Queues", "Preview", "KPI"}
    assert list(sheets["Preview"]["machine_id"]) == ["M001", "M002"]
    assert sheets["Capacity"]["utilization_percentage"].tolist() == [0.0, 0.0]


def test_cli_preview_and_apply(db, add_machine, add_order, capsys):
    add_machine("M001", cap=100)
    add_order(25)

    assert main(["preview", "--algorithm", "hybrid", "--weights", "100", "0", "0", "0"]) == 0
    preview = json.loads(capsys.readouterr().out)
    assert preview["algorithm"] == "hybrid"
    assert preview["assignedCount"] == 1

    assert main(["apply", "--algorithm", "load-based", "--by", "nightly"]) == 0
    result = json.loads(capsys.readouterr().out)
    assert result["assignedCount"] == 1

    assert main(["capacity"]) == 0
    stats = json.loads(capsys.readouterr().out)
    assert stats[0]["currentLoad"] == 25.0
    assert stats[0]["capacityStatus"] == "low"


def test_cli_reports_domain_errors_on_stderr(db, capsys):
    assert main(["preview", "--algorithm", "hybrid", "--weights", "-1", "0", "0", "0"]) == 2
    err = json.loads(capsys.readouterr().err)
    assert err["code"] == "validation_error"
