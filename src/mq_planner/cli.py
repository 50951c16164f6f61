import argparse
import json
import logging
import sys

from .db import init_db, session_scope
from .errors import DistributionError
from .ingest.loader import load_excels
from .planning.types import Algorithm, DistributionParams
from .service import DistributionService
from .export.report import export_excel


def _params(args) -> DistributionParams:
    weights = None
    if getattr(args, "weights", None):
        load, capacity, priority, ptype = args.weights
        weights = {"load": load, "capacity": capacity, "priority": priority, "product_type": ptype}
    return DistributionParams.parse(args.algorithm, weights)


def _add_algorithm_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("--algorithm", default=Algorithm.BALANCED.value, choices=[a.value for a in Algorithm])
    p.add_argument(
        "--weights", nargs=4, type=float, metavar=("LOAD", "CAPACITY", "PRIORITY", "TYPE"),
        help="hybrid weights (weighted sum, not renormalised)",
    )


def main(argv=None):
    parser = argparse.ArgumentParser(description="Machine queue planner CLI")
    parser.add_argument("-v", "--verbose", action="store_true")
    sub = parser.add_subparsers(dest="cmd", required=True)

    sub.add_parser("init-db", help="Create missing tables")

    ing = sub.add_parser("ingest", help="Import machines / production orders from Excel")
    ing.add_argument("--machines")
    ing.add_argument("--orders")
    ing.add_argument("--dry-run", action="store_true")

    prev = sub.add_parser("preview", help="Dry-run a distribution algorithm")
    _add_algorithm_args(prev)

    app_p = sub.add_parser("apply", help="Plan and commit a distribution")
    _add_algorithm_args(app_p)
    app_p.add_argument("--atomic", action="store_true", help="roll back everything if any item fails")
    app_p.add_argument("--by", default="cli")

    sub.add_parser("capacity", help="Per-machine capacity stats")

    exp = sub.add_parser("export", help="Excel report with capacity, queues and a preview")
    _add_algorithm_args(exp)
    exp.add_argument("--out", default="out/distribution_report.xlsx")

    srv = sub.add_parser("serve", help="Run the HTTP API")
    srv.add_argument("--host", default="127.0.0.1")
    srv.add_argument("--port", type=int, default=8000)

    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    if args.cmd == "serve":
        import uvicorn

        uvicorn.run("mq_planner.api.app:app", host=args.host, port=args.port)
        return 0

    init_db()
    try:
        with session_scope() as s:
            if args.cmd == "init-db":
                print("Tables ready")
            elif args.cmd == "ingest":
                m, o = load_excels(s, args.machines, args.orders, dry_run=args.dry_run)
                print(f"Ingested: machines={m}, orders={o}")
            elif args.cmd == "preview":
                print(json.dumps(DistributionService(s).preview(_params(args)), ensure_ascii=False, indent=2))
            elif args.cmd == "apply":
                res = DistributionService(s).apply(_params(args), atomic=args.atomic, assigned_by=args.by)
                print(json.dumps(res, ensure_ascii=False, indent=2))
                return 0 if res["success"] else 1
            elif args.cmd == "capacity":
                stats = [c.to_dict() for c in DistributionService(s).capacity_stats()]
                print(json.dumps(stats, ensure_ascii=False, indent=2))
            elif args.cmd == "export":
                out_xlsx, chart_png = export_excel(s, args.out, _params(args))
                print("Exported:", out_xlsx, "Chart:", chart_png)
    except DistributionError as e:
        print(json.dumps(e.to_dict(), ensure_ascii=False), file=sys.stderr)
        return 2
    return 0

if __name__ == "__main__":
    sys.exit(main())
