from __future__ import annotations

import argparse
import json
import os
import sys

SCRIPT_DIR = os.path.dirname(os.path.abspath(__file__))
PROJECT_ROOT = os.path.abspath(os.path.join(SCRIPT_DIR, ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)


def load_env_file(env_path: str) -> None:
    if not os.path.exists(env_path):
        return
    with open(env_path, "r", encoding="utf-8") as env_file:
        for line in env_file:
            line = line.strip()
            if not line or line.startswith("#") or "=" not in line:
                continue
            key, value = line.split("=", 1)
            os.environ.setdefault(key, value)


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run one reporting cycle and print dashboard metrics.")
    parser.add_argument(
        "--env-file",
        default=os.path.join(PROJECT_ROOT, ".env"),
        help="Path to .env file.",
    )
    parser.add_argument("--role", default="admin", choices=["admin", "boss", "staff", "agent"])
    parser.add_argument("--agent-id", default=None, help="Agent id, required with --role agent.")
    parser.add_argument("--sort-by", default="rolling", choices=["rolling", "winloss"])
    parser.add_argument("--sort-order", default="desc", choices=["asc", "desc"])
    parser.add_argument("--currency", default=None, help="Display currency, e.g. HKD, PESO, MYR.")
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    load_env_file(os.path.abspath(args.env_file))

    from src.api.dependencies import get_reporting_service
    from src.core.config import get_settings
    from src.core.logging import configure_logging
    from src.schemas.reporting import ReportFilters

    configure_logging(get_settings().log_level)
    service = get_reporting_service()
    metrics = service.get_dashboard_metrics(
        ReportFilters(
            role=args.role,
            agent_id=args.agent_id,
            sort_by=args.sort_by,
            sort_order=args.sort_order,
            currency=args.currency.upper() if args.currency else None,
        )
    )
    print(json.dumps(metrics.model_dump(by_alias=True), indent=2, default=str))


if __name__ == "__main__":
    main()
