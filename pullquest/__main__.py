"""
pullquest.__main__ — Entry point for ``python -m pullquest``
============================================================

Commands:

- ``serve``           run the API (and its refill loop) under uvicorn
- ``refill``          run the monthly refill once for the current month
- ``reconcile``       compare balances with the coin ledger
- ``create-account``  provision an account with its opening balance

Run with::

    uv run python -m pullquest serve --port 8000
"""

from __future__ import annotations

import argparse
import json
import logging
import sys

from dotenv import load_dotenv

from pullquest.config import PullQuestConfig, load_config
from pullquest.constants import ROLE_CONTRIBUTOR, ROLES

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("pullquest")


def _config(path: str) -> PullQuestConfig:
    try:
        return load_config(path)
    except FileNotFoundError:
        logger.info("No %s found — using default configuration", path)
        return PullQuestConfig()


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="pullquest")
    parser.add_argument("--config", default="config.yaml", help="path to config.yaml")
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="run the HTTP API")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)

    sub.add_parser("refill", help="run the monthly coin refill now")
    sub.add_parser("reconcile", help="check balances against the coin ledger")

    create = sub.add_parser("create-account", help="provision an account")
    create.add_argument("github_username")
    create.add_argument("--role", choices=ROLES, default=ROLE_CONTRIBUTOR)
    return parser


def main(argv: list[str] | None = None) -> int:
    """Bootstrap and dispatch a PullQuest command."""
    load_dotenv()
    args = _build_parser().parse_args(argv)

    if args.command == "serve":
        import uvicorn

        uvicorn.run("pullquest.api.main:app", host=args.host, port=args.port)
        return 0

    from pullquest.database.engine import create_db_engine, init_db

    cfg = _config(args.config)
    engine = create_db_engine()
    init_db(engine)

    if args.command == "refill":
        from pullquest.services.refill_service import monthly_refill

        result = monthly_refill(engine, cfg.monthly_refill_coins)
        logger.info("Refill result: %s", result)
        return 1 if result.failed_count else 0

    if args.command == "reconcile":
        from pullquest.services.reconciliation_service import reconcile_ledger

        report = reconcile_ledger(engine)
        print(json.dumps(report, indent=2))
        return 1 if report["drift"] or report["unjournaled_stakes"] else 0

    from pullquest.services.account_service import create_account

    account = create_account(
        engine,
        github_username=args.github_username,
        role=args.role,
        starting_coins=cfg.starting_coins,
    )
    print(account.id)
    return 0


if __name__ == "__main__":
    sys.exit(main())
