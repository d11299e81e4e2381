"""CLI entry point for Coincast.

Provides commands for operating the service:
  - migrate: Run database migrations
  - serve: Run the API server
  - summary: Print consensus prices for a coin
  - reconcile: Repair net scores that drifted from their voters map
  - issue-token: Mint an identity token for local development
"""

from __future__ import annotations

import argparse
import logging

from coincast.config import load_config
from coincast.registry.db import Database
from coincast.registry.queries import Registry


def setup_logging(verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def _open_registry() -> Registry:
    config = load_config()
    db = Database(config.db_dsn)
    db.connect()
    return Registry(db, poll_seconds=config.snapshot_poll_seconds)


def cmd_migrate(args: argparse.Namespace) -> None:
    """Run database migrations."""
    config = load_config()
    with Database(config.db_dsn) as db:
        applied = db.run_migrations()
    print(f"Migrations complete ({len(applied)} applied).")


def cmd_serve(args: argparse.Namespace) -> None:
    """Run the API server."""
    import uvicorn

    from coincast.api.app import create_app

    uvicorn.run(create_app(), host=args.host, port=args.port)


def cmd_summary(args: argparse.Namespace) -> None:
    """Print consensus per timeframe for one coin."""
    from coincast.voting.consensus import summarize, summarize_all

    registry = _open_registry()
    predictions = registry.get_predictions_for_coin(args.coin)
    if args.timeframe:
        summary = summarize(predictions, args.timeframe)
        summaries = {summary.timeframe: summary} if summary else {}
    else:
        summaries = summarize_all(predictions)

    if not summaries:
        print(f"No predictions for {args.coin}.")
        return

    print(f"Consensus for {args.coin}:")
    for timeframe, s in summaries.items():
        top = s.highest_voted
        print(
            f"  {timeframe.label:8s} n={s.count:<4d} "
            f"avg=${s.weighted_average:,.2f} "
            f"top=${top.price:,.2f} ({top.net_score:+d})"
        )


def cmd_reconcile(args: argparse.Namespace) -> None:
    """Repair drifted net scores."""
    from coincast.voting.aggregator import has_drift, reconcile_all

    registry = _open_registry()
    predictions = registry.get_all_predictions(args.coin)
    drifted = sum(1 for p in predictions if has_drift(p))
    repaired = reconcile_all(registry, predictions)
    print(
        f"Checked {len(predictions)} predictions, "
        f"repaired {len(repaired)} of {drifted} drifted."
    )
    for prediction_id in repaired:
        print(f"  repaired #{prediction_id}")


def cmd_issue_token(args: argparse.Namespace) -> None:
    """Mint a development identity token."""
    from coincast.api.auth import create_token
    from coincast.models.identity import Identity

    config = load_config()
    if not config.auth_secret_key:
        raise SystemExit("AUTH_SECRET_KEY is not set")
    identity = Identity(uid=args.uid, display_name=args.name or args.uid, photo_url=args.photo or "")
    print(create_token(config.auth_secret_key, args.hours or config.auth_token_expiry_hours, identity))


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        prog="coincast",
        description="Community crypto price predictions with vote-weighted consensus",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose output")

    subs = parser.add_subparsers(dest="command", required=True)

    subs.add_parser("migrate", help="Run database migrations")

    p_serve = subs.add_parser("serve", help="Run the API server")
    p_serve.add_argument("--host", default="0.0.0.0")
    p_serve.add_argument("--port", type=int, default=8000)

    p_summary = subs.add_parser("summary", help="Print consensus prices for a coin")
    p_summary.add_argument("coin", help="Coin id, e.g. bitcoin")
    p_summary.add_argument("--timeframe", help="Restrict to one timeframe, e.g. q1_2025")

    p_reconcile = subs.add_parser("reconcile", help="Repair drifted net scores")
    p_reconcile.add_argument("coin", nargs="?", help="Restrict to one coin")

    p_token = subs.add_parser("issue-token", help="Mint an identity token for development")
    p_token.add_argument("uid", help="User id to embed")
    p_token.add_argument("--name", help="Display name")
    p_token.add_argument("--photo", help="Photo URL")
    p_token.add_argument("--hours", type=int, help="Expiry in hours")

    args = parser.parse_args(argv)
    setup_logging(args.verbose)

    commands = {
        "migrate": cmd_migrate,
        "serve": cmd_serve,
        "summary": cmd_summary,
        "reconcile": cmd_reconcile,
        "issue-token": cmd_issue_token,
    }
    commands[args.command](args)


if __name__ == "__main__":
    main()
