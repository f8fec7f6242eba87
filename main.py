"""
main.py — Command-line entry point.

    python main.py sync                 # scheduled full-catalog run (cron: 0 2 * * *, Europe/Berlin)
    python main.py sync --max-pages 1   # bounded manual run
    python main.py contact <refnr>      # one-off contact lookup, prints JSON
    python main.py serve                # HTTP API (manual trigger + contact lookup)
"""

import argparse
import json
import sys
from datetime import datetime

from config import load_settings, validate_config
from contact_lookup import ContactRequestHandler
from database import CatalogStore
from exceptions import JobSyncError
from monitoring import get_logger, setup_logging
from sync import SyncOrchestrator


def _bootstrap():
    settings = load_settings()
    setup_logging(settings.log_level, settings.log_file)
    logger = get_logger("main")
    for warning in validate_config(settings):
        logger.warning(f"Config: {warning}")
    store = CatalogStore(settings.db_path)
    store.init_db()
    return settings, store, logger


def run_sync(max_pages=None) -> int:
    """Run one sync. Exit code 1 only when the run itself failed."""
    settings, store, logger = _bootstrap()
    logger.info("=" * 60)
    logger.info("JOB CATALOG SYNC — Starting run")
    logger.info(f"Timestamp: {datetime.now().isoformat()}")
    logger.info("=" * 60)

    orchestrator = SyncOrchestrator.from_settings(settings, store)
    try:
        if max_pages:
            result = orchestrator.run_manual(max_pages=max_pages)
        else:
            result = orchestrator.run_scheduled()
    finally:
        orchestrator.fetcher.client.close()

    logger.info("JOB CATALOG SYNC — Run complete")
    return 0 if result.success else 1


def run_contact(refnr: str) -> int:
    settings, store, logger = _bootstrap()
    handler = ContactRequestHandler(settings, store)
    try:
        contact = handler.handle(refnr)
    except JobSyncError as e:
        print(json.dumps({"success": False, "error": str(e)}, ensure_ascii=False))
        return 1
    print(json.dumps({"success": True, "kontakt": contact.to_dict()}, ensure_ascii=False, indent=2))
    return 0


def run_server(host: str, port: int) -> int:
    import uvicorn

    from api import create_app

    settings, store, _ = _bootstrap()
    uvicorn.run(create_app(settings, store=store), host=host, port=port)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Job catalog sync and contact lookup")
    sub = parser.add_subparsers(dest="command", required=True)

    sync_cmd = sub.add_parser("sync", help="Sync the job catalog into the store")
    sync_cmd.add_argument("--max-pages", type=int, default=None,
                          help="Bounded manual run over the first N pages")

    contact_cmd = sub.add_parser("contact", help="Look up contact details for one job")
    contact_cmd.add_argument("refnr")

    serve_cmd = sub.add_parser("serve", help="Run the HTTP API")
    serve_cmd.add_argument("--host", default="127.0.0.1")
    serve_cmd.add_argument("--port", type=int, default=8080)
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    if args.command == "sync":
        return run_sync(args.max_pages)
    if args.command == "contact":
        return run_contact(args.refnr)
    return run_server(args.host, args.port)


if __name__ == "__main__":
    sys.exit(main())
