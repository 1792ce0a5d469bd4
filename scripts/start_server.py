#!/usr/bin/env python3
"""
Serve stored contest reports over HTTP.

Example:
    python scripts/start_server.py --reports-db reports.duckdb --auto-port
"""

import argparse
import logging
import socket
import sys
from pathlib import Path

import uvicorn

# Add src to path so we can import our modules
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from web.main import set_database_path  # noqa: E402

logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


def port_is_free(host: str, port: int) -> bool:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        try:
            sock.bind((host, port))
        except OSError:
            return False
    return True


def pick_port(host: str, preferred: int, search: int = 10):
    """First free port in [preferred, preferred + search), or None."""
    return next(
        (p for p in range(preferred, preferred + search) if port_is_free(host, p)),
        None,
    )


def main():
    parser = argparse.ArgumentParser(description="Serve ranked-vote reports")
    parser.add_argument("--reports-db", required=True, help="Path to reports DuckDB file")
    parser.add_argument("--host", default="127.0.0.1", help="Bind address")
    parser.add_argument("--port", type=int, default=8000, help="Port (default: 8000)")
    parser.add_argument("--reload", action="store_true", help="Reload on code changes")
    parser.add_argument(
        "--auto-port",
        action="store_true",
        help="Try the next ports when --port is taken",
    )

    args = parser.parse_args()

    reports_db = Path(args.reports_db).absolute()
    if not reports_db.exists():
        logger.error(f"Reports database not found: {reports_db}")
        logger.error("Run tabulate_contests.py first to create it.")
        sys.exit(1)

    # Exported to the environment as well, so reload workers see it
    set_database_path(str(reports_db))

    port = args.port
    if args.auto_port:
        port = pick_port(args.host, args.port)
        if port is None:
            logger.error(f"No free port in {args.port}-{args.port + 9}")
            sys.exit(1)
        if port != args.port:
            logger.info(f"Port {args.port} is taken; using {port}")

    print(f"Serving reports from {reports_db}")
    print(f"API: http://{args.host}:{port}/api/elections")
    print("Press Ctrl+C to stop")

    uvicorn.run("web.main:app", host=args.host, port=port, reload=args.reload)


if __name__ == "__main__":
    main()
