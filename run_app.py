#!/usr/bin/env python3
"""
Category Service Runner
=======================

Run the API or the category maintenance passes.

Usage:
    python run_app.py                    # Development server with auto-reload
    python run_app.py --mode prod        # Production mode
    python run_app.py --mode verify      # Report category tree inconsistencies
    python run_app.py --mode repair      # Rebuild category tree from parent links
    python run_app.py --port 8001        # Custom port
    python run_app.py --host 127.0.0.1   # Custom host
"""

import argparse
import asyncio
import sys


def print_report(report: dict) -> None:
    """Print a verify/repair report"""
    print(f"Scanned: {report['scanned']} categories")
    if "updated" in report:
        print(f"Updated: {report['updated']} categories")
    for issue in report["issues"]:
        print(f"  - {issue['category_id']}: {issue['kind']} ({issue['detail']})")
    if not report["issues"]:
        print("No inconsistencies found")


def run_maintenance(mode: str) -> int:
    """Run the verify or repair pass against the configured database"""
    from app.core.database import init_db
    from app.core.logging import setup_logging
    from app.tasks.category_tasks import run_repair, run_verify

    setup_logging()

    async def _main() -> dict:
        await init_db()
        return await (run_repair() if mode == "repair" else run_verify())

    report = asyncio.run(_main())
    print_report(report)

    if mode == "verify" and not report["consistent"]:
        return 2
    return 0


def run_server(host: str, port: int, reload: bool) -> None:
    """Run the FastAPI application"""
    import uvicorn

    print(f"\nStarting Category Service on {host}:{port}")
    print(f"API Docs: http://{host}:{port}/api/docs\n")

    try:
        uvicorn.run(
            "app.main:app",
            host=host,
            port=port,
            reload=reload,
            log_level="info"
        )
    except KeyboardInterrupt:
        print("\nServer stopped by user")


def main():
    parser = argparse.ArgumentParser(
        description="Category Service Runner",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python run_app.py                      # Development server on port 8000
  python run_app.py --mode prod          # Production mode
  python run_app.py --mode repair        # Repair the category tree
        """
    )

    parser.add_argument(
        "--mode",
        choices=["dev", "prod", "verify", "repair"],
        default="dev",
        help="Run mode (default: dev)"
    )
    parser.add_argument(
        "--host",
        default="0.0.0.0",
        help="Host to bind to (default: 0.0.0.0)"
    )
    parser.add_argument(
        "--port",
        type=int,
        default=8000,
        help="Port to bind to (default: 8000)"
    )
    parser.add_argument(
        "--no-reload",
        action="store_true",
        help="Disable auto-reload"
    )

    args = parser.parse_args()

    if args.mode in ("verify", "repair"):
        return run_maintenance(args.mode)

    reload = not args.no_reload and args.mode != "prod"
    run_server(args.host, args.port, reload)
    return 0


if __name__ == "__main__":
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        print("\nGoodbye!")
        sys.exit(0)
