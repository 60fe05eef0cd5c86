"""Entry point for running the AccessFeed API as a module.

Usage:
    python -m accessfeed.api [--host 0.0.0.0] [--port 8000]
"""

from __future__ import annotations

import argparse

import uvicorn


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(prog="accessfeed", description="Run the AccessFeed API")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8000)
    parser.add_argument("--reload", action="store_true", help="Reload on code changes")
    args = parser.parse_args(argv)

    uvicorn.run("accessfeed.api:app", host=args.host, port=args.port, reload=args.reload)


if __name__ == "__main__":
    main()
