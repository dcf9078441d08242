#!/usr/bin/env python3
"""
WealthDesk — Launch the application server.
Usage: python scripts/serve.py [--port 8000] [--persist | --store artifacts/store.json]
"""
import os
import argparse

ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
DEFAULT_STORE = os.path.join(ROOT, "artifacts", "store.json")


def main():
    parser = argparse.ArgumentParser(description="Serve WealthDesk")
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("--port", type=int, default=8000)
    parser.add_argument("--reload", action="store_true")
    parser.add_argument("--persist", action="store_true", help=f"mirror the data store to {DEFAULT_STORE}")
    parser.add_argument("--store", default=None, help="explicit JSON store path (implies --persist)")
    args = parser.parse_args()

    # must be set before wealthdesk.config.settings is first imported
    if args.store or args.persist:
        os.environ["WEALTHDESK_STORE_PATH"] = args.store or DEFAULT_STORE

    import uvicorn
    uvicorn.run(
        "wealthdesk.app.server:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
    )


if __name__ == "__main__":
    main()
