from __future__ import annotations

import argparse
import os
import sys
from typing import Optional

import uvicorn

SERVICES = {
    "api": "app.api_service:app",
    "ingest": "app.ingest_service:app",
}


def main(argv: Optional[list] = None) -> int:
    """Run one of the HTTP services under uvicorn. PORT follows the Cloud Run convention."""
    parser = argparse.ArgumentParser(description="Serve a MedPrice HTTP service.")
    parser.add_argument("service", nargs="?", choices=sorted(SERVICES), default="api")
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("--port", type=int, default=int(os.getenv("PORT") or 8080))
    args = parser.parse_args(argv)
    # logging is configured by the service module
    uvicorn.run(SERVICES[args.service], host=args.host, port=args.port, log_config=None)
    return 0


if __name__ == "__main__":
    sys.exit(main())
