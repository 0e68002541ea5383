from __future__ import annotations

import argparse
import os

import uvicorn


def main() -> int:
    parser = argparse.ArgumentParser(prog="imagist", description="Run the image proxy.")
    parser.add_argument("--host", default=os.getenv("IMAGIST_HOST", "127.0.0.1"))
    parser.add_argument("--port", type=int, default=int(os.getenv("IMAGIST_PORT", "3000")))
    parser.add_argument("--workers", type=int, default=1)
    args = parser.parse_args()

    uvicorn.run(
        "imagist.main:create_app",
        factory=True,
        host=args.host,
        port=args.port,
        workers=args.workers,
        log_config=None,
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
