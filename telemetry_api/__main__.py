"""CLI entry point: python -m telemetry_api"""

from __future__ import annotations

import argparse
import logging

import uvicorn


def main() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler()],
    )

    p = argparse.ArgumentParser(description="Aeration telemetry ingestion service")
    p.add_argument("--host", default="0.0.0.0")
    p.add_argument("--port", type=int, default=8000)
    args = p.parse_args()

    uvicorn.run("telemetry_api.main:app", host=args.host, port=args.port, log_config=None)


if __name__ == "__main__":
    main()
