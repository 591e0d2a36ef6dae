"""Demo entrypoint wiring the live probe into a small host program.

This module contains a manual "smoke test" that:

- Loads configuration from environment.
- Initializes the process-wide probe (network + error interceptors).
- Records a custom business event and performs one HTTP request.
- Prints the export artifact as JSON.

It is **not** intended as integration glue for a real host; it is a
convenient harness for eyeballing the records the probe produces.
"""

from __future__ import annotations

import os

import requests

import live_probe
from config import load_config
from observability.logging_config import setup_logging


def run_demo() -> None:
    """Initialize the probe, generate a few records and print the export."""
    setup_logging(json_output=False)
    cfg = load_config()
    probe = live_probe.init(cfg)
    try:
        live_probe.capture("CHECKOUT", "Cart submitted", details={"items": 3})

        url = os.getenv("DEMO_URL", "https://example.com/")
        try:
            requests.get(url, timeout=10)
        except requests.RequestException:
            # Already recorded by the fetch interceptor.
            pass

        print(probe.export_json())
    finally:
        live_probe.shutdown()


def main() -> None:
    """CLI entrypoint for running the demo with `python src/main.py`."""
    run_demo()


if __name__ == "__main__":
    main()
