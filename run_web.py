#!/usr/bin/env python3
"""
Main entry point for the Sideline Clock web application.

This script launches the Flask-based web server. Match records are kept
under ``--data-dir`` so a relaunch can recover the live clock.
"""
import argparse
import logging

from sideline_clock.ui.web_app import run_web_app
from sideline_clock.utils import RuntimeConfig


def main():
    parser = argparse.ArgumentParser(description="Sideline Clock web server")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=7122)
    parser.add_argument("--data-dir", default="data", help="Directory for saved match records")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    run_web_app(host=args.host, port=args.port, config=RuntimeConfig(data_dir=args.data_dir))


if __name__ == "__main__":
    main()
