"""
UI package for the Sideline Clock.

This package contains the Flask web server that exposes the match clock.
"""
from .web_app import WebAppState, create_app, run_web_app

__all__ = ["WebAppState", "create_app", "run_web_app"]
