"""Switchboard - multi-agent request routing and session orchestration."""

__version__ = "0.1.0"
