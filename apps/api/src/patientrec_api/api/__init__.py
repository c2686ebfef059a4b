"""Operator-facing HTTP API."""
