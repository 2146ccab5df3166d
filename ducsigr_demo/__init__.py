"""Ducsigr demo app: mock endpoints wrapped in trace spans, logs exported as OTLP/JSON."""

__version__ = "0.1.0"
