"""spectacular - LLM-driven spec, schema and API generation workflows."""

__version__ = "0.4.0"
