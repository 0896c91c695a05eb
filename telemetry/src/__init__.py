"""
Shared telemetry wire layer for the solar tracker sync pipeline.

Decodes and normalizes tracker telemetry, builds and validates operator
commands, names the broker topics, and wraps the MQTT client behind a small
asyncio-facing transport. Used by both the backend ingestion service and the
dashboard gated connection.

CHANGELOG:
- 2026-10-18: Initial creation (STORY-101)
"""
