"""Backend ingestion service: broker subscriber, device registry and health API."""
