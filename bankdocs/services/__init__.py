"""Business services: ingestion and retrieval orchestration."""
