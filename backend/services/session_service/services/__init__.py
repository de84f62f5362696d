"""Business logic for session ingestion, duration analytics and exports."""
