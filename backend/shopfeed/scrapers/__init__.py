"""Source adapters, fetching and normalization for catalog ingestion."""
