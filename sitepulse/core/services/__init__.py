"""Pure analytics helpers shared by ingestion and aggregation."""
