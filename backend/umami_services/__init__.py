"""Services of the umami analytics store: ingestion and analytics."""
