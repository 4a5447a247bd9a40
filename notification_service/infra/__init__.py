"""Infrastructure adapters: cache, database, logging, metrics, resilience."""
