"""Feed retrieval, snapshot caching and the stop data pipeline."""
