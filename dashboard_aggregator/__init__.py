"""Feed cache and aggregation backend for the user dashboard."""
