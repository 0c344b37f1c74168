"""Song and user recommendations."""
