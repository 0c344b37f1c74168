"""Listening ingestion and music preference writes."""
