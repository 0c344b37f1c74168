"""Domain services for matching, recommendations, catalog mirroring and listening."""
