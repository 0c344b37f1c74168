"""Local song mirror of the external catalog."""
