"""HTTP routers for the compatibility engine."""
