"""Infrastructure adapters: Postgres, Redis, the catalog HTTP client and job scheduling."""
