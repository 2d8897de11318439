"""Background jobs (Dramatiq actors) for the distribution engine."""
