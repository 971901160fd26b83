"""Core shielded-pool components."""
