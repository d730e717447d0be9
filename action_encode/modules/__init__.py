"""Action modules."""
