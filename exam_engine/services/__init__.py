"""Domain services: attempt lifecycle, scoring and results."""
