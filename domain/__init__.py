"""Domain model for the land sale lifecycle."""
