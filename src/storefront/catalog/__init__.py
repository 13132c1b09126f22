"""Products and their embedded image registry."""
