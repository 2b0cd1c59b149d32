"""Infrastructure shared by the tree library (logging)."""
