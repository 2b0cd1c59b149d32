"""Feature packages built on the core database primitives."""
