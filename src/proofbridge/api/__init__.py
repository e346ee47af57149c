"""HTTP surface of the callback relay."""
