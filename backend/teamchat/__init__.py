"""Team chat backend."""
