"""HTTP surface: generation proxy and shared pattern store."""
