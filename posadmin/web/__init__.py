"""HTTP surface for backup administration."""
