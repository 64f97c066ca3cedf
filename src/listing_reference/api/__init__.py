"""HTTP surface for the reference resolver."""
