"""HTTP API of the reviewer."""
