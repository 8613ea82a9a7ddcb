"""HTTP API for availability_lite."""
