"""HTTP access to the remote task API."""
