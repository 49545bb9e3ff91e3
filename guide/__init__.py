"""Guide pub/sub quickstart client."""
