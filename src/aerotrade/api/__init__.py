"""HTTP boundary: deposit webhook, admin stats and health checks."""
