"""Chat transports that feed the dispatcher."""
