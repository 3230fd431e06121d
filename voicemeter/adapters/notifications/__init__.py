"""Alert delivery channel adapters."""
