"""Event bus subscribers for the alerts domain."""
