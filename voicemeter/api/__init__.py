"""HTTP API for the voicemeter service."""
