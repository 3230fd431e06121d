"""Usage alerts: threshold notifications, delivery channels and acknowledgement."""
