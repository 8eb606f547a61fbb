"""Connection transports for the realtime bridge."""
