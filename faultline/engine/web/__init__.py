"""FastAPI transport for running debates and streaming their events."""
