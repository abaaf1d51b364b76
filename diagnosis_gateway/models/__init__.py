"""Response models for the gateway API."""
