"""Request guards applied in front of the API routes."""
