"""HTTP routers for the ad generation service."""
