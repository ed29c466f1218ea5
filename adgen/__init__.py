"""E-commerce ad generation service."""
