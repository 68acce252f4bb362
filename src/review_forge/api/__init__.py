"""HTTP API for the review gate and feedback endpoints."""
