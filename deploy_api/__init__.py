"""HTTP API for the autonomous deployment pipeline."""
