"""Deployment pipeline agent package."""
