"""Helpers shared by the pipeline stages and the service layer."""
