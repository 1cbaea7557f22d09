"""Logging and metrics for bitwarden-reader."""
