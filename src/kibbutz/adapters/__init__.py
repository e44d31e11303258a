"""Adapters around operating-system facilities."""
