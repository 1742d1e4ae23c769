"""Replicated cache service and payload codec."""
