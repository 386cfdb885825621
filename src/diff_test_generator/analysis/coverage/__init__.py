"""Pytest invocation and result parsing."""
