"""Shared helpers for chunksync."""
