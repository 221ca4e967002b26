"""Interop helpers for external graph libraries."""
