"""Pagination over skip-based and token-based QuickBase endpoints."""
