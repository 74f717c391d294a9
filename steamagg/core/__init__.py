"""Aggregation pipeline components."""
