"""Shared building blocks for trip planner backend services."""
