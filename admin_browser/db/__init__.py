"""Persistence layer: engine/session handling, repositories and validation."""
