"""Shared test fixtures: sample models."""
