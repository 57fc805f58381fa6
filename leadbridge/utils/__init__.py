"""Shared helpers for the leadbridge application."""
