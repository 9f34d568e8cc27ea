"""Lifecycle managers."""
