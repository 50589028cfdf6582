"""Contracts shared between the coordination layer and the world."""
