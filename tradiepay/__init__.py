"""Tradie Helper escrow payments backend."""
