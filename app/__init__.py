"""Clinic appointment scheduling service."""
