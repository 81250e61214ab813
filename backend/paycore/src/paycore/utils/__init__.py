"""Utility helpers for the payment core."""
