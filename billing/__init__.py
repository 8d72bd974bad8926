"""Booking pricing and settlement engine."""
