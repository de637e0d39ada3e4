"""Durable session log helpers."""
