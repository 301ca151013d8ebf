"""Debate engine core, model providers and web transport."""
