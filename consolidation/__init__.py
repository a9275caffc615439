"""Normalization, merging and registry logic for extracted entities."""
