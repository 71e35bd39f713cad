"""Vendor device integrations."""
