"""Residence access and occupancy claims."""
