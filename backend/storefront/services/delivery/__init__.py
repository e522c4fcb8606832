"""Delivery quoting: pincode resolution, zone matching and charges."""
