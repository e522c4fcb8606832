"""Cart loading and pricing."""
