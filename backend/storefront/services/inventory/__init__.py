"""Per-size stock validation, reservation and compensation."""
