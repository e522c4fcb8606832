"""
Storefront checkout service.

Order-fulfillment backend: pincode resolution, delivery zone matching,
stock reservation, order persistence and payment compensation.
"""

__version__ = "1.0.0"
