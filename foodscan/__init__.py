"""
==============================================================================
FoodScan
==============================================================================

Barcode capture-and-decode service for food product lookup.

==============================================================================
"""

__version__ = "1.0.0"
