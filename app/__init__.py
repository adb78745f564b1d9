"""
                FoodOrder

Multi-tenant restaurant ordering platform: restaurants register and are
approved by a platform admin, manage their menu and incoming orders,
and customers order from a QR-code menu.

Version: 1.0.0
"""

__version__ = "1.0.0"
