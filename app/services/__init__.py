"""
                        Services Module

Business logic, kept out of the route handlers.

Services:
    - cart: Cart model, pricing and checkout composition
    - order_workflow: Guarded status transitions
    - restaurant_service: Menu, orders, stats and reports for one tenant
    - admin_service: Registration review and tenant administration
    - auth / sessions: Login and session handling
    - realtime: Change feed (in-memory or Redis) and live lists
    - excel_manager: Locked Excel report export
"""

from app.services.excel_manager import ExcelManager

__all__ = ["ExcelManager"]
