"""
                Food Ordering Backend

Restaurant browsing, JWT-authenticated customers and an atomic
order-creation workflow with push notifications on status changes.

Version: 1.0.0
License: MIT
"""

__version__ = "1.0.0"
