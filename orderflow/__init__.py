"""
                Orderflow

Scheduling, delivery-zone, pricing and checkout engine behind the
customer ordering terminal of a multi-tenant restaurant platform.

Version: 1.0.0
License: MIT
"""

__version__ = "1.0.0"
