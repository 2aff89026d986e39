"""
                        Services Module

Contains all business logic services with the hybrid architecture pattern.
Stores and payment providers have Mock (development) and Real (production)
implementations.

Services:
    - scheduling: Opening hours and fulfilment slots
    - zones: Postal code to delivery zone resolution
    - pricing: Cart totals, discounts and zone minimums
    - store: Restaurants, zones, discount codes and orders
    - ordering: Order creation and the terminal's HTTP backend
    - payment: Stripe payment processing
    - checkout: Terminal checkout state machine
    - excel_manager: Thread-safe Excel operations
"""

from orderflow.services.excel_manager import ExcelManager

__all__ = ["ExcelManager"]
