"""
Shopping Cart

The cart lives longer than a checkout: closing the checkout keeps it, only
a successful order clears it. Items are immutable; edits replace them.
"""

from dataclasses import dataclass, field, replace
from decimal import Decimal
from typing import Iterator, Optional

from orderflow.core.money import ZERO, to_decimal
from orderflow.schemas import OrderItemCreate, ToppingCreate


@dataclass(frozen=True)
class Topping:
    name: str
    price: Decimal = ZERO


@dataclass(frozen=True)
class CartItem:
    """
    One cart line.

    ``unit_price`` is the computed price of one piece including the
    variant and all toppings.
    """
    line_id: int
    menu_item_id: int
    name: str
    unit_price: Decimal
    quantity: int = 1
    variant_name: Optional[str] = None
    toppings: tuple[Topping, ...] = ()
    notes: Optional[str] = None

    def __post_init__(self):
        if self.quantity < 1:
            raise ValueError("Quantity must be at least 1")
        object.__setattr__(self, "unit_price", to_decimal(self.unit_price))

    @property
    def total_price(self) -> Decimal:
        return self.unit_price * self.quantity

    def to_order_item(self) -> OrderItemCreate:
        return OrderItemCreate(
            menu_item_id=self.menu_item_id,
            name=self.name,
            variant_name=self.variant_name,
            quantity=self.quantity,
            unit_price=self.unit_price,
            toppings=[ToppingCreate(name=t.name, price=t.price) for t in self.toppings],
            notes=self.notes,
        )


@dataclass
class Cart:
    """
    Ordered list of cart lines for one restaurant.

    Example:
        >>> cart = Cart(restaurant_id=1)
        >>> line = cart.add(menu_item_id=7, name="Pizza Salami", unit_price="9.50", quantity=2)
        >>> cart.subtotal
        Decimal('19.00')
    """
    restaurant_id: int
    items: list[CartItem] = field(default_factory=list)
    _next_line_id: int = field(default=1, repr=False)

    def __iter__(self) -> Iterator[CartItem]:
        return iter(self.items)

    def __len__(self) -> int:
        return len(self.items)

    @property
    def is_empty(self) -> bool:
        return not self.items

    @property
    def item_count(self) -> int:
        return sum(item.quantity for item in self.items)

    @property
    def subtotal(self) -> Decimal:
        return sum((item.total_price for item in self.items), ZERO)

    def add(
        self,
        menu_item_id: int,
        name: str,
        unit_price,
        quantity: int = 1,
        variant_name: Optional[str] = None,
        toppings: tuple[Topping, ...] = (),
        notes: Optional[str] = None,
    ) -> CartItem:
        item = CartItem(
            line_id=self._next_line_id,
            menu_item_id=menu_item_id,
            name=name,
            unit_price=unit_price,
            quantity=quantity,
            variant_name=variant_name,
            toppings=tuple(toppings),
            notes=notes,
        )
        self._next_line_id += 1
        self.items.append(item)
        return item

    def update_quantity(self, line_id: int, quantity: int) -> Optional[CartItem]:
        """Set a line's quantity; zero or less removes the line."""
        for index, item in enumerate(self.items):
            if item.line_id == line_id:
                if quantity < 1:
                    del self.items[index]
                    return None
                self.items[index] = replace(item, quantity=quantity)
                return self.items[index]
        raise KeyError(line_id)

    def remove(self, line_id: int) -> None:
        self.items = [item for item in self.items if item.line_id != line_id]

    def clear(self) -> None:
        self.items.clear()

    def snapshot(self) -> tuple[CartItem, ...]:
        return tuple(self.items)
