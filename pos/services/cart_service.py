"""
Cart service - pure reducer over an immutable cart value.

The cart is owned by a single cashier session: the sales blueprint loads it
from the Flask session, applies one action and stores the new value back.
Nothing here touches the database; stock is checked against the product
snapshot passed with the action and re-validated at checkout.
"""
from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Optional, Tuple, Union

from pos.exceptions import InsufficientStockError, ValidationError
from pos.utils.number_format import to_money


@dataclass(frozen=True)
class CartLine:
    """One product in the cart."""
    product_id: int
    name: str
    price: Decimal
    quantity: int
    image: Optional[str] = None
    barcode: Optional[str] = None

    @property
    def line_total(self) -> Decimal:
        return to_money(self.price * self.quantity)

    def to_dict(self) -> dict:
        return {
            'id': self.product_id,
            'name': self.name,
            'price': str(self.price),
            'quantity': self.quantity,
            'image': self.image,
            'barcode': self.barcode,
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'CartLine':
        return cls(
            product_id=int(data['id']),
            name=data['name'],
            price=to_money(data['price']),
            quantity=int(data['quantity']),
            image=data.get('image'),
            barcode=data.get('barcode'),
        )


@dataclass(frozen=True)
class Cart:
    """Immutable cart value; every action returns a new Cart."""
    lines: Tuple[CartLine, ...] = ()

    def get(self, product_id: int) -> Optional[CartLine]:
        for line in self.lines:
            if line.product_id == product_id:
                return line
        return None

    @property
    def is_empty(self) -> bool:
        return not self.lines

    def to_list(self) -> list:
        return [line.to_dict() for line in self.lines]

    @classmethod
    def from_list(cls, data) -> 'Cart':
        return cls(tuple(CartLine.from_dict(item) for item in (data or [])))


# Actions

@dataclass(frozen=True)
class AddItem:
    product: object  # anything exposing id, name, price, stock, image, barcode
    quantity: int = 1


@dataclass(frozen=True)
class SetQuantity:
    product: object
    quantity: int


@dataclass(frozen=True)
class RemoveItem:
    product_id: int


@dataclass(frozen=True)
class Clear:
    pass


CartAction = Union[AddItem, SetQuantity, RemoveItem, Clear]


def _line_for(product, quantity: int) -> CartLine:
    return CartLine(
        product_id=product.id,
        name=product.name,
        price=to_money(product.price),
        quantity=quantity,
        image=getattr(product, 'image', None),
        barcode=getattr(product, 'barcode', None),
    )


def _add(cart: Cart, product, quantity: int) -> Cart:
    if quantity < 1:
        raise ValidationError('La cantidad debe ser mayor a 0')

    existing = cart.get(product.id)
    in_cart = existing.quantity if existing else 0
    if in_cart + quantity > product.stock:
        raise InsufficientStockError(product.id, product.stock, in_cart + quantity, product.name)

    if existing is None:
        return Cart(cart.lines + (_line_for(product, quantity),))
    return Cart(tuple(
        replace(line, quantity=line.quantity + quantity) if line.product_id == product.id else line
        for line in cart.lines
    ))


def _set_quantity(cart: Cart, product, quantity: int) -> Cart:
    if quantity <= 0:
        return _remove(cart, product.id)
    if quantity > product.stock:
        raise InsufficientStockError(product.id, product.stock, quantity, product.name)

    if cart.get(product.id) is None:
        return Cart(cart.lines + (_line_for(product, quantity),))
    return Cart(tuple(
        replace(line, quantity=quantity) if line.product_id == product.id else line
        for line in cart.lines
    ))


def _remove(cart: Cart, product_id: int) -> Cart:
    return Cart(tuple(line for line in cart.lines if line.product_id != product_id))


def reduce(cart: Cart, action: CartAction) -> Cart:
    """
    Apply one action to the cart and return the new cart.

    Raises:
        InsufficientStockError: when the resulting quantity exceeds the product stock
        ValidationError: when adding a non-positive quantity
    """
    if isinstance(action, AddItem):
        return _add(cart, action.product, action.quantity)
    if isinstance(action, SetQuantity):
        return _set_quantity(cart, action.product, action.quantity)
    if isinstance(action, RemoveItem):
        return _remove(cart, action.product_id)
    if isinstance(action, Clear):
        return Cart()
    raise TypeError(f'Unknown cart action: {action!r}')


def compute_totals(lines, tax_enabled: bool, tax_rate) -> dict:
    """Subtotal, tax and total for (price, quantity) pairs, rounded to cents."""
    subtotal = to_money(sum((Decimal(str(price)) * qty for price, qty in lines), Decimal('0')))
    tax = to_money(subtotal * Decimal(str(tax_rate))) if tax_enabled else Decimal('0.00')
    return {
        'subtotal': subtotal,
        'tax': tax,
        'total': to_money(subtotal + tax),
    }


def totals(cart: Cart, tax_settings) -> dict:
    """Cart totals using the user's tax settings (enabled, rate)."""
    result = compute_totals(
        ((line.price, line.quantity) for line in cart.lines),
        tax_settings.enabled,
        tax_settings.rate,
    )
    result['items_count'] = len(cart.lines)
    result['total_items'] = sum(line.quantity for line in cart.lines)
    return result
