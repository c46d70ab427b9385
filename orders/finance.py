"""
Order finance calculations.

Pure helpers that derive money figures (line totals, order total, payment
balance, return refunds) from an order snapshot. Nothing in here touches the
ORM or performs I/O: callers build an ``OrderSnapshot`` from whatever they
fetched (see ``Order.to_snapshot()``) and pass every piece of context in
explicitly.

Quantity / price resolution order for a line, used everywhere:

1. the value carried by the line itself (order item row or selected product)
2. ``map[line_key]`` (``productId_variantId`` or ``productId``)
3. ``map[product_id]``
4. default: quantity 1, price 0

Resolved values are clamped to zero, so totals are never negative. Quantities
are whole units: a fractional quantity is skipped like any other unusable value.
"""
import json
from dataclasses import dataclass, field, replace
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

ZERO = Decimal('0')
ONE = Decimal('1')
# Numbers of 10**12 and above are treated as corrupt data
MAX_ADJUSTED_EXPONENT = 11


class OrderStatus:
    PENDING = 'PENDING'
    CONFIRMED = 'CONFIRMED'
    DISPATCHED = 'DISPATCHED'
    CANCELLED = 'CANCELLED'
    COMPLETED = 'COMPLETED'

    CHOICES = [
        (PENDING, 'Pending'),
        (CONFIRMED, 'Confirmed'),
        (DISPATCHED, 'Dispatched'),
        (CANCELLED, 'Cancelled'),
        (COMPLETED, 'Completed'),
    ]


class ReturnType:
    CUSTOMER_FULL = 'CUSTOMER_FULL'
    CUSTOMER_PARTIAL = 'CUSTOMER_PARTIAL'
    SUPPLIER = 'SUPPLIER'

    CHOICES = [
        (CUSTOMER_FULL, 'Customer - Full Return'),
        (CUSTOMER_PARTIAL, 'Customer - Partial Return'),
        (SUPPLIER, 'Supplier Return'),
    ]
    CUSTOMER_TYPES = (CUSTOMER_FULL, CUSTOMER_PARTIAL)


class ShippingChargeHandling:
    FULL_REFUND = 'FULL_REFUND'
    CUSTOMER_PAYS = 'CUSTOMER_PAYS'
    DEDUCT_FROM_ADVANCE = 'DEDUCT_FROM_ADVANCE'

    CHOICES = [
        (FULL_REFUND, 'Refund shipping to customer'),
        (CUSTOMER_PAYS, 'Customer pays shipping'),
        (DEDUCT_FROM_ADVANCE, 'Deduct shipping from advance balance'),
    ]


class ReturnStatus:
    PENDING = 'PENDING'
    APPROVED = 'APPROVED'
    REJECTED = 'REJECTED'
    REFUNDED = 'REFUNDED'

    CHOICES = [
        (PENDING, 'Pending Review'),
        (APPROVED, 'Approved'),
        (REJECTED, 'Rejected'),
        (REFUNDED, 'Refunded'),
    ]


class OrderReturnStatus:
    NONE = 'NONE'
    PARTIAL = 'PARTIAL'
    FULL = 'FULL'

    CHOICES = [
        (NONE, 'Not Returned'),
        (PARTIAL, 'Partially Returned'),
        (FULL, 'Fully Returned'),
    ]


# Named validation failures
RETURN_QUANTITY_EXCEEDED = 'RETURN_QUANTITY_EXCEEDED'
EMPTY_SELECTION = 'EMPTY_SELECTION'
FULL_RETURN_EXISTS = 'FULL_RETURN_EXISTS'


def to_decimal(value: Any) -> Optional[Decimal]:
    """Coerce a loosely typed number to Decimal; None for anything unusable."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        number = value
    elif isinstance(value, (int, float)):
        number = Decimal(str(value))
    elif isinstance(value, str):
        value = value.strip()
        if not value:
            return None
        try:
            number = Decimal(value)
        except InvalidOperation:
            return None
    else:
        return None

    if not number.is_finite():
        return None
    if number and number.adjusted() > MAX_ADJUSTED_EXPONENT:
        return None
    return number


def is_whole(value: Optional[Decimal]) -> bool:
    return value is not None and value == value.to_integral_value()


def clamp_non_negative(value: Decimal) -> Decimal:
    return value if value > ZERO else ZERO


def line_key(product_id: Any, variant_id: Any = None) -> str:
    """Composite identity used to join quantity/price maps to lines."""
    product_id = '' if product_id is None else str(product_id)
    if variant_id not in (None, ''):
        return f"{product_id}_{variant_id}"
    return product_id


def parse_json_map(raw: Any) -> Dict[str, Decimal]:
    """
    Parse a JSON-encoded ``{lineKey: number}`` blob into a typed map.

    Accepts an already decoded dict, a JSON string or None. Malformed or
    non-object JSON gives an empty map; entries whose value is not a finite
    number are dropped.
    """
    if raw is None or raw == '':
        return {}
    data = raw
    if isinstance(raw, (str, bytes)):
        try:
            data = json.loads(raw)
        except (TypeError, ValueError):
            return {}
    if not isinstance(data, Mapping):
        return {}

    parsed = {}
    for key, value in data.items():
        number = to_decimal(value)
        if number is not None:
            parsed[str(key)] = number
    return parsed


def parse_json_list(raw: Any) -> List[Any]:
    """Parse a JSON-encoded list (legacy ``selectedProducts``); [] on failure."""
    if raw is None or raw == '':
        return []
    data = raw
    if isinstance(raw, (str, bytes)):
        try:
            data = json.loads(raw)
        except (TypeError, ValueError):
            return []
    if isinstance(data, (list, tuple)):
        return list(data)
    return []


@dataclass(frozen=True)
class OrderLine:
    """One product (optionally variant specific) entry of an order or return."""

    product_id: str
    variant_id: Optional[str] = None
    quantity: Optional[Decimal] = None
    unit_price: Optional[Decimal] = None
    name: str = ''

    @property
    def key(self) -> str:
        if not self.product_id:
            return self.name
        return line_key(self.product_id, self.variant_id)

    @classmethod
    def from_data(cls, data: Any) -> 'OrderLine':
        """
        Build a line from a stored or submitted product entry.

        Understands the legacy camelCase shape (``id``, ``productVariantId``,
        ``price``), the snake_case API shape (``product_id``, ``variant_id``,
        ``unit_price``) and bare product ids.
        """
        if not isinstance(data, Mapping):
            return cls(product_id='' if data is None else str(data))

        product_id = _first_present(data, 'product_id', 'productId', 'id')
        variant_id = _first_present(
            data, 'variant_id', 'product_variant_id', 'productVariantId', 'variantId'
        )
        name = _first_present(data, 'name', 'product_name', 'productName') or ''
        return cls(
            product_id='' if product_id is None else str(product_id),
            variant_id=None if variant_id in (None, '') else str(variant_id),
            quantity=to_decimal(data.get('quantity')),
            unit_price=to_decimal(_first_present(data, 'unit_price', 'unitPrice', 'price')),
            name=str(name),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'product_id': self.product_id,
            'variant_id': self.variant_id,
            'quantity': self.quantity,
            'unit_price': self.unit_price,
            'name': self.name,
        }


def _first_present(data: Mapping, *keys: str) -> Any:
    for key in keys:
        value = data.get(key)
        if value is not None:
            return value
    return None


@dataclass(frozen=True)
class OrderSnapshot:
    """The finance-relevant subset of an order, already deserialized."""

    lines: Tuple[OrderLine, ...] = ()
    quantities: Mapping[str, Decimal] = field(default_factory=dict)
    prices: Mapping[str, Decimal] = field(default_factory=dict)
    shipping_charges: Decimal = ZERO
    payment_amount: Optional[Decimal] = None
    status: str = OrderStatus.PENDING

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> 'OrderSnapshot':
        """
        Deserialize a persisted order record (JSON text maps and all).

        ``orderItems`` / ``items`` win over the legacy ``selectedProducts``
        list when present and non-empty.
        """
        items = _first_present(record, 'items', 'order_items', 'orderItems') or []
        if items:
            raw_lines = items
        else:
            raw_lines = parse_json_list(
                _first_present(record, 'selected_products', 'selectedProducts')
            )

        return cls(
            lines=tuple(OrderLine.from_data(entry) for entry in raw_lines),
            quantities=parse_json_map(
                _first_present(record, 'product_quantities', 'productQuantities')
            ),
            prices=parse_json_map(_first_present(record, 'product_prices', 'productPrices')),
            shipping_charges=clamp_non_negative(
                to_decimal(_first_present(record, 'shipping_charges', 'shippingCharges')) or ZERO
            ),
            payment_amount=to_decimal(_first_present(record, 'payment_amount', 'paymentAmount')),
            status=record.get('status') or OrderStatus.PENDING,
        )


@dataclass(frozen=True)
class PaymentStatus:
    total: Decimal
    paid: Decimal
    remaining: Decimal
    is_fully_paid: bool
    is_partially_paid: bool
    is_unpaid: bool


@dataclass(frozen=True)
class RefundBreakdown:
    products_value: Decimal
    shipping_charges: Decimal
    refund_amount: Decimal
    advance_used: Decimal
    # Amount the zero clamp cut off; nothing records it unless the caller does.
    unrecovered_shortfall: Decimal = ZERO


@dataclass(frozen=True)
class ReturnRecord:
    """An existing return as seen by quantity validation."""

    return_type: str
    status: str
    lines: Tuple[OrderLine, ...] = ()

    @property
    def is_active(self) -> bool:
        return self.status != ReturnStatus.REJECTED


@dataclass(frozen=True)
class ReturnValidation:
    ok: bool
    code: Optional[str] = None
    message: str = ''
    line_key: Optional[str] = None

    def __bool__(self):
        return self.ok


RETURN_OK = ReturnValidation(ok=True)


def resolve_quantity(line: OrderLine, quantity_map: Mapping[str, Decimal]) -> Decimal:
    """Whole number of units on the line; fractional values count as missing."""
    for quantity in (line.quantity, quantity_map.get(line.key), quantity_map.get(line.product_id)):
        if is_whole(quantity):
            return clamp_non_negative(quantity)
    return ONE


def resolve_unit_price(line: OrderLine, price_map: Mapping[str, Decimal]) -> Decimal:
    price = line.unit_price
    if price is None:
        price = price_map.get(line.key)
    if price is None:
        price = price_map.get(line.product_id)
    if price is None:
        price = ZERO
    return clamp_non_negative(price)


def compute_line_total(line: OrderLine, quantity_map: Mapping[str, Decimal],
                       price_map: Mapping[str, Decimal]) -> Decimal:
    return resolve_quantity(line, quantity_map) * resolve_unit_price(line, price_map)


def compute_products_total(lines: Iterable[OrderLine], quantity_map: Mapping[str, Decimal],
                           price_map: Mapping[str, Decimal]) -> Decimal:
    """Sum of line totals, shipping excluded. Empty -> 0."""
    return sum(
        (compute_line_total(line, quantity_map, price_map) for line in lines),
        ZERO,
    )


def compute_order_total(order: OrderSnapshot) -> Decimal:
    """Products total of the order; shipping is tracked and refunded separately."""
    return compute_products_total(order.lines, order.quantities, order.prices)


def compute_payment_status(order: OrderSnapshot) -> PaymentStatus:
    """
    Balance of an order against what has been received so far.

    ``remaining`` is deliberately left unclamped so overpayment shows up as a
    negative balance. Exactly one of the three flags is set; an order with
    nothing due and nothing paid counts as fully paid.
    """
    total = compute_order_total(order)
    paid = order.payment_amount if order.payment_amount is not None else ZERO

    is_fully_paid = paid >= total
    return PaymentStatus(
        total=total,
        paid=paid,
        remaining=total - paid,
        is_fully_paid=is_fully_paid,
        is_partially_paid=ZERO < paid < total,
        is_unpaid=not is_fully_paid and paid <= ZERO,
    )


def compute_return_refund(order: OrderSnapshot, return_type: str,
                          selected_lines: Sequence[OrderLine],
                          shipping_charge_handling: Optional[str],
                          advance_balance: Any = ZERO) -> RefundBreakdown:
    """
    Work out how much a return gives back and how much advance it consumes.

    Full customer returns value every order line; partial and supplier
    returns value only the selected lines. Shipping handling applies to
    customer returns only.
    """
    if return_type == ReturnType.CUSTOMER_FULL:
        products_value = compute_order_total(order)
    else:
        products_value = compute_products_total(selected_lines, order.quantities, order.prices)

    shipping = clamp_non_negative(order.shipping_charges or ZERO)
    advance = clamp_non_negative(to_decimal(advance_balance) or ZERO)

    final_refund = products_value
    advance_used = ZERO

    if return_type in ReturnType.CUSTOMER_TYPES:
        if shipping_charge_handling == ShippingChargeHandling.FULL_REFUND:
            final_refund += shipping
        elif shipping_charge_handling == ShippingChargeHandling.DEDUCT_FROM_ADVANCE:
            if advance >= shipping:
                advance_used = shipping
            else:
                advance_used = advance
                final_refund -= shipping - advance
        elif shipping_charge_handling == ShippingChargeHandling.CUSTOMER_PAYS:
            final_refund -= shipping

    return RefundBreakdown(
        products_value=products_value,
        shipping_charges=shipping,
        refund_amount=clamp_non_negative(final_refund),
        advance_used=advance_used,
        unrecovered_shortfall=clamp_non_negative(-final_refund),
    )


def _quantities_by_key(lines: Iterable[OrderLine],
                       quantity_map: Mapping[str, Decimal]) -> Dict[str, Decimal]:
    totals: Dict[str, Decimal] = {}
    for line in lines:
        totals[line.key] = totals.get(line.key, ZERO) + resolve_quantity(line, quantity_map)
    return totals


def _returned_by_key(returns: Iterable[ReturnRecord],
                     quantity_map: Mapping[str, Decimal]) -> Dict[str, Decimal]:
    returned: Dict[str, Decimal] = {}
    for ret in returns:
        for key, quantity in _quantities_by_key(ret.lines, quantity_map).items():
            returned[key] = returned.get(key, ZERO) + quantity
    return returned


def validate_return_quantities(selected_lines: Sequence[OrderLine], order: OrderSnapshot,
                               existing_returns: Iterable[ReturnRecord],
                               return_type: str = ReturnType.CUSTOMER_PARTIAL) -> ReturnValidation:
    """
    Check a proposed return against what is still returnable on the order.

    Rejected returns are ignored. Failures come back as a ``ReturnValidation``
    carrying a named code instead of being raised.
    """
    active = [ret for ret in existing_returns if ret.is_active]
    purchased = _quantities_by_key(order.lines, order.quantities)

    returned = _returned_by_key(active, order.quantities)

    if return_type == ReturnType.CUSTOMER_FULL:
        if any(ret.return_type == ReturnType.CUSTOMER_FULL for ret in active):
            return ReturnValidation(
                ok=False,
                code=FULL_RETURN_EXISTS,
                message='A full return already exists for this order.',
            )
        if not purchased:
            return ReturnValidation(
                ok=False, code=EMPTY_SELECTION, message='Order has no products to return.'
            )
        if all(returned.get(key, ZERO) >= quantity for key, quantity in purchased.items()):
            return ReturnValidation(
                ok=False,
                code=FULL_RETURN_EXISTS,
                message='Existing returns already cover every product on this order.',
            )
        return RETURN_OK

    if not selected_lines:
        return ReturnValidation(
            ok=False, code=EMPTY_SELECTION, message='Select at least one product to return.'
        )

    requested: Dict[str, Decimal] = {}
    for line in selected_lines:
        quantity = resolve_quantity(line, order.quantities)
        if quantity < ONE:
            return ReturnValidation(
                ok=False,
                code=RETURN_QUANTITY_EXCEEDED,
                message=f"Return quantity for '{line.name or line.key}' must be at least 1.",
                line_key=line.key,
            )
        requested[line.key] = requested.get(line.key, ZERO) + quantity

    for key, quantity in requested.items():
        available = purchased.get(key, ZERO) - returned.get(key, ZERO)
        if quantity > available:
            return ReturnValidation(
                ok=False,
                code=RETURN_QUANTITY_EXCEEDED,
                message=(
                    f"Cannot return {quantity} of '{key}': "
                    f"only {clamp_non_negative(available)} available."
                ),
                line_key=key,
            )
    return RETURN_OK


def complete_selected_lines(selected_lines: Iterable[OrderLine],
                            order: OrderSnapshot) -> Tuple[OrderLine, ...]:
    """
    Fill quantity, price and name gaps of selected lines from the matching
    order line, so an unspecified quantity means "everything bought".

    Lines that match nothing on the order are passed through untouched.
    """
    by_key = {line.key: line for line in order.lines}
    completed = []
    for line in selected_lines:
        source = by_key.get(line.key)
        if source is None:
            completed.append(line)
            continue
        completed.append(replace(
            line,
            quantity=line.quantity if is_whole(line.quantity)
            else resolve_quantity(source, order.quantities),
            unit_price=line.unit_price if line.unit_price is not None
            else resolve_unit_price(source, order.prices),
            name=line.name or source.name,
        ))
    return tuple(completed)


def compute_return_status(order: OrderSnapshot, existing_returns: Iterable[ReturnRecord]) -> str:
    """NONE, PARTIAL or FULL depending on what active returns have taken back."""
    active = [ret for ret in existing_returns if ret.is_active]
    if not active:
        return OrderReturnStatus.NONE
    if any(ret.return_type == ReturnType.CUSTOMER_FULL for ret in active):
        return OrderReturnStatus.FULL

    purchased = _quantities_by_key(order.lines, order.quantities)
    returned = _returned_by_key(active, order.quantities)
    if purchased and all(returned.get(key, ZERO) >= quantity for key, quantity in purchased.items()):
        return OrderReturnStatus.FULL
    return OrderReturnStatus.PARTIAL
