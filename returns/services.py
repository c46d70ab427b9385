from django.db import transaction
from django.utils import timezone
from decimal import Decimal
from typing import Any, Iterable, Optional
import structlog

from customers.models import Customer
from orders.finance import (
    OrderLine, ReturnStatus, ReturnType, ShippingChargeHandling,
    clamp_non_negative, complete_selected_lines, compute_return_refund,
    compute_return_status, resolve_quantity, resolve_unit_price,
    to_decimal, validate_return_quantities, ZERO
)
from orders.models import Order
from .models import Return, ReturnItem

logger = structlog.get_logger(__name__)

CENT = Decimal('0.01')


class ReturnServiceError(Exception):
    """Raised when a return cannot be created or moved to the requested state"""

    MISSING_REASON = 'MISSING_REASON'
    INVALID_RETURN_TYPE = 'INVALID_RETURN_TYPE'
    INVALID_SHIPPING_HANDLING = 'INVALID_SHIPPING_HANDLING'
    INVALID_STATUS_TRANSITION = 'INVALID_STATUS_TRANSITION'
    INVALID_REFUND_METHOD = 'INVALID_REFUND_METHOD'
    INVALID_REFUND_AMOUNT = 'INVALID_REFUND_AMOUNT'
    RETURN_IMMUTABLE = 'RETURN_IMMUTABLE'

    def __init__(self, code: str, message: str, line_key: Optional[str] = None):
        super().__init__(message)
        self.code = code
        self.message = message
        self.line_key = line_key


def _money(value: Decimal) -> Decimal:
    return value.quantize(CENT)


class ReturnService:
    """Service for creating returns and moving them through their lifecycle"""

    @staticmethod
    def generate_return_number(tenant, now=None) -> str:
        """``RET-<year>-<sequence>``, sequence counted over all of the tenant's returns."""
        now = timezone.localtime(now or timezone.now())
        sequence = Return.objects.filter(tenant=tenant).count() + 1
        return_number = f"RET-{now.year}-{sequence:04d}"
        while Return.objects.filter(tenant=tenant, return_number=return_number).exists():
            sequence += 1
            return_number = f"RET-{now.year}-{sequence:04d}"
        return return_number

    @staticmethod
    def create_order_return(order: Order, return_type: str, shipping_charge_handling: Optional[str],
                            reason: str, return_date=None,
                            selected_products: Optional[Iterable[Any]] = None, user=None) -> Return:
        """
        Create a customer return against an order.

        The refund is worked out against the order as it stands inside the
        transaction, using the customer's current advance balance. Any advance
        used for shipping is taken off the customer straight away.
        """
        if not reason or not str(reason).strip():
            raise ReturnServiceError(ReturnServiceError.MISSING_REASON, 'A return reason is required.')
        if return_type not in ReturnType.CUSTOMER_TYPES:
            raise ReturnServiceError(
                ReturnServiceError.INVALID_RETURN_TYPE,
                'Only customer returns can be created against an order.'
            )
        valid_handling = [choice for choice, _ in ShippingChargeHandling.CHOICES]
        if shipping_charge_handling not in valid_handling:
            raise ReturnServiceError(
                ReturnServiceError.INVALID_SHIPPING_HANDLING,
                'Choose how the shipping charges should be handled.'
            )

        selected_lines = [
            entry if isinstance(entry, OrderLine) else OrderLine.from_data(entry)
            for entry in (selected_products or [])
        ]

        with transaction.atomic():
            locked = Order.objects.select_for_update().get(pk=order.pk)
            snapshot = locked.to_snapshot()
            existing = [ret.to_record() for ret in locked.returns.prefetch_related('items')]

            if return_type == ReturnType.CUSTOMER_FULL:
                lines = tuple(
                    OrderLine(
                        product_id=line.product_id,
                        variant_id=line.variant_id,
                        quantity=resolve_quantity(line, snapshot.quantities),
                        unit_price=resolve_unit_price(line, snapshot.prices),
                        name=line.name,
                    )
                    for line in snapshot.lines
                )
            else:
                lines = complete_selected_lines(selected_lines, snapshot)

            validation = validate_return_quantities(lines, snapshot, existing, return_type=return_type)
            if not validation:
                raise ReturnServiceError(validation.code, validation.message, line_key=validation.line_key)

            customer = None
            advance_balance = ZERO
            if locked.customer_id:
                customer = Customer.objects.select_for_update().get(pk=locked.customer_id)
                advance_balance = customer.advance_balance

            breakdown = compute_return_refund(
                snapshot, return_type, lines, shipping_charge_handling, advance_balance
            )

            sales_return = Return.objects.create(
                tenant=locked.tenant,
                return_number=ReturnService.generate_return_number(locked.tenant),
                order=locked,
                return_type=return_type,
                shipping_charge_handling=shipping_charge_handling,
                reason=str(reason).strip(),
                return_date=return_date or timezone.now(),
                products_value=_money(breakdown.products_value),
                shipping_charge_amount=_money(breakdown.shipping_charges),
                advance_balance_used=_money(breakdown.advance_used),
                refund_amount=_money(breakdown.refund_amount),
                unrecovered_shortfall=_money(breakdown.unrecovered_shortfall),
            )
            for line in lines:
                quantity = int(resolve_quantity(line, snapshot.quantities))
                if quantity < 1:
                    continue
                ReturnItem.objects.create(
                    sales_return=sales_return,
                    product_id=line.product_id,
                    product_variant_id=line.variant_id,
                    product_name=line.name,
                    quantity=quantity,
                    unit_price=_money(resolve_unit_price(line, snapshot.prices)),
                )

            locked.refund_amount = (locked.refund_amount or ZERO) + sales_return.refund_amount
            locked.return_status = compute_return_status(snapshot, existing + [sales_return.to_record()])
            locked.save(update_fields=['refund_amount', 'return_status', 'updated_at'])

            if customer is not None and breakdown.advance_used > ZERO:
                customer.advance_balance = clamp_non_negative(
                    customer.advance_balance - sales_return.advance_balance_used
                )
                customer.save(update_fields=['advance_balance', 'updated_at'])

        logger.info(
            "return_created",
            return_number=sales_return.return_number,
            order_number=locked.order_number,
            return_type=return_type,
            shipping_charge_handling=shipping_charge_handling,
            refund_amount=str(sales_return.refund_amount),
            advance_used=str(sales_return.advance_balance_used),
            created_by=getattr(user, 'pk', None),
        )
        if sales_return.unrecovered_shortfall > ZERO:
            logger.warning(
                "return_shortfall_written_off",
                return_number=sales_return.return_number,
                order_number=locked.order_number,
                shortfall=str(sales_return.unrecovered_shortfall),
            )

        return sales_return

    @staticmethod
    def approve_return(sales_return: Return, user=None) -> Return:
        with transaction.atomic():
            locked = Return.objects.select_for_update().get(pk=sales_return.pk)
            if locked.status != ReturnStatus.PENDING:
                raise ReturnServiceError(
                    ReturnServiceError.INVALID_STATUS_TRANSITION,
                    f"Only pending returns can be approved (current status: {locked.status})."
                )
            locked.status = ReturnStatus.APPROVED
            locked.processed_by = _actor(user)
            locked.processed_at = timezone.now()
            locked.save()

        logger.info("return_approved", return_number=locked.return_number, approved_by=getattr(user, 'pk', None))
        return locked

    @staticmethod
    def reject_return(sales_return: Return, reason: str, user=None) -> Return:
        """
        Reject a pending return and undo its effect on the order and customer.
        """
        if not reason or not str(reason).strip():
            raise ReturnServiceError(ReturnServiceError.MISSING_REASON, 'A rejection reason is required.')

        with transaction.atomic():
            locked = Return.objects.select_for_update().get(pk=sales_return.pk)
            if locked.status != ReturnStatus.PENDING:
                raise ReturnServiceError(
                    ReturnServiceError.INVALID_STATUS_TRANSITION,
                    f"Only pending returns can be rejected (current status: {locked.status})."
                )

            order = Order.objects.select_for_update().get(pk=locked.order_id)
            locked.status = ReturnStatus.REJECTED
            locked.rejection_reason = str(reason).strip()
            locked.processed_by = _actor(user)
            locked.processed_at = timezone.now()
            locked.save()

            order.refund_amount = clamp_non_negative((order.refund_amount or ZERO) - locked.refund_amount)
            order.return_status = compute_return_status(
                order.to_snapshot(),
                [ret.to_record() for ret in order.returns.prefetch_related('items')]
            )
            order.save(update_fields=['refund_amount', 'return_status', 'updated_at'])

            if order.customer_id and locked.advance_balance_used > ZERO:
                customer = Customer.objects.select_for_update().get(pk=order.customer_id)
                customer.advance_balance += locked.advance_balance_used
                customer.save(update_fields=['advance_balance', 'updated_at'])

        logger.info(
            "return_rejected",
            return_number=locked.return_number,
            order_number=order.order_number,
            refund_reversed=str(locked.refund_amount),
            advance_restored=str(locked.advance_balance_used),
        )
        return locked

    @staticmethod
    def process_refund(sales_return: Return, refund_method: str, refund_amount=None, user=None) -> Return:
        """
        Pay out an approved return.

        ``refund_amount`` overrides the calculated refund; the order's refunded
        total follows the override. CREDIT_TO_ACCOUNT puts the money on the
        customer's advance balance instead of paying it out.
        """
        valid_methods = [choice for choice, _ in Return.REFUND_METHODS]
        if refund_method not in valid_methods:
            raise ReturnServiceError(
                ReturnServiceError.INVALID_REFUND_METHOD,
                f"Refund method must be one of {', '.join(valid_methods)}."
            )

        override = None
        if refund_amount is not None:
            override = to_decimal(refund_amount)
            if override is None or override < ZERO:
                raise ReturnServiceError(
                    ReturnServiceError.INVALID_REFUND_AMOUNT, 'Refund amount cannot be negative.'
                )
            override = _money(override)

        with transaction.atomic():
            locked = Return.objects.select_for_update().get(pk=sales_return.pk)
            if locked.status != ReturnStatus.APPROVED:
                raise ReturnServiceError(
                    ReturnServiceError.INVALID_STATUS_TRANSITION,
                    'Return must be approved before processing refund.'
                )

            order = Order.objects.select_for_update().get(pk=locked.order_id)
            if refund_method == 'CREDIT_TO_ACCOUNT' and not order.customer_id:
                raise ReturnServiceError(
                    ReturnServiceError.INVALID_REFUND_METHOD,
                    f"Order {order.order_number} has no customer account to credit."
                )
            final_amount = override if override is not None else locked.refund_amount
            if final_amount != locked.refund_amount:
                order.refund_amount = clamp_non_negative(
                    (order.refund_amount or ZERO) - locked.refund_amount + final_amount
                )
                order.save(update_fields=['refund_amount', 'updated_at'])

            if refund_method == 'CREDIT_TO_ACCOUNT':
                customer = Customer.objects.select_for_update().get(pk=order.customer_id)
                customer.advance_balance += final_amount
                customer.save(update_fields=['advance_balance', 'updated_at'])

            locked.refund_amount = final_amount
            locked.refund_method = refund_method
            locked.status = ReturnStatus.REFUNDED
            locked.processed_by = _actor(user)
            locked.processed_at = timezone.now()
            locked.save()

        logger.info(
            "return_refunded",
            return_number=locked.return_number,
            refund_method=refund_method,
            refund_amount=str(final_amount),
        )
        return locked

    @staticmethod
    def update_return(sales_return: Return, reason: Optional[str] = None, return_date=None) -> Return:
        """Edit the descriptive fields of a pending return"""
        with transaction.atomic():
            locked = Return.objects.select_for_update().get(pk=sales_return.pk)
            if locked.status != ReturnStatus.PENDING:
                raise ReturnServiceError(
                    ReturnServiceError.RETURN_IMMUTABLE,
                    f"Return {locked.return_number} is {locked.status.lower()} and can no longer be edited."
                )
            if reason is not None:
                if not str(reason).strip():
                    raise ReturnServiceError(ReturnServiceError.MISSING_REASON, 'A return reason is required.')
                locked.reason = str(reason).strip()
            if return_date is not None:
                locked.return_date = return_date
            locked.save()

        return locked


def _actor(user):
    if user is not None and getattr(user, 'is_authenticated', False):
        return user
    return None
