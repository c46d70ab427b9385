from django.db import transaction
from django.utils import timezone
from decimal import Decimal
import structlog

from .finance import OrderStatus, PaymentStatus, compute_payment_status, to_decimal, ZERO
from .models import Order, OrderPayment

logger = structlog.get_logger(__name__)

MONTH_CODES = ['JAN', 'FEB', 'MAR', 'APR', 'MAY', 'JUN',
               'JUL', 'AUG', 'SEP', 'OCT', 'NOV', 'DEC']


class PaymentError(Exception):
    """Raised when a payment cannot be recorded against an order"""

    INVALID_PAYMENT_AMOUNT = 'INVALID_PAYMENT_AMOUNT'
    ORDER_CANCELLED = 'ORDER_CANCELLED'

    def __init__(self, code: str, message: str):
        super().__init__(message)
        self.code = code
        self.message = message


def generate_order_number(tenant, now=None) -> str:
    """
    Order number in the form ``<business code>-<MON>-<YY>-<sequence>``; the
    sequence restarts every calendar month for each tenant.
    """
    now = timezone.localtime(now or timezone.now())
    month_start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    prefix = f"{tenant.business_code}-{MONTH_CODES[now.month - 1]}-{now:%y}"

    sequence = Order.objects.filter(tenant=tenant, created_at__gte=month_start).count() + 1
    order_number = f"{prefix}-{sequence:03d}"
    # Skip numbers taken by orders created out of sequence
    while Order.objects.filter(tenant=tenant, order_number=order_number).exists():
        sequence += 1
        order_number = f"{prefix}-{sequence:03d}"
    return order_number


class PaymentService:
    """Records customer payments and keeps the order balance in step"""

    @staticmethod
    def record_payment(order: Order, amount, method: str = 'CASH', reference: str = '',
                       user=None, payment_date=None) -> PaymentStatus:
        """
        Add a payment to the order's running total.

        Overpayment is accepted; it shows up as a negative remaining balance.
        """
        value = to_decimal(amount)
        if value is None or value <= ZERO:
            raise PaymentError(PaymentError.INVALID_PAYMENT_AMOUNT, 'Payment amount must be greater than 0.')

        with transaction.atomic():
            locked = Order.objects.select_for_update().get(pk=order.pk)
            if locked.status == OrderStatus.CANCELLED:
                raise PaymentError(PaymentError.ORDER_CANCELLED, 'Cannot record a payment on a cancelled order.')

            value = value.quantize(Decimal('0.01'))
            OrderPayment.objects.create(
                tenant=locked.tenant,
                order=locked,
                amount=value,
                method=method,
                reference=reference or '',
                payment_date=payment_date or timezone.now(),
                recorded_by=user if user is not None and user.is_authenticated else None,
            )
            locked.payment_amount = (locked.payment_amount or ZERO) + value
            locked.save(update_fields=['payment_amount', 'updated_at'])

        payment_status = compute_payment_status(locked.to_snapshot())
        logger.info(
            "payment_recorded",
            order_number=locked.order_number,
            amount=str(value),
            method=method,
            paid=str(payment_status.paid),
            remaining=str(payment_status.remaining),
            fully_paid=payment_status.is_fully_paid,
        )

        order.payment_amount = locked.payment_amount
        return payment_status

    @staticmethod
    def get_payment_status(order: Order) -> PaymentStatus:
        return compute_payment_status(order.to_snapshot())
