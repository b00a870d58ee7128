"""Pure mapping from gateway state vocabulary to local status and redirect targets."""

from dataclasses import dataclass
from urllib.parse import urlencode

from paybridge.common.state_machine import CANCELLED, FAILED, PENDING, SUCCESS
from paybridge.services.checkout.schemas import OrderStatus

PAYMENT_ERROR_PATH = "/api/phonepay/payment-error"
UNKNOWN_DOMAIN = "unknown-domain.com"

WEBHOOK_CODES: dict[str, str] = {
    "PAYMENT_SUCCESS": SUCCESS,
    "COMPLETED": SUCCESS,
    "PAYMENT_ERROR": FAILED,
    "FAILED": FAILED,
    "PAYMENT_CANCELLED": CANCELLED,
    "CANCELLED": CANCELLED,
}


@dataclass(frozen=True)
class Outcome:
    local_status: str
    human_details: str


def map_state(
    gateway_state: str | None,
    error_code: str | None = None,
    message: str | None = None,
    transaction_id: str | None = None,
    amount_minor_units: int = 0,
) -> Outcome:
    """Display mapping used by the pull-status pages."""

    if gateway_state == "COMPLETED":
        return Outcome(
            SUCCESS,
            f"Transaction ID: {transaction_id or 'N/A'}, Amount: ₹{amount_minor_units / 100:g}",
        )
    if gateway_state in ("PENDING", "CREATED"):
        return Outcome(PENDING, "Your payment is being processed")
    details = message or f"Payment {gateway_state or 'failed'}"
    if error_code:
        details += f" (Code: {error_code})"
    return Outcome(FAILED, details)


def map_order_status(status: OrderStatus) -> Outcome:
    payment = status.first_payment
    return map_state(
        status.state,
        error_code=status.error_code,
        message=status.message,
        transaction_id=payment.transaction_id if payment else None,
        amount_minor_units=status.amount,
    )


def reconcile_status(gateway_state: str | None) -> str:
    """Status written by browser-return reconciliation: anything unfinished counts as cancelled."""

    if gateway_state == "COMPLETED":
        return SUCCESS
    if gateway_state == "FAILED":
        return FAILED
    return CANCELLED


def backfill_status(gateway_state: str | None) -> str:
    """Initial status of a record synthesized from gateway data."""

    if gateway_state == "COMPLETED":
        return SUCCESS
    if gateway_state == "FAILED":
        return FAILED
    return PENDING


def map_webhook_code(code: str | None) -> str:
    return WEBHOOK_CODES.get(code or "", PENDING)


def is_external_domain(domain_name: str) -> bool:
    return "." in domain_name


def outcome_redirect(domain_name: str, local_status: str, order_id: str) -> str:
    """Thank-you page on success, cart otherwise; bare names stay same-origin."""

    if is_external_domain(domain_name):
        base = domain_name if domain_name.startswith("http") else f"https://{domain_name}"
        base = base.rstrip("/")
        return f"{base}/thankyou" if local_status == SUCCESS else f"{base}/cart"
    status = "success" if local_status == SUCCESS else "failed"
    return "/?" + urlencode({"status": status, "txnId": order_id})


def error_redirect(reason: str, order_id: str | None = None) -> str:
    params = {"reason": reason}
    if order_id:
        params["txnId"] = order_id
    return f"{PAYMENT_ERROR_PATH}?{urlencode(params)}"


def status_page_redirect(path: str, outcome: Outcome) -> str:
    """`/upp` and `/multipayment` result pages."""

    return f"{path}?{urlencode({'status': outcome.local_status, 'details': outcome.human_details})}"
