"""
Payments app: collecting and settling order payments.

This app handles:
- Payment attempts through PayPal, Stripe Checkout and USDT (Tron, Ethereum)
- Provider webhooks (store, authenticate, process asynchronously)
- Exactly-once finalization of orders and their settlement
- Commission split between the platform and third-party payees
- Payee payout destinations
- Reconciliation of attempts whose webhooks never arrived

Related apps:
    - orders: Orders being paid
    - catalog: Resources and their owners (payees)

Usage:
    from payments.services import PaymentService

    attempt = PaymentService().pay(order_id, request.user, "paypal")
    status = PaymentService().verify(str(attempt.id), request.user)
"""
