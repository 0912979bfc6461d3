"""
Orders app: a buyer's commitment to purchase one resource.

Owns the Order lifecycle:
    pending -> paid -> completed
    pending -> cancelled (buyer cancel or expiry)
    pending -> failed
    paid/completed -> refunded

Payment attempts and settlement live in the payments app, which advances
orders through the transitions defined on the model.

Usage:
    from orders.services import OrderService

    order = OrderService().create_order(buyer=user, resource_id=resource.id)
"""
