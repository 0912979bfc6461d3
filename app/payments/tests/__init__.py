"""
Tests for payments app.

This package contains test modules for:
- test_models.py: PaymentTransaction, WebhookEvent, CommissionRule model tests
- test_services.py: PaymentService tests
- test_settlement.py / test_coordinator_races.py: settlement coordinator
- test_views.py: API endpoint tests
- test_integration.py: order-to-settlement workflows

Usage:
    pytest payments/tests/
    pytest payments/tests/test_settlement.py
"""
