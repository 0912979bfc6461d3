"""
Model mixins providing reusable functionality for Django models.

Available Mixins:
    SequenceIdPrimaryKeyMixin: 64-bit time-ordered sequence id as primary key

Usage:
    from core.models import BaseModel
    from core.model_mixins import SequenceIdPrimaryKeyMixin

    class Order(SequenceIdPrimaryKeyMixin, BaseModel):
        amount = models.DecimalField(max_digits=12, decimal_places=2)

Note:
    - Always list mixins before BaseModel in inheritance
    - Mixins are abstract and don't create database tables
"""

from __future__ import annotations

from django.db import models

from core.sequence import generate_sequence_id


class SequenceIdPrimaryKeyMixin(models.Model):
    """
    Use a sequence id (see core.sequence) as primary key.

    Services normally assign the id from an injected generator; the field
    default covers records created elsewhere (admin, fixtures).

    Fields:
        id: BigIntegerField primary key, strictly increasing per node
    """

    id = models.BigIntegerField(
        primary_key=True,
        default=generate_sequence_id,
        editable=False,
        help_text="Time-ordered 64-bit sequence identifier",
    )

    class Meta:
        abstract = True
