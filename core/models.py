"""
Core models for FormaFlow
Contains abstract base classes shared by the domain apps
"""
from django.conf import settings
from django.db import models


class TimeStampedModel(models.Model):
    """
    Abstract base class for models requiring an audit trail
    Provides created/updated timestamps and the users behind them
    """
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name='%(app_label)s_%(class)s_created',
        null=True, blank=True
    )
    updated_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name='%(app_label)s_%(class)s_updated',
        null=True, blank=True
    )

    class Meta:
        abstract = True
