"""
Page-number pagination shared by list endpoints.

Clients pass ?page=N&page_size=M; page_size is capped by ORDER_MAX_PAGE_SIZE.
"""

from django.conf import settings
from rest_framework.pagination import PageNumberPagination


class StandardPagination(PageNumberPagination):
    """PageNumberPagination with a client-selectable, capped page size."""

    page_size_query_param = "page_size"

    @property
    def max_page_size(self) -> int:
        return settings.ORDER_MAX_PAGE_SIZE
