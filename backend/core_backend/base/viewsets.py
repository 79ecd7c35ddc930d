from rest_framework import viewsets, filters
from django_filters.rest_framework import DjangoFilterBackend
from .mixins import OptimizedQuerysetMixin
from ..pagination import StandardPagination


class BaseViewSet(OptimizedQuerysetMixin, viewsets.ModelViewSet):
    """
    Base ViewSet that provides standard configuration for all ModelViewSets.

    Features:
    - Query optimization from serializer Meta via OptimizedQuerysetMixin
    - Standard pagination, filtering, and ordering

    Usage:
        class TableViewSet(BaseViewSet):
            queryset = Table.objects.all()
            serializer_class = TableSerializer
    """

    pagination_class = StandardPagination

    filter_backends = [
        DjangoFilterBackend,
        filters.OrderingFilter,
    ]

    # Default ordering (can be overridden)
    ordering = ['-id']
