"""
Core backend base components.

Foundational classes shared by the project's DRF apps.
"""

from .viewsets import BaseViewSet
from .serializers import BaseModelSerializer, TimestampedSerializer
from .mixins import OptimizedQuerysetMixin

__all__ = [
    # ViewSets
    'BaseViewSet',

    # Serializers
    'BaseModelSerializer',
    'TimestampedSerializer',

    # Mixins
    'OptimizedQuerysetMixin',
]
