from rest_framework import serializers


class BaseModelSerializer(serializers.ModelSerializer):
    """
    Base serializer for project models.

    Subclasses list `select_related_fields` / `prefetch_related_fields` in
    Meta; OptimizedQuerysetMixin applies them to the view's queryset.
    """

    class Meta:
        select_related_fields = []
        prefetch_related_fields = []


class TimestampedSerializer(BaseModelSerializer):
    """Adds read-only created_at/updated_at to models that carry them."""

    created_at = serializers.DateTimeField(read_only=True)
    updated_at = serializers.DateTimeField(read_only=True)
