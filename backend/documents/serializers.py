from rest_framework import serializers

from .models import DocumentReference


class DocumentReferenceSerializer(serializers.ModelSerializer):
    """Read serializer for stored documents."""

    class Meta:
        model = DocumentReference
        fields = [
            'id', 'ref', 'display_name', 'content_type',
            'page_count', 'size_bytes', 'sha256', 'created_at',
        ]
        read_only_fields = fields


class DocumentUploadSerializer(serializers.Serializer):
    """Multipart upload payload."""
    file = serializers.FileField()
    display_name = serializers.CharField(max_length=255, required=False, allow_blank=True)

    def validate_file(self, value):
        name = (value.name or '').lower()
        if not name.endswith('.pdf'):
            raise serializers.ValidationError('Only PDF files are accepted')
        return value
