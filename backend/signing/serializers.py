"""
Request/response serializers for the signing API.

Input serializers only shape and type-check payloads; workflow rules
(document existence, page ranges, ordering, access) are enforced by the
services so the same checks apply to every caller.
"""

from rest_framework import serializers

from .models import FieldType, LedgerEvent, SigningOrder, ViewMode


class RecipientInputSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=255)
    email = serializers.EmailField()
    role = serializers.CharField(max_length=100, required=False, allow_blank=True)
    access_code = serializers.CharField(max_length=255, required=False, allow_blank=True, trim_whitespace=True)
    require_verification = serializers.BooleanField(required=False, default=False)
    due_date = serializers.DateTimeField(required=False, allow_null=True)


class FieldPlacementInputSerializer(serializers.Serializer):
    document = serializers.IntegerField(source='document_id')
    recipient_index = serializers.IntegerField(min_value=0)
    field_type = serializers.ChoiceField(choices=FieldType.choices)
    label = serializers.CharField(max_length=255, required=False, allow_blank=True, default='')
    page_number = serializers.IntegerField(min_value=1)
    x_pct = serializers.FloatField(min_value=0.0, max_value=1.0)
    y_pct = serializers.FloatField(min_value=0.0, max_value=1.0)
    width_pct = serializers.FloatField(min_value=0.0, max_value=1.0)
    height_pct = serializers.FloatField(min_value=0.0, max_value=1.0)
    required = serializers.BooleanField(required=False, default=True)

    def validate(self, data):
        if data['x_pct'] + data['width_pct'] > 1.0:
            raise serializers.ValidationError("Field extends beyond the right edge of the page")
        if data['y_pct'] + data['height_pct'] > 1.0:
            raise serializers.ValidationError("Field extends beyond the bottom edge of the page")
        return data


class RequestGroupCreateSerializer(serializers.Serializer):
    """Payload for creating a request group."""
    title = serializers.CharField(max_length=255)
    message = serializers.CharField(required=False, allow_blank=True, default='')
    owner_id = serializers.CharField(max_length=255)
    owner_email = serializers.EmailField()
    owner_name = serializers.CharField(max_length=255, required=False, allow_blank=True, default='')
    documents = serializers.ListField(child=serializers.IntegerField(), allow_empty=False)
    recipients = RecipientInputSerializer(many=True, allow_empty=False)
    fields = FieldPlacementInputSerializer(many=True, allow_empty=False)
    signing_order = serializers.ChoiceField(choices=SigningOrder.choices, default=SigningOrder.ANY)
    view_mode = serializers.ChoiceField(choices=ViewMode.choices, default=ViewMode.ISOLATED)
    due_date = serializers.DateTimeField(required=False, allow_null=True)
    hard_expiry = serializers.BooleanField(required=False, allow_null=True, default=None)


class SubmitActionSerializer(serializers.Serializer):
    action = serializers.CharField(max_length=20)
    payload = serializers.DictField(required=False, default=dict)


class OwnerActionSerializer(serializers.Serializer):
    owner_id = serializers.CharField(max_length=255)
    reason = serializers.CharField(required=False, allow_blank=True, default='')


class ReassignSerializer(serializers.Serializer):
    owner_id = serializers.CharField(max_length=255)
    name = serializers.CharField(max_length=255)
    email = serializers.EmailField()
    allow_original_view = serializers.BooleanField(required=False, default=False)
    reason = serializers.CharField(required=False, allow_blank=True, default='')


class AccessCodeSerializer(serializers.Serializer):
    access_code = serializers.CharField(max_length=255)


class VerificationSerializer(serializers.Serializer):
    # Empty body requests a new code; a body with ``code`` confirms it.
    code = serializers.CharField(max_length=12, required=False)


class LedgerEventSerializer(serializers.ModelSerializer):
    recipient_index = serializers.SerializerMethodField()
    is_verified = serializers.SerializerMethodField()

    class Meta:
        model = LedgerEvent
        fields = [
            'id',
            'action',
            'source',
            'recipient_index',
            'from_status',
            'to_status',
            'actor_name',
            'actor_email',
            'ip_address',
            'user_agent',
            'metadata',
            'created_at',
            'event_hash',
            'is_verified',
        ]
        read_only_fields = fields

    def get_recipient_index(self, obj):
        return obj.entry.recipient_index if obj.entry_id else None

    def get_is_verified(self, obj):
        """Recompute the hash and compare with the stored one."""
        return bool(obj.event_hash) and obj.event_hash == obj.compute_event_hash()
