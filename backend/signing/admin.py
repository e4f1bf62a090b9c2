from django.contrib import admin

from .models import (
    FieldPlacement, GroupDocument, LedgerEvent, RecipientLedgerEntry,
    RecipientLink, ReminderDispatch, RequestGroup,
)


class GroupDocumentInline(admin.TabularInline):
    model = GroupDocument
    extra = 0


class RecipientLedgerEntryInline(admin.TabularInline):
    model = RecipientLedgerEntry
    extra = 0
    fields = ('recipient_index', 'name', 'email', 'status', 'signed_at', 'revision')
    readonly_fields = ('status', 'signed_at', 'revision')


@admin.register(RequestGroup)
class RequestGroupAdmin(admin.ModelAdmin):
    list_display = ('title', 'owner_email', 'status', 'signing_order', 'view_mode', 'finalization_state', 'created_at')
    list_filter = ('status', 'signing_order', 'view_mode', 'finalization_state')
    search_fields = ('title', 'owner_email', 'owner_id')
    readonly_fields = ('artifact_ref', 'artifact_sha256', 'finalization_attempts', 'finalization_error')
    inlines = [GroupDocumentInline, RecipientLedgerEntryInline]


@admin.register(RecipientLedgerEntry)
class RecipientLedgerEntryAdmin(admin.ModelAdmin):
    list_display = ('name', 'email', 'group', 'recipient_index', 'status', 'revision')
    list_filter = ('status',)
    search_fields = ('name', 'email')
    readonly_fields = ('revision', 'signed_payload', 'access_code_hash')


@admin.register(FieldPlacement)
class FieldPlacementAdmin(admin.ModelAdmin):
    list_display = ('label', 'field_type', 'group', 'document', 'recipient_index', 'page_number', 'required')
    list_filter = ('field_type', 'required')


@admin.register(RecipientLink)
class RecipientLinkAdmin(admin.ModelAdmin):
    list_display = ('email', 'entry', 'access', 'superseded_reason', 'created_at')
    list_filter = ('access', 'superseded_reason')
    search_fields = ('email', 'token')
    readonly_fields = ('token', 'verification_code_hash')


@admin.register(LedgerEvent)
class LedgerEventAdmin(admin.ModelAdmin):
    list_display = ('action', 'group', 'from_status', 'to_status', 'actor_email', 'source', 'created_at')
    list_filter = ('action', 'source')
    search_fields = ('actor_email', 'event_hash')
    readonly_fields = [f.name for f in LedgerEvent._meta.fields]


@admin.register(ReminderDispatch)
class ReminderDispatchAdmin(admin.ModelAdmin):
    list_display = ('entry', 'threshold', 'delivered', 'created_at')
    list_filter = ('delivered',)
