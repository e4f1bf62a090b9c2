from django.contrib import admin

from .models import NotificationLog, Webhook, WebhookAttempt, WebhookEvent


@admin.register(NotificationLog)
class NotificationLogAdmin(admin.ModelAdmin):
    list_display = ('kind', 'address', 'delivered', 'created_at')
    list_filter = ('kind', 'delivered')
    search_fields = ('address', 'subject')


@admin.register(Webhook)
class WebhookAdmin(admin.ModelAdmin):
    list_display = ('url', 'owner_id', 'is_active', 'delivered_count', 'failed_count', 'last_delivery_at')
    list_filter = ('is_active',)
    search_fields = ('url', 'owner_id', 'description')
    readonly_fields = ('secret', 'delivered_count', 'failed_count', 'last_delivery_at')


class WebhookAttemptInline(admin.TabularInline):
    model = WebhookAttempt
    extra = 0
    readonly_fields = ('number', 'status_code', 'response_body', 'error_message', 'duration_ms', 'created_at')


@admin.register(WebhookEvent)
class WebhookEventAdmin(admin.ModelAdmin):
    list_display = ('event_type', 'webhook', 'group_id', 'status', 'attempt_count', 'created_at')
    list_filter = ('event_type', 'status')
    search_fields = ('group_id',)
    inlines = [WebhookAttemptInline]
