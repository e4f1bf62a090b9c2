from django.contrib import admin

from .models import DocumentReference


@admin.register(DocumentReference)
class DocumentReferenceAdmin(admin.ModelAdmin):
    list_display = ('display_name', 'page_count', 'size_bytes', 'created_at')
    search_fields = ('display_name', 'ref', 'sha256')
    list_filter = ('created_at',)
    readonly_fields = ('ref', 'sha256', 'size_bytes', 'page_count', 'created_at')
