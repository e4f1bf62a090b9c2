"""
backend/documents/urls.py

"""

# ----------------------------
# Django imports
# ----------------------------
from django.urls import path

# ----------------------------
# Local view imports
# ----------------------------
from .views import DocumentViewSet

# App namespace for reverse() lookups
app_name = 'documents'

# ----------------------------
# Document routes
# ----------------------------
urlpatterns = [
    path('', DocumentViewSet.as_view({
        'post': 'create'
    }), name='document-upload'),
    # Upload a PDF. The bytes go to the blob store; the response carries the
    # document id used when creating request groups.

    path('<int:pk>/', DocumentViewSet.as_view({
        'get': 'retrieve'
    }), name='document-detail'),
    # Metadata for one stored document (page count, sha256, blob ref).
]
