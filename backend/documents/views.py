from django.shortcuts import get_object_or_404
from rest_framework import status, viewsets
from rest_framework.parsers import FormParser, MultiPartParser
from rest_framework.permissions import AllowAny
from rest_framework.response import Response

from signing.exceptions import ValidationError
from .models import DocumentReference
from .serializers import DocumentReferenceSerializer, DocumentUploadSerializer
from .services import get_document_service


class DocumentViewSet(viewsets.ViewSet):
    """Upload documents into the blob store and read their metadata."""
    permission_classes = [AllowAny]
    parser_classes = (MultiPartParser, FormParser)

    def create(self, request):
        serializer = DocumentUploadSerializer(data=request.data)
        if not serializer.is_valid():
            raise ValidationError('Invalid upload', details=serializer.errors)

        document = get_document_service().register_upload(
            serializer.validated_data['file'],
            display_name=serializer.validated_data.get('display_name') or None,
        )
        return Response(
            DocumentReferenceSerializer(document).data,
            status=status.HTTP_201_CREATED
        )

    def retrieve(self, request, pk=None):
        document = get_object_or_404(DocumentReference, pk=pk)
        return Response(DocumentReferenceSerializer(document).data)
