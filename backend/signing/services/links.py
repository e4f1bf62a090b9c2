"""Issuing and resolving recipient links."""

from django.utils import timezone

from ..exceptions import NotFoundError
from ..models import LinkAccess, RecipientLink
from .token_utils import generate_secure_token


class LinkService:
    """Service for recipient link lifecycle."""

    @staticmethod
    def issue(entry, name, email):
        return RecipientLink.objects.create(
            token=generate_secure_token(),
            entry=entry,
            name=name,
            email=email,
            access=LinkAccess.SIGNER,
        )

    @staticmethod
    def resolve(token):
        """
        Look up a link and its entry.

        Raises:
            NotFoundError: for unknown tokens
        """
        try:
            return RecipientLink.objects.select_related('entry__group').get(token=token)
        except RecipientLink.DoesNotExist:
            raise NotFoundError('Invalid signing link')

    @staticmethod
    def current_signer_link(entry):
        return entry.links.filter(access=LinkAccess.SIGNER, superseded_reason='').order_by('-created_at').first()

    @staticmethod
    def supersede(links, reason, access):
        return links.update(access=access, superseded_reason=reason, superseded_at=timezone.now())
