"""
Link access control.

Both the read path (status view) and the write path (submitted actions)
authorize through ``AccessPolicy.authorize``, so reassignment, delegation
and revocation are decided in one place. Access codes and secondary
verification are the optional per-entry gates in front of that.
"""

import logging
from datetime import timedelta

from django.db.models import F
from django.utils import timezone

from notifications.models import NotificationKind

from ..collaborators import signing_setting
from ..exceptions import AccessDeniedError, ValidationError
from ..models import LinkAccess, RecipientLedgerEntry, SupersededReason
from .notify import deliver
from .token_utils import (
    calculate_expiry, generate_numeric_code, hash_secret, is_expired, secrets_match,
)

logger = logging.getLogger(__name__)


def normalize_access_code(code):
    """Codes are compared case-insensitively with all whitespace removed."""
    return ''.join(str(code).split()).lower()


def hash_access_code(code):
    return hash_secret(normalize_access_code(code))


def validate_access_code(code):
    normalized = normalize_access_code(code)
    low = signing_setting('ACCESS_CODE_MIN_LENGTH')
    high = signing_setting('ACCESS_CODE_MAX_LENGTH')
    if not low <= len(normalized) <= high:
        raise ValidationError(f"Access code must be between {low} and {high} characters")
    return normalized


class AccessPolicy:
    """Single decision point for what a link may do."""

    SIGNER = LinkAccess.SIGNER
    VIEW_ONLY = LinkAccess.VIEW_ONLY

    @staticmethod
    def authorize(link, entry=None):
        """
        Resolve a link to ``SIGNER`` or ``VIEW_ONLY``.

        Raises:
            AccessDeniedError: revoked links, and links superseded by a
                reassignment whose entry does not allow the original to view
        """
        entry = entry or link.entry

        if link.access == LinkAccess.REVOKED:
            raise AccessDeniedError('This link has been revoked')

        if link.superseded_reason == SupersededReason.REASSIGNED:
            if not (entry.reassignment or {}).get('allow_original_view'):
                raise AccessDeniedError('This request was reassigned to another recipient')
            return LinkAccess.VIEW_ONLY

        if link.superseded_reason == SupersededReason.DELEGATED:
            return LinkAccess.VIEW_ONLY

        return LinkAccess(link.access)

    @staticmethod
    def pending_gates(link, entry):
        """Names of the verification steps this link still has to pass."""
        gates = []
        if entry.has_access_code and not link.access_verified_at:
            gates.append('access_code')
        if entry.requires_secondary_verification and not link.secondary_verified_at:
            gates.append('secondary_verification')
        return gates

    @staticmethod
    def require_verified(link, entry):
        gates = AccessPolicy.pending_gates(link, entry)
        if 'access_code' in gates:
            raise AccessDeniedError('An access code is required to open this document')
        if 'secondary_verification' in gates:
            raise AccessDeniedError('Identity verification is required to open this document')

    @staticmethod
    def verify_access_code(link, code):
        """
        Check an access code, counting failures and locking the entry out
        after too many attempts.

        Returns:
            RecipientLink: the link, now marked verified
        """
        entry = link.entry
        AccessPolicy.authorize(link, entry)
        now = timezone.now()

        if not entry.has_access_code:
            return link

        if entry.access_locked_until and entry.access_locked_until > now:
            minutes = max(1, int((entry.access_locked_until - now).total_seconds() // 60))
            raise AccessDeniedError(
                f"Too many failed attempts. Try again in {minutes} minute(s)",
                details={'locked_until': entry.access_locked_until.isoformat()}
            )

        if secrets_match(normalize_access_code(code), entry.access_code_hash):
            RecipientLedgerEntry.objects.filter(pk=entry.pk).update(
                failed_access_attempts=0,
                access_locked_until=None,
            )
            link.access_verified_at = now
            link.save(update_fields=['access_verified_at'])
            logger.info(f"Access code verified for entry {entry.pk}")
            return link

        max_attempts = signing_setting('ACCESS_CODE_MAX_ATTEMPTS')
        RecipientLedgerEntry.objects.filter(pk=entry.pk).update(
            failed_access_attempts=F('failed_access_attempts') + 1
        )
        entry.refresh_from_db(fields=['failed_access_attempts'])

        if entry.failed_access_attempts >= max_attempts:
            locked_until = now + timedelta(minutes=signing_setting('ACCESS_CODE_LOCKOUT_MINUTES'))
            RecipientLedgerEntry.objects.filter(pk=entry.pk).update(
                failed_access_attempts=0,
                access_locked_until=locked_until,
            )
            logger.warning(f"Entry {entry.pk} locked out until {locked_until.isoformat()}")
            raise AccessDeniedError(
                'Too many failed attempts. Access is temporarily locked',
                details={'locked_until': locked_until.isoformat()}
            )

        remaining = max_attempts - entry.failed_access_attempts
        logger.info(f"Invalid access code for entry {entry.pk}; {remaining} attempt(s) left")
        raise AccessDeniedError(
            f"Invalid access code. {remaining} attempt(s) remaining",
            details={'attempts_remaining': remaining}
        )

    @staticmethod
    def issue_verification_code(link):
        """Send a one-time code to whoever holds the link."""
        entry = link.entry
        AccessPolicy.authorize(link, entry)
        if not entry.requires_secondary_verification:
            raise ValidationError('This request does not require identity verification')

        ttl = signing_setting('VERIFICATION_CODE_TTL_MINUTES')
        code = generate_numeric_code()
        link.verification_code_hash = hash_secret(code)
        link.verification_code_expires_at = calculate_expiry(minutes=ttl)
        link.save(update_fields=['verification_code_hash', 'verification_code_expires_at'])

        deliver(NotificationKind.VERIFICATION_CODE, link.email, {
            'code': code,
            'ttl_minutes': ttl,
        })
        logger.info(f"Verification code issued for link {link.pk}")
        return link.verification_code_expires_at

    @staticmethod
    def confirm_verification_code(link, code):
        AccessPolicy.authorize(link)
        if not link.verification_code_hash:
            raise AccessDeniedError('Request a verification code first')
        if is_expired(link.verification_code_expires_at):
            raise AccessDeniedError('The verification code has expired; request a new one')
        if not secrets_match(str(code).strip(), link.verification_code_hash):
            raise AccessDeniedError('Invalid verification code')

        link.secondary_verified_at = timezone.now()
        link.verification_code_hash = ''
        link.verification_code_expires_at = None
        link.save(update_fields=[
            'secondary_verified_at', 'verification_code_hash', 'verification_code_expires_at',
        ])
        logger.info(f"Secondary verification passed for link {link.pk}")
        return link
