"""
Email notifier.

Implements the workflow's notifier contract, ``send(kind, address, data)
-> bool``, on top of Django's email backend. Every attempt is recorded in
NotificationLog; delivery errors are logged and reported as False.
"""

import logging
import smtplib

from django.conf import settings
from django.core.mail import send_mail

from ..models import NotificationKind, NotificationLog

logger = logging.getLogger(__name__)

K = NotificationKind

SUBJECTS = {
    K.SIGNATURE_REQUESTED: "Please sign: {group_title}",
    K.TURN_ACTIVATED: "It's your turn to sign: {group_title}",
    K.RECIPIENT_SIGNED: "{signer_name} signed {group_title}",
    K.ENVELOPE_PROGRESS: "{signer_name} signed {signed_count} of {total_count} documents",
    K.RECIPIENT_DECLINED: "{decliner_name} declined to sign {group_title}",
    K.REQUEST_CANCELLED: "Signature request cancelled: {group_title}",
    K.GROUP_COMPLETED: "Completed: {group_title}",
    K.GROUP_CANCELLED: "Signature request cancelled: {group_title}",
    K.DELEGATED_TO_YOU: "{delegator_name} asked you to sign {group_title}",
    K.DELEGATION_CONFIRMED: "You delegated {group_title} to {delegate_name}",
    K.RECIPIENT_DELEGATED: "{delegator_name} delegated {group_title} to {delegate_name}",
    K.REASSIGNED_TO_YOU: "Please sign: {group_title}",
    K.REASSIGNED_AWAY: "Your signature is no longer needed: {group_title}",
    K.REMINDER: "Reminder: please sign {group_title}",
    K.DUE_SOON: "Due soon: {group_title}",
    K.EXPIRATION_WARNING: "{group_title} expires in {days} day(s)",
    K.RECIPIENT_EXPIRED: "{recipient_name} did not sign {group_title} in time",
    K.GROUP_EXPIRED: "Expired: {group_title}",
    K.VERIFICATION_CODE: "Your verification code",
}

BODIES = {
    K.SIGNATURE_REQUESTED: "Hello {recipient_name},\n\n{owner_name} has requested your signature on "
                           "\"{group_title}\".\n\n{message}\n\nOpen the document: {link_url}",
    K.TURN_ACTIVATED: "Hello {recipient_name},\n\n{previous_signer} has signed. It's now your turn "
                      "to sign \"{group_title}\".\n\nOpen the document: {link_url}",
    K.RECIPIENT_SIGNED: "{signer_name} ({signer_email}) signed \"{group_title}\".",
    K.ENVELOPE_PROGRESS: "{signer_name} has signed {signed_count} of {total_count} documents in "
                         "\"{group_title}\".",
    K.RECIPIENT_DECLINED: "{decliner_name} declined to sign \"{group_title}\".\n\nReason: {reason}",
    K.REQUEST_CANCELLED: "The signature request \"{group_title}\" was cancelled.\n\n{reason}",
    K.GROUP_COMPLETED: "All parties have signed \"{group_title}\".\n\nDocument reference: {artifact_ref}",
    K.GROUP_CANCELLED: "{owner_name} cancelled the signature request \"{group_title}\".\n\n{reason}",
    K.DELEGATED_TO_YOU: "Hello {delegate_name},\n\n{delegator_name} has asked you to sign "
                        "\"{group_title}\" on their behalf.\n\n{note}\n\nOpen the document: {link_url}",
    K.DELEGATION_CONFIRMED: "You delegated \"{group_title}\" to {delegate_name} ({delegate_email}). "
                            "You can still view the document: {link_url}",
    K.RECIPIENT_DELEGATED: "{delegator_name} delegated \"{group_title}\" to {delegate_name} "
                           "({delegate_email}).",
    K.REASSIGNED_TO_YOU: "Hello {recipient_name},\n\n{owner_name} has asked you to sign "
                         "\"{group_title}\".\n\nOpen the document: {link_url}",
    K.REASSIGNED_AWAY: "Hello {recipient_name},\n\nThe sender reassigned \"{group_title}\" to "
                       "someone else. {view_notice}",
    K.REMINDER: "Hello {recipient_name},\n\nThis is a reminder that \"{group_title}\" is waiting "
                "for your signature.\n\nOpen the document: {link_url}",
    K.DUE_SOON: "Hello {recipient_name},\n\n\"{group_title}\" is due on {due_date}.\n\n"
                "Open the document: {link_url}",
    K.EXPIRATION_WARNING: "Hello {recipient_name},\n\n\"{group_title}\" expires in {days} day(s), "
                          "on {due_date}.\n\nOpen the document: {link_url}",
    K.RECIPIENT_EXPIRED: "{recipient_name} ({recipient_email}) did not sign \"{group_title}\" "
                         "before {due_date}.",
    K.GROUP_EXPIRED: "\"{group_title}\" passed its due date ({due_date}) without every signature. "
                     "Unsigned recipients: {pending_recipients}",
    K.VERIFICATION_CODE: "Your verification code is {code}. It expires in {ttl_minutes} minutes.",
}


class _Defaults(dict):
    def __missing__(self, key):
        return ''


def render(kind, data):
    context = _Defaults({k: ('' if v is None else v) for k, v in data.items()})
    subject = SUBJECTS.get(kind, str(kind)).format_map(context)
    body = BODIES.get(kind, '').format_map(context)
    return subject, body


class EmailNotifier:
    """Notifier backed by Django's configured email backend."""

    def send(self, kind, address, data) -> bool:
        subject, body = render(kind, data)
        log = NotificationLog(
            kind=kind,
            address=address,
            subject=subject[:255],
            context={k: str(v) for k, v in data.items() if k != 'code'},
        )
        try:
            send_mail(
                subject,
                body,
                settings.DEFAULT_FROM_EMAIL,
                [address],
                fail_silently=False,
            )
        except (smtplib.SMTPException, OSError) as e:
            log.error_message = str(e)
            log.save()
            logger.warning(f"Email {kind} to {address} failed: {e}")
            return False

        log.delivered = True
        log.save()
        logger.info(f"Email {kind} sent to {address}")
        return True
