"""Ledger event recording."""

from ..models import ActionSource, LedgerEvent


def record_event(group, action, entry=None, from_status='', to_status='',
                 source=ActionSource.RECIPIENT, actor_name='', actor_email='',
                 ip_address=None, user_agent='', **metadata):
    """Append an audit event; event_hash is filled in by the post_save receiver."""
    if entry is not None and not actor_email and source == ActionSource.RECIPIENT:
        actor_name = entry.acting_name
        actor_email = entry.acting_email
    return LedgerEvent.objects.create(
        group=group,
        entry=entry,
        action=action,
        source=source,
        from_status=from_status or '',
        to_status=to_status or '',
        actor_name=actor_name or '',
        actor_email=actor_email or '',
        ip_address=ip_address,
        user_agent=user_agent or '',
        metadata=metadata,
    )
