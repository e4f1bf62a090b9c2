import uuid

from django.conf import settings
from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models
from django.db.models.signals import post_save
from django.dispatch import receiver
from django.utils import timezone

from documents.models import DocumentReference


class SigningOrder(models.TextChoices):
    ANY = 'any', 'Any order'
    SEQUENTIAL = 'sequential', 'Sequential'


class ViewMode(models.TextChoices):
    ISOLATED = 'isolated', 'Isolated'
    SHARED = 'shared', 'Shared'


class GroupStatus(models.TextChoices):
    PENDING_SIGNATURE = 'pending_signature', 'Pending signature'
    COMPLETED = 'completed', 'Completed'
    DECLINED = 'declined', 'Declined'
    CANCELLED = 'cancelled', 'Cancelled'


class EntryStatus(models.TextChoices):
    PENDING = 'pending', 'Pending'
    VIEWED = 'viewed', 'Viewed'
    AWAITING_TURN = 'awaiting_turn', 'Awaiting turn'
    SIGNED = 'signed', 'Signed'
    DECLINED = 'declined', 'Declined'
    CANCELLED = 'cancelled', 'Cancelled'
    DELEGATED = 'delegated', 'Delegated'


# Entries a recipient (or delegate) can currently act on.
ACTIVE_STATUSES = (EntryStatus.PENDING, EntryStatus.VIEWED, EntryStatus.DELEGATED)
# Entries not yet resolved; cancelled by a decline or an owner cancellation.
OPEN_STATUSES = ACTIVE_STATUSES + (EntryStatus.AWAITING_TURN,)
TERMINAL_STATUSES = (EntryStatus.SIGNED, EntryStatus.DECLINED, EntryStatus.CANCELLED)


class FinalizationState(models.TextChoices):
    IDLE = 'idle', 'Idle'
    ASSEMBLING = 'assembling', 'Assembling'
    FAILED = 'failed', 'Failed'
    DONE = 'done', 'Done'


class Action(models.TextChoices):
    VIEW = 'view', 'View'
    SIGN = 'sign', 'Sign'
    DECLINE = 'decline', 'Decline'
    DELEGATE = 'delegate', 'Delegate'
    REASSIGN = 'reassign', 'Reassign'
    EXPIRE = 'expire', 'Expire'
    # Internal transitions, never submitted through a link.
    CANCEL = 'cancel', 'Cancel'
    ACTIVATE = 'activate', 'Activate'
    CREATE = 'create', 'Create'
    REMIND = 'remind', 'Remind'


RECIPIENT_ACTIONS = (
    Action.VIEW, Action.SIGN, Action.DECLINE,
    Action.DELEGATE, Action.REASSIGN, Action.EXPIRE,
)


class ActionSource(models.TextChoices):
    RECIPIENT = 'recipient', 'Recipient'
    OWNER = 'owner', 'Owner'
    SCHEDULER = 'scheduler', 'Scheduler'
    SYSTEM = 'system', 'System'


class LinkAccess(models.TextChoices):
    SIGNER = 'signer', 'Signer'
    VIEW_ONLY = 'view_only', 'View only'
    REVOKED = 'revoked', 'Revoked'


class SupersededReason(models.TextChoices):
    DELEGATED = 'delegated', 'Delegated'
    REASSIGNED = 'reassigned', 'Reassigned'


class FieldType(models.TextChoices):
    SIGNATURE = 'signature', 'Signature'
    INITIALS = 'initials', 'Initials'
    TEXT = 'text', 'Text'
    DATE = 'date', 'Date'
    CHECKBOX = 'checkbox', 'Checkbox'


class RequestGroup(models.Model):
    """
    One signing transaction: a document (or an envelope of documents) sent
    to an ordered set of recipients.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    title = models.CharField(max_length=255)
    message = models.TextField(blank=True)

    owner_id = models.CharField(max_length=255, db_index=True)
    owner_email = models.EmailField()
    owner_name = models.CharField(max_length=255, blank=True)

    documents = models.ManyToManyField(
        DocumentReference,
        through='GroupDocument',
        related_name='request_groups'
    )

    signing_order = models.CharField(
        max_length=20,
        choices=SigningOrder.choices,
        default=SigningOrder.ANY
    )
    view_mode = models.CharField(
        max_length=20,
        choices=ViewMode.choices,
        default=ViewMode.ISOLATED
    )
    status = models.CharField(
        max_length=20,
        choices=GroupStatus.choices,
        default=GroupStatus.PENDING_SIGNATURE,
        db_index=True
    )

    # Expiration policy
    due_date = models.DateTimeField(null=True, blank=True)
    hard_expiry = models.BooleanField(
        default=True,
        help_text="Reject view/sign once the due date has passed"
    )
    expired_at = models.DateTimeField(null=True, blank=True)

    # Final artifact, written at most once
    artifact_ref = models.CharField(max_length=255, null=True, blank=True)
    artifact_sha256 = models.CharField(max_length=64, blank=True)
    document_artifacts = models.JSONField(
        default=dict,
        blank=True,
        help_text="Per-document composed artifact refs keyed by document id"
    )

    # Finalization bookkeeping
    finalization_state = models.CharField(
        max_length=20,
        choices=FinalizationState.choices,
        default=FinalizationState.IDLE
    )
    finalization_attempts = models.PositiveIntegerField(default=0)
    finalization_error = models.TextField(blank=True)
    next_finalization_at = models.DateTimeField(null=True, blank=True)
    finalized_at = models.DateTimeField(null=True, blank=True)

    cancellation_reason = models.TextField(blank=True)

    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(auto_now=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    declined_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['status', 'created_at'], name='group_status_created_idx'),
            models.Index(fields=['finalization_state', 'next_finalization_at'], name='group_finalization_idx'),
        ]

    def __str__(self):
        return f"{self.title} ({self.status})"

    def ordered_documents(self):
        return [
            gd.document
            for gd in self.group_documents.select_related('document').order_by('order')
        ]

    @property
    def is_envelope(self):
        return self.group_documents.count() > 1

    def hard_cutoff_passed(self, due_date=None, now=None):
        due_date = due_date or self.due_date
        if not self.hard_expiry or due_date is None:
            return False
        return (now or timezone.now()) > due_date


class GroupDocument(models.Model):
    """Ordered document within a request group."""
    group = models.ForeignKey(RequestGroup, on_delete=models.CASCADE, related_name='group_documents')
    document = models.ForeignKey(DocumentReference, on_delete=models.PROTECT, related_name='group_memberships')
    order = models.PositiveIntegerField()

    class Meta:
        ordering = ['order']
        constraints = [
            models.UniqueConstraint(fields=['group', 'order'], name='unique_group_document_order'),
            models.UniqueConstraint(fields=['group', 'document'], name='unique_group_document'),
        ]

    def __str__(self):
        return f"{self.group.title} - {self.document.display_name} ({self.order})"


class RecipientLedgerEntry(models.Model):
    """
    Per-recipient participation record within one request group.

    Mutated only through compare-and-swap updates keyed on ``status`` and
    ``revision``; see ``signing.services.state_machine``.
    """
    group = models.ForeignKey(RequestGroup, on_delete=models.CASCADE, related_name='entries')
    recipient_index = models.PositiveIntegerField()

    name = models.CharField(max_length=255)
    email = models.EmailField()
    role = models.CharField(max_length=100, blank=True, default='signer')

    status = models.CharField(max_length=20, choices=EntryStatus.choices, db_index=True)

    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(auto_now=True)
    viewed_at = models.DateTimeField(null=True, blank=True)
    signed_at = models.DateTimeField(null=True, blank=True)
    declined_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    delegated_at = models.DateTimeField(null=True, blank=True)
    expired_at = models.DateTimeField(null=True, blank=True)

    decline_reason = models.TextField(blank=True)
    cancellation_reason = models.TextField(blank=True)

    signed_payload = models.JSONField(
        null=True,
        blank=True,
        help_text="Field values keyed by field id; present only once signed"
    )
    document_payloads = models.JSONField(
        default=dict,
        blank=True,
        help_text="Envelope progress: values per signed document id"
    )
    signed_documents = models.JSONField(
        default=list,
        blank=True,
        help_text="Ids of envelope documents this recipient has signed or that need no action"
    )

    # Access policy
    access_code_hash = models.CharField(max_length=64, blank=True)
    failed_access_attempts = models.PositiveIntegerField(default=0)
    access_locked_until = models.DateTimeField(null=True, blank=True)
    requires_secondary_verification = models.BooleanField(default=False)
    due_date = models.DateTimeField(null=True, blank=True)

    delegation = models.JSONField(
        null=True,
        blank=True,
        help_text="{name, email, note, delegated_by} while delegated"
    )
    reassignment = models.JSONField(
        null=True,
        blank=True,
        help_text="{original_identity, allow_original_view, reason, reassigned_at}"
    )

    reminder_count = models.PositiveIntegerField(default=0)
    last_reminder_sent_at = models.DateTimeField(null=True, blank=True)

    revision = models.PositiveIntegerField(default=0)

    class Meta:
        ordering = ['group', 'recipient_index']
        constraints = [
            models.UniqueConstraint(
                fields=['group', 'recipient_index'],
                name='unique_entry_per_recipient_index'
            ),
        ]

    def __str__(self):
        return f"{self.name} <{self.email}> #{self.recipient_index} ({self.status})"

    @property
    def acting_name(self):
        return self.delegation['name'] if self.delegation else self.name

    @property
    def acting_email(self):
        """Address of whoever currently holds the signer link."""
        return self.delegation['email'] if self.delegation else self.email

    @property
    def has_access_code(self):
        return bool(self.access_code_hash)

    def effective_due_date(self):
        dates = [d for d in (self.due_date, self.group.due_date) if d]
        return min(dates) if dates else None


class FieldPlacement(models.Model):
    """A field on one document page assigned to one recipient slot."""
    group = models.ForeignKey(RequestGroup, on_delete=models.CASCADE, related_name='fields')
    document = models.ForeignKey(DocumentReference, on_delete=models.PROTECT, related_name='placements')
    recipient_index = models.PositiveIntegerField()

    field_type = models.CharField(max_length=20, choices=FieldType.choices)
    label = models.CharField(max_length=255, blank=True)
    page_number = models.PositiveIntegerField(validators=[MinValueValidator(1)])
    x_pct = models.FloatField(validators=[MinValueValidator(0.0), MaxValueValidator(1.0)])
    y_pct = models.FloatField(validators=[MinValueValidator(0.0), MaxValueValidator(1.0)])
    width_pct = models.FloatField(validators=[MinValueValidator(0.0), MaxValueValidator(1.0)])
    height_pct = models.FloatField(validators=[MinValueValidator(0.0), MaxValueValidator(1.0)])
    required = models.BooleanField(default=True)

    class Meta:
        ordering = ['document', 'page_number', 'y_pct', 'x_pct']

    def __str__(self):
        return f"{self.label or self.field_type} (recipient {self.recipient_index}, p{self.page_number})"


class RecipientLink(models.Model):
    """
    Bearer link through which one person acts on a ledger entry.

    Delegation and reassignment issue new links; superseded links are kept
    so their holders get the correct view-only or denied response.
    """
    token = models.CharField(max_length=64, unique=True, db_index=True)
    entry = models.ForeignKey(RecipientLedgerEntry, on_delete=models.CASCADE, related_name='links')
    name = models.CharField(max_length=255)
    email = models.EmailField()
    access = models.CharField(max_length=20, choices=LinkAccess.choices, default=LinkAccess.SIGNER)
    superseded_reason = models.CharField(
        max_length=20,
        choices=SupersededReason.choices,
        blank=True,
        default=''
    )
    superseded_at = models.DateTimeField(null=True, blank=True)

    access_verified_at = models.DateTimeField(null=True, blank=True)
    verification_code_hash = models.CharField(max_length=64, blank=True)
    verification_code_expires_at = models.DateTimeField(null=True, blank=True)
    secondary_verified_at = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return f"Link {self.token[:8]}... ({self.access}) for {self.email}"

    @property
    def url(self):
        return f"{settings.FRONTEND_BASE_URL.rstrip('/')}/sign/{self.token}"


class LedgerEvent(models.Model):
    """Audit record of every applied action, with a tamper-evident hash."""
    group = models.ForeignKey(RequestGroup, on_delete=models.CASCADE, related_name='events')
    entry = models.ForeignKey(
        RecipientLedgerEntry,
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name='events'
    )
    action = models.CharField(max_length=20, choices=Action.choices)
    source = models.CharField(max_length=20, choices=ActionSource.choices, default=ActionSource.RECIPIENT)
    from_status = models.CharField(max_length=20, blank=True)
    to_status = models.CharField(max_length=20, blank=True)

    actor_name = models.CharField(max_length=255, blank=True)
    actor_email = models.EmailField(blank=True)
    ip_address = models.GenericIPAddressField(null=True, blank=True)
    user_agent = models.TextField(blank=True)
    metadata = models.JSONField(default=dict, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    event_hash = models.CharField(
        max_length=64,
        null=True,
        blank=True,
        help_text="SHA256 hash of this event for tamper detection"
    )

    class Meta:
        ordering = ['created_at', 'id']

    def __str__(self):
        return f"{self.action} {self.from_status}->{self.to_status} ({self.actor_email})"

    def compute_event_hash(self):
        """
        Compute tamper-evident hash for this event.
        Called after created_at is set by auto_now_add.
        """
        from documents.services.hashing import HashingService

        return HashingService.compute_json_sha256({
            'group_id': str(self.group_id),
            'entry_id': self.entry_id,
            'action': self.action,
            'source': self.source,
            'from_status': self.from_status,
            'to_status': self.to_status,
            'actor_email': self.actor_email,
            'metadata': self.metadata,
            'created_at': self.created_at.isoformat(),
        })


@receiver(post_save, sender=LedgerEvent)
def compute_ledger_event_hash(sender, instance, created, **kwargs):
    """Compute event_hash after initial creation (when created_at is populated)."""
    if created and not instance.event_hash:
        instance.event_hash = instance.compute_event_hash()
        LedgerEvent.objects.filter(pk=instance.pk).update(event_hash=instance.event_hash)


class ReminderDispatch(models.Model):
    """
    Idempotency flag for one time-based notification per entry.

    The unique (entry, threshold) constraint makes the claim an atomic
    insert-if-absent.
    """
    entry = models.ForeignKey(RecipientLedgerEntry, on_delete=models.CASCADE, related_name='reminder_dispatches')
    threshold = models.CharField(max_length=50)
    delivered = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-created_at']
        constraints = [
            models.UniqueConstraint(fields=['entry', 'threshold'], name='unique_reminder_per_threshold'),
        ]

    def __str__(self):
        return f"{self.threshold} for entry {self.entry_id}"
