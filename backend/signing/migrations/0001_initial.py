import uuid

import django.core.validators
import django.db.models.deletion
import django.utils.timezone
from django.db import migrations, models

ENTRY_STATUSES = [
    ('pending', 'Pending'),
    ('viewed', 'Viewed'),
    ('awaiting_turn', 'Awaiting turn'),
    ('signed', 'Signed'),
    ('declined', 'Declined'),
    ('cancelled', 'Cancelled'),
    ('delegated', 'Delegated'),
]

ACTIONS = [
    ('view', 'View'),
    ('sign', 'Sign'),
    ('decline', 'Decline'),
    ('delegate', 'Delegate'),
    ('reassign', 'Reassign'),
    ('expire', 'Expire'),
    ('cancel', 'Cancel'),
    ('activate', 'Activate'),
    ('create', 'Create'),
    ('remind', 'Remind'),
]

PCT_VALIDATORS = [
    django.core.validators.MinValueValidator(0.0),
    django.core.validators.MaxValueValidator(1.0),
]


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('documents', '0001_initial'),
    ]

    operations = [
        migrations.CreateModel(
            name='RequestGroup',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('title', models.CharField(max_length=255)),
                ('message', models.TextField(blank=True)),
                ('owner_id', models.CharField(db_index=True, max_length=255)),
                ('owner_email', models.EmailField(max_length=254)),
                ('owner_name', models.CharField(blank=True, max_length=255)),
                ('signing_order', models.CharField(choices=[('any', 'Any order'), ('sequential', 'Sequential')], default='any', max_length=20)),
                ('view_mode', models.CharField(choices=[('isolated', 'Isolated'), ('shared', 'Shared')], default='isolated', max_length=20)),
                ('status', models.CharField(choices=[('pending_signature', 'Pending signature'), ('completed', 'Completed'), ('declined', 'Declined'), ('cancelled', 'Cancelled')], db_index=True, default='pending_signature', max_length=20)),
                ('due_date', models.DateTimeField(blank=True, null=True)),
                ('hard_expiry', models.BooleanField(default=True, help_text='Reject view/sign once the due date has passed')),
                ('expired_at', models.DateTimeField(blank=True, null=True)),
                ('artifact_ref', models.CharField(blank=True, max_length=255, null=True)),
                ('artifact_sha256', models.CharField(blank=True, max_length=64)),
                ('document_artifacts', models.JSONField(blank=True, default=dict, help_text='Per-document composed artifact refs keyed by document id')),
                ('finalization_state', models.CharField(choices=[('idle', 'Idle'), ('assembling', 'Assembling'), ('failed', 'Failed'), ('done', 'Done')], default='idle', max_length=20)),
                ('finalization_attempts', models.PositiveIntegerField(default=0)),
                ('finalization_error', models.TextField(blank=True)),
                ('next_finalization_at', models.DateTimeField(blank=True, null=True)),
                ('finalized_at', models.DateTimeField(blank=True, null=True)),
                ('cancellation_reason', models.TextField(blank=True)),
                ('created_at', models.DateTimeField(default=django.utils.timezone.now)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('completed_at', models.DateTimeField(blank=True, null=True)),
                ('declined_at', models.DateTimeField(blank=True, null=True)),
                ('cancelled_at', models.DateTimeField(blank=True, null=True)),
            ],
            options={
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['status', 'created_at'], name='group_status_created_idx'),
                    models.Index(fields=['finalization_state', 'next_finalization_at'], name='group_finalization_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='GroupDocument',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('order', models.PositiveIntegerField()),
                ('document', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='group_memberships', to='documents.documentreference')),
                ('group', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='group_documents', to='signing.requestgroup')),
            ],
            options={
                'ordering': ['order'],
            },
        ),
        migrations.AddField(
            model_name='requestgroup',
            name='documents',
            field=models.ManyToManyField(related_name='request_groups', through='signing.GroupDocument', to='documents.documentreference'),
        ),
        migrations.AddConstraint(
            model_name='groupdocument',
            constraint=models.UniqueConstraint(fields=('group', 'order'), name='unique_group_document_order'),
        ),
        migrations.AddConstraint(
            model_name='groupdocument',
            constraint=models.UniqueConstraint(fields=('group', 'document'), name='unique_group_document'),
        ),
        migrations.CreateModel(
            name='RecipientLedgerEntry',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('recipient_index', models.PositiveIntegerField()),
                ('name', models.CharField(max_length=255)),
                ('email', models.EmailField(max_length=254)),
                ('role', models.CharField(blank=True, default='signer', max_length=100)),
                ('status', models.CharField(choices=ENTRY_STATUSES, db_index=True, max_length=20)),
                ('created_at', models.DateTimeField(default=django.utils.timezone.now)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('viewed_at', models.DateTimeField(blank=True, null=True)),
                ('signed_at', models.DateTimeField(blank=True, null=True)),
                ('declined_at', models.DateTimeField(blank=True, null=True)),
                ('cancelled_at', models.DateTimeField(blank=True, null=True)),
                ('delegated_at', models.DateTimeField(blank=True, null=True)),
                ('expired_at', models.DateTimeField(blank=True, null=True)),
                ('decline_reason', models.TextField(blank=True)),
                ('cancellation_reason', models.TextField(blank=True)),
                ('signed_payload', models.JSONField(blank=True, help_text='Field values keyed by field id; present only once signed', null=True)),
                ('document_payloads', models.JSONField(blank=True, default=dict, help_text='Envelope progress: values per signed document id')),
                ('signed_documents', models.JSONField(blank=True, default=list, help_text='Ids of envelope documents this recipient has signed or that need no action')),
                ('access_code_hash', models.CharField(blank=True, max_length=64)),
                ('failed_access_attempts', models.PositiveIntegerField(default=0)),
                ('access_locked_until', models.DateTimeField(blank=True, null=True)),
                ('requires_secondary_verification', models.BooleanField(default=False)),
                ('due_date', models.DateTimeField(blank=True, null=True)),
                ('delegation', models.JSONField(blank=True, help_text='{name, email, note, delegated_by} while delegated', null=True)),
                ('reassignment', models.JSONField(blank=True, help_text='{original_identity, allow_original_view, reason, reassigned_at}', null=True)),
                ('reminder_count', models.PositiveIntegerField(default=0)),
                ('last_reminder_sent_at', models.DateTimeField(blank=True, null=True)),
                ('revision', models.PositiveIntegerField(default=0)),
                ('group', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='entries', to='signing.requestgroup')),
            ],
            options={
                'ordering': ['group', 'recipient_index'],
            },
        ),
        migrations.AddConstraint(
            model_name='recipientledgerentry',
            constraint=models.UniqueConstraint(fields=('group', 'recipient_index'), name='unique_entry_per_recipient_index'),
        ),
        migrations.CreateModel(
            name='FieldPlacement',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('recipient_index', models.PositiveIntegerField()),
                ('field_type', models.CharField(choices=[('signature', 'Signature'), ('initials', 'Initials'), ('text', 'Text'), ('date', 'Date'), ('checkbox', 'Checkbox')], max_length=20)),
                ('label', models.CharField(blank=True, max_length=255)),
                ('page_number', models.PositiveIntegerField(validators=[django.core.validators.MinValueValidator(1)])),
                ('x_pct', models.FloatField(validators=PCT_VALIDATORS)),
                ('y_pct', models.FloatField(validators=PCT_VALIDATORS)),
                ('width_pct', models.FloatField(validators=PCT_VALIDATORS)),
                ('height_pct', models.FloatField(validators=PCT_VALIDATORS)),
                ('required', models.BooleanField(default=True)),
                ('document', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='placements', to='documents.documentreference')),
                ('group', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='fields', to='signing.requestgroup')),
            ],
            options={
                'ordering': ['document', 'page_number', 'y_pct', 'x_pct'],
            },
        ),
        migrations.CreateModel(
            name='RecipientLink',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('token', models.CharField(db_index=True, max_length=64, unique=True)),
                ('name', models.CharField(max_length=255)),
                ('email', models.EmailField(max_length=254)),
                ('access', models.CharField(choices=[('signer', 'Signer'), ('view_only', 'View only'), ('revoked', 'Revoked')], default='signer', max_length=20)),
                ('superseded_reason', models.CharField(blank=True, choices=[('delegated', 'Delegated'), ('reassigned', 'Reassigned')], default='', max_length=20)),
                ('superseded_at', models.DateTimeField(blank=True, null=True)),
                ('access_verified_at', models.DateTimeField(blank=True, null=True)),
                ('verification_code_hash', models.CharField(blank=True, max_length=64)),
                ('verification_code_expires_at', models.DateTimeField(blank=True, null=True)),
                ('secondary_verified_at', models.DateTimeField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('entry', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='links', to='signing.recipientledgerentry')),
            ],
            options={
                'ordering': ['-created_at'],
            },
        ),
        migrations.CreateModel(
            name='LedgerEvent',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('action', models.CharField(choices=ACTIONS, max_length=20)),
                ('source', models.CharField(choices=[('recipient', 'Recipient'), ('owner', 'Owner'), ('scheduler', 'Scheduler'), ('system', 'System')], default='recipient', max_length=20)),
                ('from_status', models.CharField(blank=True, max_length=20)),
                ('to_status', models.CharField(blank=True, max_length=20)),
                ('actor_name', models.CharField(blank=True, max_length=255)),
                ('actor_email', models.EmailField(blank=True, max_length=254)),
                ('ip_address', models.GenericIPAddressField(blank=True, null=True)),
                ('user_agent', models.TextField(blank=True)),
                ('metadata', models.JSONField(blank=True, default=dict)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('event_hash', models.CharField(blank=True, help_text='SHA256 hash of this event for tamper detection', max_length=64, null=True)),
                ('entry', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.CASCADE, related_name='events', to='signing.recipientledgerentry')),
                ('group', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='events', to='signing.requestgroup')),
            ],
            options={
                'ordering': ['created_at', 'id'],
            },
        ),
        migrations.CreateModel(
            name='ReminderDispatch',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('threshold', models.CharField(max_length=50)),
                ('delivered', models.BooleanField(default=False)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('entry', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='reminder_dispatches', to='signing.recipientledgerentry')),
            ],
            options={
                'ordering': ['-created_at'],
            },
        ),
        migrations.AddConstraint(
            model_name='reminderdispatch',
            constraint=models.UniqueConstraint(fields=('entry', 'threshold'), name='unique_reminder_per_threshold'),
        ),
    ]
