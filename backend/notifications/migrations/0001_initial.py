import django.db.models.deletion
from django.db import migrations, models

WEBHOOK_EVENTS = [
    ('recipient.signed', 'Recipient signed'),
    ('recipient.declined', 'Recipient declined'),
    ('group.completed', 'Group completed'),
    ('group.declined', 'Group declined'),
    ('group.cancelled', 'Group cancelled'),
]


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='NotificationLog',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('kind', models.CharField(choices=[
                    ('signature_requested', 'Signature requested'),
                    ('turn_activated', 'Your turn to sign'),
                    ('recipient_signed', 'Recipient signed'),
                    ('envelope_progress', 'Envelope progress'),
                    ('recipient_declined', 'Recipient declined'),
                    ('request_cancelled', 'Request cancelled'),
                    ('group_completed', 'All parties signed'),
                    ('group_cancelled', 'Request cancelled by sender'),
                    ('delegated_to_you', 'Signing delegated to you'),
                    ('delegation_confirmed', 'Delegation confirmed'),
                    ('recipient_delegated', 'Recipient delegated'),
                    ('reassigned_to_you', 'Signing reassigned to you'),
                    ('reassigned_away', 'Signing reassigned'),
                    ('reminder', 'Reminder'),
                    ('due_soon', 'Due soon'),
                    ('expiration_warning', 'Expiration warning'),
                    ('recipient_expired', 'Recipient expired'),
                    ('group_expired', 'Request expired'),
                    ('verification_code', 'Verification code'),
                ], max_length=40)),
                ('address', models.EmailField(max_length=254)),
                ('subject', models.CharField(blank=True, max_length=255)),
                ('delivered', models.BooleanField(default=False)),
                ('error_message', models.TextField(blank=True)),
                ('context', models.JSONField(blank=True, default=dict)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
            ],
            options={
                'ordering': ['-created_at'],
                'indexes': [models.Index(fields=['kind', 'created_at'], name='notif_kind_created_idx')],
            },
        ),
        migrations.CreateModel(
            name='Webhook',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('url', models.URLField(help_text='Endpoint that receives signed POST requests')),
                ('owner_id', models.CharField(blank=True, db_index=True, max_length=255)),
                ('description', models.CharField(blank=True, max_length=255)),
                ('subscribed_events', models.JSONField(default=list, help_text="Event types to deliver, e.g. ['group.completed']")),
                ('secret', models.CharField(help_text='HMAC-SHA256 key for the X-Signflow-Signature header', max_length=255)),
                ('is_active', models.BooleanField(default=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('last_delivery_at', models.DateTimeField(blank=True, null=True)),
                ('delivered_count', models.PositiveIntegerField(default=0)),
                ('failed_count', models.PositiveIntegerField(default=0)),
            ],
            options={
                'ordering': ['-created_at'],
                'indexes': [models.Index(fields=['is_active', 'owner_id'], name='webhook_active_owner_idx')],
            },
        ),
        migrations.CreateModel(
            name='WebhookEvent',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('event_type', models.CharField(choices=WEBHOOK_EVENTS, max_length=50)),
                ('group_id', models.UUIDField(blank=True, db_index=True, null=True)),
                ('payload', models.JSONField()),
                ('status', models.CharField(choices=[('pending', 'Pending'), ('delivered', 'Delivered'), ('retrying', 'Retrying'), ('failed', 'Failed')], default='pending', max_length=20)),
                ('attempt_count', models.PositiveIntegerField(default=0)),
                ('last_error', models.TextField(blank=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('delivered_at', models.DateTimeField(blank=True, null=True)),
                ('next_retry_at', models.DateTimeField(blank=True, null=True)),
                ('webhook', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='events', to='notifications.webhook')),
            ],
            options={
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['webhook', 'status'], name='whevent_webhook_status_idx'),
                    models.Index(fields=['event_type', 'created_at'], name='whevent_type_created_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='WebhookAttempt',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('number', models.PositiveIntegerField()),
                ('status_code', models.PositiveIntegerField(blank=True, null=True)),
                ('response_body', models.TextField(blank=True)),
                ('error_message', models.TextField(blank=True)),
                ('duration_ms', models.PositiveIntegerField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('event', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='attempts', to='notifications.webhookevent')),
            ],
            options={
                'ordering': ['event', 'number'],
            },
        ),
    ]
