from decimal import Decimal

from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='Client',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('full_name', models.CharField(max_length=200)),
                ('phone', models.CharField(max_length=20, unique=True)),
                ('phone_secondary', models.CharField(blank=True, max_length=20)),
                ('address', models.TextField(blank=True)),
                ('city', models.CharField(blank=True, max_length=100)),
                ('zone', models.CharField(blank=True, max_length=100)),
                ('notes', models.TextField(blank=True)),
                ('segment', models.CharField(choices=[('new', 'New'), ('regular', 'Regular'), ('vip', 'VIP'), ('inactive', 'Inactive'), ('problematic', 'Problematic')], default='new', max_length=20)),
                ('total_orders', models.PositiveIntegerField(default=0)),
                ('total_spent', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=14)),
                ('campaign_group', models.CharField(blank=True, db_index=True, max_length=50)),
                ('campaign_batch', models.PositiveIntegerField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'db_table': 'clients',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['segment'], name='clients_segment_idx'),
                    models.Index(fields=['zone'], name='clients_zone_idx'),
                ],
            },
        ),
    ]
