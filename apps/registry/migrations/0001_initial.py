import uuid

import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('organizations', '0001_initial'),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='Unit',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('number', models.CharField(max_length=50)),
                ('floor', models.IntegerField(blank=True, null=True)),
                ('area', models.DecimalField(blank=True, decimal_places=2, help_text='Total area, m²', max_digits=10, null=True)),
                ('is_active', models.BooleanField(default=True)),
                ('deleted_at', models.DateTimeField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('condo', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='units', to='organizations.condo')),
            ],
            options={
                'ordering': ['number'],
                'constraints': [
                    models.UniqueConstraint(
                        condition=models.Q(('deleted_at__isnull', True)),
                        fields=('condo', 'number'),
                        name='units_condo_number_unique',
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name='Resident',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('is_owner', models.BooleanField(default=False)),
                ('is_active', models.BooleanField(default=True)),
                ('moved_in_at', models.DateTimeField(blank=True, null=True)),
                ('moved_out_at', models.DateTimeField(blank=True, null=True)),
                ('deleted_at', models.DateTimeField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('unit', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='residents', to='registry.unit')),
                ('user', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='residencies', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'ordering': ['-is_owner', 'created_at'],
                'indexes': [
                    models.Index(fields=['user', 'is_active'], name='residents_user_active_idx'),
                ],
                'constraints': [
                    models.UniqueConstraint(
                        condition=models.Q(('deleted_at__isnull', True), ('is_active', True)),
                        fields=('user', 'unit'),
                        name='residents_user_unit_active_unique',
                    ),
                    models.UniqueConstraint(
                        condition=models.Q(('deleted_at__isnull', True), ('is_active', True), ('is_owner', True)),
                        fields=('unit',),
                        name='residents_unit_active_owner_unique',
                    ),
                ],
            },
        ),
    ]
