from django.conf import settings
import django.core.validators
from django.db import migrations, models
import django.db.models.deletion


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
        ('patients', '0001_initial'),
        ('services', '0001_initial'),
    ]

    operations = [
        migrations.CreateModel(
            name='Appointment',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('appointment_number', models.CharField(max_length=20, unique=True)),
                ('appointment_date', models.DateField(help_text='Date of appointment')),
                ('start_time', models.TimeField(help_text='Start time of appointment (e.g., 10:00)')),
                ('duration_minutes', models.PositiveIntegerField(default=60, validators=[django.core.validators.MinValueValidator(1)])),
                ('status', models.CharField(choices=[('scheduled', 'Scheduled'), ('confirmed', 'Confirmed'), ('in_progress', 'In Progress'), ('completed', 'Completed'), ('cancelled', 'Cancelled'), ('no_show', 'No Show')], default='scheduled', max_length=20)),
                ('appointment_type', models.CharField(choices=[('consultation', 'Consultation'), ('cleaning', 'Cleaning'), ('treatment', 'Treatment'), ('follow_up', 'Follow-up'), ('emergency', 'Emergency')], default='consultation', max_length=20)),
                ('chief_complaint', models.TextField(blank=True)),
                ('treatment_notes', models.TextField(blank=True)),
                ('next_appointment_recommended', models.BooleanField(default=False)),
                ('next_appointment_notes', models.TextField(blank=True)),
                ('notes', models.TextField(blank=True)),
                ('confirmed_at', models.DateTimeField(blank=True, null=True)),
                ('started_at', models.DateTimeField(blank=True, null=True)),
                ('completed_at', models.DateTimeField(blank=True, null=True)),
                ('cancelled_at', models.DateTimeField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('created_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='created_appointments', to=settings.AUTH_USER_MODEL)),
                ('dentist', models.ForeignKey(help_text='Practitioner the appointment is booked with', on_delete=django.db.models.deletion.PROTECT, related_name='appointments', to=settings.AUTH_USER_MODEL)),
                ('patient', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='appointments', to='patients.patient')),
                ('service', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='appointments', to='services.service')),
            ],
            options={
                'ordering': ['appointment_date', 'start_time'],
                'indexes': [
                    models.Index(fields=['status'], name='appt_status_idx'),
                    models.Index(fields=['patient'], name='appt_patient_idx'),
                    models.Index(fields=['dentist', 'appointment_date'], name='appt_dentist_date_idx'),
                    models.Index(fields=['appointment_date', 'start_time'], name='appt_date_time_idx'),
                ],
            },
        ),
    ]
