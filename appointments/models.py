# appointments/models.py
import logging

from django.core.validators import MinValueValidator
from django.db import models, transaction
from django.utils import timezone

from core.exceptions import InvalidTransitionError
from core.models import AuditLog
from core.utils import add_minutes, format_date_time

logger = logging.getLogger(__name__)


class AppointmentQuerySet(models.QuerySet):
    def blocking(self):
        return self.exclude(status__in=Appointment.NON_BLOCKING_STATUSES)

    def for_dentist(self, dentist_id):
        if dentist_id:
            return self.filter(dentist_id=dentist_id)
        return self


class Appointment(models.Model):
    """
    Practitioner appointment with a fixed [start, start + duration) slot.
    Appointments are never deleted; they move through the status lifecycle.
    """
    STATUS_SCHEDULED = 'scheduled'
    STATUS_CONFIRMED = 'confirmed'
    STATUS_IN_PROGRESS = 'in_progress'
    STATUS_COMPLETED = 'completed'
    STATUS_CANCELLED = 'cancelled'
    STATUS_NO_SHOW = 'no_show'

    STATUS_CHOICES = [
        (STATUS_SCHEDULED, 'Scheduled'),
        (STATUS_CONFIRMED, 'Confirmed'),
        (STATUS_IN_PROGRESS, 'In Progress'),
        (STATUS_COMPLETED, 'Completed'),
        (STATUS_CANCELLED, 'Cancelled'),
        (STATUS_NO_SHOW, 'No Show'),
    ]

    TYPE_CHOICES = [
        ('consultation', 'Consultation'),
        ('cleaning', 'Cleaning'),
        ('treatment', 'Treatment'),
        ('follow_up', 'Follow-up'),
        ('emergency', 'Emergency'),
    ]

    # Cancelled and no-show appointments free their slot
    NON_BLOCKING_STATUSES = [STATUS_CANCELLED, STATUS_NO_SHOW]
    ACTIVE_STATUSES = [STATUS_SCHEDULED, STATUS_CONFIRMED, STATUS_IN_PROGRESS]
    TERMINAL_STATUSES = [STATUS_COMPLETED, STATUS_CANCELLED, STATUS_NO_SHOW]

    appointment_number = models.CharField(max_length=20, unique=True)

    patient = models.ForeignKey('patients.Patient', on_delete=models.PROTECT, related_name='appointments')
    dentist = models.ForeignKey('users.User', on_delete=models.PROTECT, related_name='appointments',
                                help_text="Practitioner the appointment is booked with")
    service = models.ForeignKey('services.Service', on_delete=models.SET_NULL, null=True, blank=True,
                                related_name='appointments')

    # Date and time
    appointment_date = models.DateField(help_text="Date of appointment")
    start_time = models.TimeField(help_text="Start time of appointment (e.g., 10:00)")
    duration_minutes = models.PositiveIntegerField(default=60, validators=[MinValueValidator(1)])

    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_SCHEDULED)
    appointment_type = models.CharField(max_length=20, choices=TYPE_CHOICES, default='consultation')

    # Clinical notes
    chief_complaint = models.TextField(blank=True)
    treatment_notes = models.TextField(blank=True)
    next_appointment_recommended = models.BooleanField(default=False)
    next_appointment_notes = models.TextField(blank=True)
    notes = models.TextField(blank=True)

    # Lifecycle tracking
    confirmed_at = models.DateTimeField(null=True, blank=True)
    started_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)

    # Audit
    created_by = models.ForeignKey('users.User', on_delete=models.SET_NULL, null=True, blank=True,
                                   related_name='created_appointments')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = AppointmentQuerySet.as_manager()

    class Meta:
        ordering = ['appointment_date', 'start_time']
        indexes = [
            models.Index(fields=['status'], name='appt_status_idx'),
            models.Index(fields=['patient'], name='appt_patient_idx'),
            models.Index(fields=['dentist', 'appointment_date'], name='appt_dentist_date_idx'),
            models.Index(fields=['appointment_date', 'start_time'], name='appt_date_time_idx'),
        ]

    def __str__(self):
        return (f"{self.appointment_number} - {self.appointment_date} "
                f"{self.start_time.strftime('%H:%M')}-{self.end_time.strftime('%H:%M')}")

    @property
    def end_time(self):
        """Start time plus duration"""
        return add_minutes(self.start_time, self.duration_minutes)

    @property
    def time_display(self):
        return f"{self.start_time.strftime('%H:%M')} - {self.end_time.strftime('%H:%M')}"

    @property
    def blocks_time_slot(self):
        """Whether this appointment blocks its time slot"""
        return self.status not in self.NON_BLOCKING_STATUSES

    @property
    def is_terminal(self):
        return self.status in self.TERMINAL_STATUSES

    def _append_text(self, field, text):
        current = getattr(self, field)
        setattr(self, field, f"{current}\n\n{text}" if current else text)

    def _lock(self):
        """Re-read this row under select_for_update(); caller holds the transaction"""
        Appointment.objects.select_for_update().filter(pk=self.pk).values_list('pk', flat=True).first()
        self.refresh_from_db()

    def _reject(self, action):
        raise InvalidTransitionError(
            f"Cannot {action} an appointment that is {self.get_status_display().lower()}",
            details={'appointment_number': self.appointment_number, 'status': self.status},
        )

    def _record(self, performed_by, action, old_status, description):
        logger.info(f"Appointment {self.appointment_number}: {description}")
        AuditLog.log_action(
            user=performed_by,
            action=action,
            model_instance=self,
            changes=AuditLog.status_change(old_status, self.status) if old_status != self.status else None,
            description=description,
        )

    def confirm(self, performed_by=None):
        """scheduled -> confirmed"""
        with transaction.atomic():
            self._lock()
            if self.status != self.STATUS_SCHEDULED:
                self._reject('confirm')

            old_status = self.status
            self.status = self.STATUS_CONFIRMED
            self.confirmed_at = timezone.now()
            self.save(update_fields=['status', 'confirmed_at', 'updated_at'])
            self._record(performed_by, 'status_change', old_status, 'Appointment confirmed')
        return self

    def start(self, performed_by=None):
        """scheduled/confirmed -> in_progress"""
        with transaction.atomic():
            self._lock()
            if self.status not in (self.STATUS_SCHEDULED, self.STATUS_CONFIRMED):
                self._reject('start')

            old_status = self.status
            self.status = self.STATUS_IN_PROGRESS
            self.started_at = timezone.now()
            self.save(update_fields=['status', 'started_at', 'updated_at'])
            self._record(performed_by, 'status_change', old_status, 'Appointment started')
        return self

    def cancel(self, reason=None, performed_by=None):
        """Cancel a non-terminal appointment, freeing its slot"""
        with transaction.atomic():
            self._lock()
            if self.is_terminal:
                self._reject('cancel')

            old_status = self.status
            self.status = self.STATUS_CANCELLED
            self.cancelled_at = timezone.now()
            if reason:
                self._append_text('treatment_notes', f"Cancellation reason: {reason}")
            self.save(update_fields=['status', 'cancelled_at', 'treatment_notes', 'updated_at'])
            self._record(performed_by, 'cancel', old_status,
                         f"Appointment cancelled{': ' + reason if reason else ''}")
        return self

    def reschedule(self, new_date, new_time, new_dentist_id=None, reason=None, performed_by=None):
        """
        Move a non-terminal appointment to another date/time (and optionally dentist).

        The conflict check ignores this appointment's own slot. On conflict
        SchedulingConflictError is raised and nothing changes.
        """
        from .scheduling import ensure_slot_available, lock_practitioner, validate_slot

        with transaction.atomic():
            self._lock()
            if self.status not in self.ACTIVE_STATUSES:
                self._reject('reschedule')

            validate_slot(new_time, self.duration_minutes)
            dentist = lock_practitioner(new_dentist_id or self.dentist_id,
                                        require_practice=new_dentist_id is not None)
            ensure_slot_available(dentist.pk, new_date, new_time, self.duration_minutes,
                                  exclude_appointment_id=self.pk)

            old_when = format_date_time(self.appointment_date, self.start_time)
            new_when = format_date_time(new_date, new_time)
            changes = {
                'appointment_date': {'old': self.appointment_date.isoformat(), 'new': new_date.isoformat()},
                'start_time': {'old': self.start_time.strftime('%H:%M'), 'new': new_time.strftime('%H:%M')},
            }
            if dentist.pk != self.dentist_id:
                changes['dentist'] = {'old': self.dentist_id, 'new': dentist.pk}

            self.appointment_date = new_date
            self.start_time = new_time
            self.dentist = dentist

            note = f"Rescheduled from {old_when} to {new_when}"
            if reason:
                note = f"{note}. Reason: {reason}"
            self._append_text('treatment_notes', note)
            self.save(update_fields=['appointment_date', 'start_time', 'dentist', 'treatment_notes', 'updated_at'])

            logger.info(f"Appointment {self.appointment_number}: {note}")
            AuditLog.log_action(user=performed_by, action='reschedule', model_instance=self,
                                changes=changes, description=note)
        return self

    def complete(self, treatment_notes=None, performed_by=None):
        """
        Mark as completed from any other status.

        Reviving a cancelled or no-show appointment re-occupies its slot,
        so the slot must still be free.
        """
        from .scheduling import ensure_slot_available, lock_practitioner

        with transaction.atomic():
            self._lock()
            if self.status == self.STATUS_COMPLETED:
                self._reject('complete')

            if not self.blocks_time_slot:
                lock_practitioner(self.dentist_id, require_practice=False)
                ensure_slot_available(self.dentist_id, self.appointment_date, self.start_time,
                                      self.duration_minutes, exclude_appointment_id=self.pk)

            old_status = self.status
            self.status = self.STATUS_COMPLETED
            self.completed_at = timezone.now()
            if treatment_notes:
                self.treatment_notes = treatment_notes
            self.save(update_fields=['status', 'completed_at', 'treatment_notes', 'updated_at'])
            self._record(performed_by, 'status_change', old_status, 'Appointment completed')
        return self

    def mark_no_show(self, notes=None, performed_by=None):
        """Any status except cancelled/no_show -> no_show"""
        with transaction.atomic():
            self._lock()
            if self.status in self.NON_BLOCKING_STATUSES:
                self._reject('mark as no-show')

            old_status = self.status
            self.status = self.STATUS_NO_SHOW
            if notes:
                self._append_text('notes', f"No-show notes: {notes}")
            self.save(update_fields=['status', 'notes', 'updated_at'])
            self._record(performed_by, 'status_change', old_status, 'Appointment marked as no-show')
        return self

    def as_dict(self):
        return {
            'id': self.pk,
            'appointment_number': self.appointment_number,
            'patient_id': self.patient_id,
            'patient_name': self.patient.full_name,
            'dentist_id': self.dentist_id,
            'dentist_name': self.dentist.full_name,
            'service_id': self.service_id,
            'appointment_date': self.appointment_date.isoformat(),
            'start_time': self.start_time.strftime('%H:%M'),
            'end_time': self.end_time.strftime('%H:%M'),
            'duration_minutes': self.duration_minutes,
            'status': self.status,
            'status_display': self.get_status_display(),
            'appointment_type': self.appointment_type,
            'chief_complaint': self.chief_complaint,
            'treatment_notes': self.treatment_notes,
            'next_appointment_recommended': self.next_appointment_recommended,
            'next_appointment_notes': self.next_appointment_notes,
            'notes': self.notes,
            'confirmed_at': self.confirmed_at.isoformat() if self.confirmed_at else None,
            'started_at': self.started_at.isoformat() if self.started_at else None,
            'completed_at': self.completed_at.isoformat() if self.completed_at else None,
            'cancelled_at': self.cancelled_at.isoformat() if self.cancelled_at else None,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }
