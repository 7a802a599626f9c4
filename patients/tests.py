from datetime import date
from unittest.mock import patch

from django.test import TestCase

from .models import Patient, TreatmentPlan


class PatientNumberingTest(TestCase):
    @patch('core.sequences.get_local_today', return_value=date(2025, 3, 5))
    def test_patients_and_plans_are_numbered(self, _today):
        first = Patient.objects.create(first_name='Maria', last_name='Garcia')
        second = Patient.objects.create(first_name='Tom', last_name='Baker')
        plan = TreatmentPlan.objects.create(patient=first, title='Full mouth restoration')

        self.assertEqual(first.patient_number, 'P2025030001')
        self.assertEqual(second.patient_number, 'P2025030002')
        self.assertEqual(plan.plan_number, 'TP2025030001')

    def test_existing_number_is_kept(self):
        patient = Patient.objects.create(patient_number='LEGACY-1', first_name='Ann', last_name='Ray')
        patient.phone = '555-0101'
        patient.save()
        self.assertEqual(Patient.objects.get(pk=patient.pk).patient_number, 'LEGACY-1')
        self.assertEqual(patient.full_name, 'Ann Ray')
