from decimal import Decimal

from django.core.exceptions import ValidationError
from django.test import TestCase

from .models import Product, Service


class ServiceTest(TestCase):
    def test_active_manager(self):
        Service.objects.create(name='Cleaning', price='110.00')
        Service.objects.create(name='Retired procedure', price='10.00', is_active=False)
        self.assertEqual([s.name for s in Service.active.all()], ['Cleaning'])
        self.assertEqual(Service.objects.count(), 2)

    def test_duration_display(self):
        self.assertEqual(Service(name='a', price=1, duration_minutes=90).duration_display, '1h 30m')
        self.assertEqual(Service(name='b', price=1, duration_minutes=120).duration_display, '2h')
        self.assertEqual(Service(name='c', price=1, duration_minutes=15).duration_display, '15m')

    def test_zero_duration_is_invalid(self):
        with self.assertRaises(ValidationError):
            Service(name='Broken', price=1, duration_minutes=0).full_clean()


class ProductTest(TestCase):
    def test_price_is_stored_in_cents(self):
        product = Product.objects.create(name='Night guard', sku='NG-1', unit_price=Decimal('45.5'))
        self.assertEqual(Product.objects.get(pk=product.pk).unit_price, Decimal('45.50'))
        self.assertEqual(str(product), 'Night guard')
