# services/admin.py
from django.contrib import admin
from .models import Product, Service


@admin.register(Service)
class ServiceAdmin(admin.ModelAdmin):
    list_display = ['name', 'code', 'price', 'duration_display', 'is_active']
    list_filter = ['is_active']
    search_fields = ['name', 'code']


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    list_display = ['name', 'sku', 'unit_price', 'stock_quantity', 'is_active']
    list_filter = ['is_active']
    search_fields = ['name', 'sku']
