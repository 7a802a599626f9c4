#core/urls.py
from django.urls import path
from . import health_check

app_name = 'core'

urlpatterns = [
    path('health/', health_check.health_check, name='health_check'),
]
