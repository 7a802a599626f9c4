# smilesync/urls.py
from django.contrib import admin
from django.urls import path, include

urlpatterns = [
    path('admin/', admin.site.urls),
    path('', include('core.urls', namespace='core')),
    path('api/appointments/', include('appointments.urls', namespace='appointments')),
    path('api/billing/', include('billing.urls', namespace='billing')),
]
