# appointments/urls.py
from django.urls import path
from . import views

app_name = 'appointments'

urlpatterns = [
    path('', views.appointment_list, name='appointment_list'),
    path('create/', views.appointment_create, name='appointment_create'),
    path('availability/', views.check_availability, name='check_availability'),
    path('upcoming/', views.upcoming_appointments, name='upcoming_appointments'),
    path('number/<str:number>/', views.appointment_by_number, name='appointment_by_number'),
    path('<int:pk>/', views.appointment_detail, name='appointment_detail'),

    # Lifecycle transitions
    path('<int:pk>/confirm/', views.appointment_confirm, name='appointment_confirm'),
    path('<int:pk>/start/', views.appointment_start, name='appointment_start'),
    path('<int:pk>/cancel/', views.appointment_cancel, name='appointment_cancel'),
    path('<int:pk>/reschedule/', views.appointment_reschedule, name='appointment_reschedule'),
    path('<int:pk>/complete/', views.appointment_complete, name='appointment_complete'),
    path('<int:pk>/no-show/', views.appointment_no_show, name='appointment_no_show'),
]
