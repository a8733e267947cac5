"""
Clinical URLs - Records, correction requests, dashboards, history
"""
from django.urls import path, include
from rest_framework.routers import DefaultRouter

from .views import (
    CorrectionRequestViewSet,
    DashboardView,
    MedicalRecordViewSet,
    PatientHistoryView,
)

router = DefaultRouter()
router.register(r'records', MedicalRecordViewSet, basename='record')
router.register(r'corrections', CorrectionRequestViewSet, basename='correction')

urlpatterns = [
    path('dashboard/', DashboardView.as_view(), name='clinical-dashboard'),
    path('history/', PatientHistoryView.as_view(), name='patient-history'),
    path('', include(router.urls)),
]
