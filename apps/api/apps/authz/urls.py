"""
Authz URLs - Registration, profile, directories and User Administration
"""
from django.urls import path, include
from rest_framework.routers import DefaultRouter

from .views import DoctorListView, MeView, PatientSearchView, RegisterView
from .views_users import UserAdminViewSet

router = DefaultRouter()
router.register(r'users', UserAdminViewSet, basename='user-admin')

urlpatterns = [
    path('auth/register/', RegisterView.as_view(), name='register'),
    path('auth/me/', MeView.as_view(), name='me'),
    path('doctors/', DoctorListView.as_view(), name='doctor-list'),
    path('patients/search/', PatientSearchView.as_view(), name='patient-search'),
    path('', include(router.urls)),
]
