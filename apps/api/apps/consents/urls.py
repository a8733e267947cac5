"""
Record entry consent URLs
"""
from django.urls import path

from .views import ConsentInitiateView, ConsentResendView, ConsentVerifyView

urlpatterns = [
    path('initiate/', ConsentInitiateView.as_view(), name='consent-initiate'),
    path('verify/', ConsentVerifyView.as_view(), name='consent-verify'),
    path('<uuid:pk>/resend/', ConsentResendView.as_view(), name='consent-resend'),
]
