# ponto/urls.py
from django.urls import path
from ponto.presentation.api import (
    LivenessAPIView,
    RecognizeAPIView,
    RegisterFaceAPIView,
    AuditListAPIView,
    AuditDetailAPIView,
)

app_name = "ponto"

urlpatterns = [
    path('facial/liveness', LivenessAPIView.as_view(), name='liveness'),
    path('facial/recognize', RecognizeAPIView.as_view(), name='recognize'),
    path('facial/register', RegisterFaceAPIView.as_view(), name='register'),
    # Auditoría
    path('facial/audit', AuditListAPIView.as_view(), name='audit-list'),
    path('facial/audit/<str:record_id>', AuditDetailAPIView.as_view(), name='audit-detail'),
]
