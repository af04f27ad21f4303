# ponto/presentation/schemas.py
from rest_framework import serializers

from ponto.domain.value_objects import SENSITIVITIES

# ---------- Prueba de vida (POST, multipart) ----------
# frames: request.FILES.getlist("frames"), en orden de captura (jpg/png)
class LivenessRequestSerializer(serializers.Serializer):
    sensitivity = serializers.ChoiceField(choices=SENSITIVITIES, required=False)
    movementThreshold = serializers.FloatField(min_value=0.0, max_value=1.0, required=False)
    livenessRequired = serializers.BooleanField(required=False, default=True)

class LivenessResponseSerializer(serializers.Serializer):
    passed = serializers.BooleanField()
    score = serializers.FloatField()
    motion_scores = serializers.ListField(child=serializers.FloatField())
    valid_comparisons = serializers.IntegerField()

# ---------- Reconocimiento / registro (POST) ----------
class RecognizeRequestSerializer(serializers.Serializer):
    imageBase64 = serializers.CharField(help_text="Imagen (base64 o data URL).")
    location = serializers.DictField(required=False, help_text="Ubicación opcional (lat/lng/accuracy...).")

class RecognitionOutcomeSerializer(serializers.Serializer):
    success = serializers.BooleanField()
    user_id = serializers.CharField(allow_null=True)
    user_name = serializers.CharField(allow_null=True)
    confidence = serializers.FloatField(allow_null=True)
    error = serializers.CharField(allow_null=True)
    reason = serializers.CharField(allow_null=True)
    audit_id = serializers.CharField(allow_null=True)

class RegisterRequestSerializer(serializers.Serializer):
    userId = serializers.CharField()
    imageBase64 = serializers.CharField()

class RegistrationOutcomeSerializer(serializers.Serializer):
    success = serializers.BooleanField()
    error = serializers.CharField(allow_null=True)

# ---------- Auditoría ----------
class AuditRecordSerializer(serializers.Serializer):
    id = serializers.CharField()
    profile_id = serializers.CharField(allow_null=True)
    attempt_image_key = serializers.CharField(allow_null=True)
    recognition_result = serializers.DictField()
    confidence_score = serializers.FloatField(allow_null=True)
    status = serializers.CharField()
    liveness_passed = serializers.BooleanField()
    created_at = serializers.CharField()
    reviewed_at = serializers.CharField(allow_null=True)
    image_url = serializers.CharField(allow_null=True, required=False)

class PageMetaSerializer(serializers.Serializer):
    offset = serializers.IntegerField()
    limit = serializers.IntegerField()
    returned = serializers.IntegerField()
    total = serializers.IntegerField()
    has_more = serializers.BooleanField()

class AuditListResponseSerializer(serializers.Serializer):
    summary = serializers.DictField(child=serializers.IntegerField())
    items = AuditRecordSerializer(many=True)
    page = PageMetaSerializer()

class AuditStatusUpdateSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=("approved", "rejected"))
