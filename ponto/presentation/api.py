# ponto/presentation/api.py
from dataclasses import replace
from typing import Any, Dict, List

from django.apps import apps
from rest_framework.views import APIView
from rest_framework.response import Response
from rest_framework import status
from rest_framework.parsers import FormParser, MultiPartParser
from drf_yasg.utils import swagger_auto_schema
from drf_yasg import openapi

from ponto.infrastructure.config import get_liveness_config
from ponto.infrastructure.imaging import b64_to_bgr, decode_frame_rgba
from ponto.infrastructure.video.sources import FrameSequenceSource
from .schemas import (
    LivenessRequestSerializer,
    LivenessResponseSerializer,
    RecognizeRequestSerializer,
    RecognitionOutcomeSerializer,
    RegisterRequestSerializer,
    RegistrationOutcomeSerializer,
    AuditRecordSerializer,
    AuditListResponseSerializer,
    AuditStatusUpdateSerializer,
)


def _ponto():
    return apps.get_app_config("ponto")

def _truthy(value) -> bool:
    return (value or "false").lower() in ("1", "true", "yes")

def _paginate(items: List[Dict[str, Any]], offset: int, limit: int) -> Dict[str, Any]:
    total = len(items)
    sliced = items[offset: offset + limit]
    return {
        "items": sliced,
        "page": {
            "offset": offset,
            "limit": limit,
            "returned": len(sliced),
            "total": total,
            "has_more": (offset + limit) < total
        }
    }


# ---------- Prueba de vida ----------
class LivenessAPIView(APIView):
    """
    POST /api/facial/liveness  (multipart)
      frames=<img1> frames=<img2> ... [sensitivity] [movementThreshold] [livenessRequired]
    """
    parser_classes = [MultiPartParser, FormParser]

    @swagger_auto_schema(
        operation_summary="Prueba de vida por movimiento entre frames",
        operation_description=(
            "Recibe los frames ya capturados (en orden) y calcula el puntaje de movimiento.\n"
            "`passed` si score >= 0.2."
        ),
        manual_parameters=[
            openapi.Parameter("frames", openapi.IN_FORM, type=openapi.TYPE_FILE, required=True,
                              description="Frame (repetir el campo por cada frame)."),
            openapi.Parameter("sensitivity", openapi.IN_FORM, type=openapi.TYPE_STRING, enum=["low", "medium", "high"]),
            openapi.Parameter("movementThreshold", openapi.IN_FORM, type=openapi.TYPE_NUMBER),
            openapi.Parameter("livenessRequired", openapi.IN_FORM, type=openapi.TYPE_BOOLEAN),
        ],
        responses={200: LivenessResponseSerializer, 400: "Bad Request"},
        tags=["Ponto facial"]
    )
    def post(self, request):
        ser = LivenessRequestSerializer(data=request.data)
        if not ser.is_valid():
            return Response(ser.errors, status=status.HTTP_400_BAD_REQUEST)
        body = ser.validated_data

        config = get_liveness_config()
        config = replace(
            config,
            sensitivity=body.get("sensitivity", config.sensitivity),
            movement_threshold=body.get("movementThreshold", config.movement_threshold),
            liveness_required=body["livenessRequired"],
        )

        uploads = request.FILES.getlist("frames")
        if config.liveness_required and len(uploads) < 2:
            return Response({"detail": "Se requieren al menos 2 frames"}, status=status.HTTP_400_BAD_REQUEST)

        frames = [decode_frame_rgba(f.read()) for f in uploads]
        config = replace(config, num_frames=len(frames))
        result = _ponto().liveness_estimator.evaluate(FrameSequenceSource(frames), config)
        return Response(result.to_dict(), status=200)


# ---------- Reconocimiento ----------
class RecognizeAPIView(APIView):
    """
    POST /api/facial/recognize
    { "imageBase64": "...", "location": {"lat": .., "lng": ..} }
    Fallos de negocio -> 200 con success=false.
    """
    @swagger_auto_schema(
        operation_summary="Reconocimiento facial auditado",
        request_body=RecognizeRequestSerializer,
        responses={200: RecognitionOutcomeSerializer, 400: "Bad Request"},
        tags=["Ponto facial"]
    )
    def post(self, request):
        ser = RecognizeRequestSerializer(data=request.data)
        if not ser.is_valid():
            return Response(ser.errors, status=status.HTTP_400_BAD_REQUEST)
        try:
            image = b64_to_bgr(ser.validated_data["imageBase64"])
        except ValueError as e:
            return Response({"imageBase64": [str(e)]}, status=status.HTTP_400_BAD_REQUEST)

        outcome = _ponto().recognition_service.recognize(image, ser.validated_data.get("location"))
        return Response(outcome.to_dict(), status=200)


class RegisterFaceAPIView(APIView):
    """
    POST /api/facial/register
    { "userId": "...", "imageBase64": "..." }
    """
    @swagger_auto_schema(
        operation_summary="Cadastro facial (descriptor en el perfil)",
        request_body=RegisterRequestSerializer,
        responses={200: RegistrationOutcomeSerializer, 400: "Bad Request"},
        tags=["Ponto facial"]
    )
    def post(self, request):
        ser = RegisterRequestSerializer(data=request.data)
        if not ser.is_valid():
            return Response(ser.errors, status=status.HTTP_400_BAD_REQUEST)
        try:
            image = b64_to_bgr(ser.validated_data["imageBase64"])
        except ValueError as e:
            return Response({"imageBase64": [str(e)]}, status=status.HTTP_400_BAD_REQUEST)

        outcome = _ponto().recognition_service.register(image, ser.validated_data["userId"])
        return Response(outcome.to_dict(), status=200)


# ---------- Auditoría ----------
status_param = openapi.Parameter(
    "status", openapi.IN_QUERY, type=openapi.TYPE_STRING, enum=["approved", "rejected", "pending"]
)
profile_param = openapi.Parameter("profileId", openapi.IN_QUERY, type=openapi.TYPE_STRING)
since_param = openapi.Parameter("since", openapi.IN_QUERY, type=openapi.TYPE_STRING, description="ISO-8601")
until_param = openapi.Parameter("until", openapi.IN_QUERY, type=openapi.TYPE_STRING, description="ISO-8601")
search_param = openapi.Parameter("search", openapi.IN_QUERY, type=openapi.TYPE_STRING,
                                 description="Busca en profile_id / nombre / email.")
signed_param = openapi.Parameter("signed", openapi.IN_QUERY, type=openapi.TYPE_BOOLEAN,
                                 description="Si true, incluye image_url firmada por ítem.")
offset_param = openapi.Parameter(
    "offset", openapi.IN_QUERY, description="Desplazamiento de paginación.", type=openapi.TYPE_INTEGER, default=0
)
limit_param = openapi.Parameter(
    "limit", openapi.IN_QUERY, description="Tamaño de página.", type=openapi.TYPE_INTEGER, default=50
)

class AuditListAPIView(APIView):
    """
    GET /api/facial/audit?status=&profileId=&since=&until=&search=&signed=0&offset=0&limit=50
    Orden: más nuevo primero.
    """
    @swagger_auto_schema(
        operation_summary="Listar intentos de reconocimiento (auditoría)",
        manual_parameters=[status_param, profile_param, since_param, until_param, search_param,
                           signed_param, offset_param, limit_param],
        responses={200: AuditListResponseSerializer, 400: "Bad Request"},
        tags=["Auditoría facial"]
    )
    def get(self, request):
        qp = request.query_params
        try:
            offset = max(0, int(qp.get("offset") or 0))
            limit = max(1, int(qp.get("limit") or 50))
        except ValueError:
            return Response({"detail": "offset/limit inválidos"}, status=status.HTTP_400_BAD_REQUEST)

        audit = _ponto().audit_service
        try:
            records = audit.list_records(
                status=qp.get("status") or None,
                profile_id=qp.get("profileId") or None,
                since=qp.get("since") or None,
                until=qp.get("until") or None,
                search=qp.get("search") or None,
            )
        except ValueError:
            return Response({"detail": "since/until inválidos"}, status=status.HTTP_400_BAD_REQUEST)

        page = _paginate([r.to_dict() for r in records], offset, limit)
        if _truthy(qp.get("signed")):
            for item in page["items"]:
                item["image_url"] = audit.sign_url(item["attempt_image_key"])

        return Response({"summary": audit.summary(), **page}, status=200)


class AuditDetailAPIView(APIView):
    """
    GET   /api/facial/audit/<id>  -> registro + image_url firmada
    PATCH /api/facial/audit/<id>  {"status": "approved"|"rejected"}
    """
    @swagger_auto_schema(
        operation_summary="Consultar registro de auditoría",
        responses={200: AuditRecordSerializer, 404: "No existe el registro solicitado."},
        tags=["Auditoría facial"]
    )
    def get(self, request, record_id: str):
        audit = _ponto().audit_service
        record = audit.get_record(record_id)
        if record is None:
            return Response({"detail": "No existe el registro solicitado."}, status=status.HTTP_404_NOT_FOUND)
        payload = record.to_dict()
        payload["image_url"] = audit.sign_url(record.attempt_image_key)
        return Response(payload, status=200)

    @swagger_auto_schema(
        operation_summary="Aprobar / rechazar un intento",
        request_body=AuditStatusUpdateSerializer,
        responses={200: AuditRecordSerializer, 400: "Bad Request", 404: "No existe el registro solicitado."},
        tags=["Auditoría facial"]
    )
    def patch(self, request, record_id: str):
        ser = AuditStatusUpdateSerializer(data=request.data)
        if not ser.is_valid():
            return Response(ser.errors, status=status.HTTP_400_BAD_REQUEST)

        record = _ponto().audit_service.update_status(record_id, ser.validated_data["status"])
        if record is None:
            return Response({"detail": "No existe el registro solicitado."}, status=status.HTTP_404_NOT_FOUND)
        return Response(record.to_dict(), status=200)
