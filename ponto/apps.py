# ponto/apps.py
import logging
import threading

from django.apps import AppConfig
from django.conf import settings

logger = logging.getLogger("ponto.config")


class PontoConfig(AppConfig):
    """
    Construye las capacidades una sola vez al arrancar y las comparte por
    referencia con las vistas (self.recognition_service, self.audit_service...).
    """
    name = "ponto"
    verbose_name = "Ponto facial"

    capabilities = None
    recognition_service = None
    audit_service = None
    liveness_estimator = None

    def ready(self):
        from .infrastructure.config import (
            build_capabilities, build_recognition_service, build_liveness_estimator,
        )

        self.capabilities = build_capabilities()
        self.recognition_service = build_recognition_service(self.capabilities)
        self.audit_service = self.capabilities.audit
        self.liveness_estimator = build_liveness_estimator(wait=False)

        if getattr(settings, "PONTO_AUTOLOAD_MODELS", True):
            threading.Thread(target=self._load_models, name="face-models", daemon=True).start()

    def _load_models(self):
        try:
            self.capabilities.extractor.load()
        except Exception as e:
            # recognize/register responden "models not loaded" mientras tanto
            logger.exception({"event": "face_models_load_failed", "error": str(e)})
