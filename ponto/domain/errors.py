# ponto/domain/errors.py

class PontoError(Exception):
    """Base de los errores propios del dominio."""


class MatcherError(PontoError):
    """Fallo de transporte/RPC o del almacén de perfiles al buscar coincidencias."""


class ProfileStoreError(PontoError):
    """El almacén de perfiles falló al leer o escribir."""


class EvidenceEncodingError(PontoError):
    pass


# Códigos de motivo del outcome (también van al payload de auditoría).
REASON_MODELS_NOT_LOADED = "models_not_loaded"
REASON_NO_FACE = "no_face_detected"
REASON_NO_MATCH = "no_match"
REASON_RPC_ERROR = "rpc_error"
REASON_PROCESSING = "processing_error"

# Mensajes para el usuario.
MSG_MODELS_NOT_LOADED = "models not loaded"
MSG_NO_FACE = "no face detected"
MSG_NO_MATCH = "no user found"
MSG_RPC_ERROR = "recognition error"
MSG_PROCESSING = "processing error"
MSG_SAVE_FAILED = "failed to save face data"
