"""Custom exceptions for the FERREMAS API."""


class FerremasError(Exception):
    """Base exception for all application errors."""
    def __init__(self, message="Ocurrió un error interno", status_code=500, payload=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload

    def to_dict(self):
        rv = dict(self.payload or ())
        rv['success'] = False
        rv['message'] = self.message
        return rv


class ValidationError(FerremasError):
    """Malformed or missing input. Carries field-level messages."""
    def __init__(self, message="Datos de entrada inválidos", errors=None):
        self.errors = list(errors or [])
        super().__init__(message, 400, {'errors': self.errors})


class UnauthorizedError(FerremasError):
    """Raised when the request carries no valid token."""
    def __init__(self, message="Token de acceso requerido"):
        super().__init__(message, 401)


class ForbiddenError(FerremasError):
    """Raised when a user lacks permission for an action."""
    def __init__(self, message="No tienes permisos para realizar esta acción"):
        super().__init__(message, 403)


class NotFoundError(FerremasError):
    """Exception raised when a resource is not found."""
    def __init__(self, message="Recurso no encontrado", payload=None):
        super().__init__(message, 404, payload)


class ConflictError(FerremasError):
    """Duplicate data or a lost concurrent update."""
    def __init__(self, message="Ya existe un registro con estos datos", payload=None):
        super().__init__(message, 409, payload)


class InvalidStateError(FerremasError):
    """Status value unknown (400) or transition not allowed (409)."""
    def __init__(self, message, status_code=409, payload=None):
        super().__init__(message, status_code, payload)


class UpstreamError(FerremasError):
    """The payment gateway or the database is unreachable."""
    def __init__(self, message="Servicio externo no disponible", payload=None):
        super().__init__(message, 503, payload)
