"""Constantes partagées pour éviter les valeurs magiques dans le code.

Codes HTTP, bornes de requêtes RAG et paramètres de retry des clients réseau.
"""

# Codes de statut HTTP courants
HTTP_OK = 200
HTTP_BAD_REQUEST = 400
HTTP_UNAUTHORIZED = 401
HTTP_FORBIDDEN = 403
HTTP_NOT_FOUND = 404
HTTP_CONFLICT = 409
HTTP_UNPROCESSABLE_ENTITY = 422
HTTP_TOO_MANY_REQUESTS = 429
HTTP_INTERNAL_SERVER_ERROR = 500
HTTP_BAD_GATEWAY = 502

HTTP_STATUS_CLIENT_ERROR_MIN = 400
HTTP_STATUS_CLIENT_ERROR_MAX = 500
HTTP_STATUS_SERVER_ERROR_MIN = 500
HTTP_STATUS_SERVER_ERROR_MAX = 600

# RAG
DEFAULT_TOP_K = 5
MIN_TOP_K = 1
MAX_TOP_K = 50

# Retry des clients réseau (index vectoriel)
MAX_RETRY_ATTEMPTS = 3
RETRY_BASE_DELAY = 0.5
RETRY_RANDOM_FACTOR = 0.25

# Versioning
FIRST_VERSION_NUMBER = 1
NAMESPACE_PREFIX = "chatbot-"
