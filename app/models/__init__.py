from app.models.base import Base  # noqa: F401

from app.models.user import User  # noqa: F401
from app.models.session_token import SessionToken  # noqa: F401
from app.models.listing import Listing  # noqa: F401
from app.models.adoption_request import AdoptionRequest  # noqa: F401
from app.models.idempotency import IdempotencyKey  # noqa: F401
from app.models.audit_log import AuditLog  # noqa: F401
