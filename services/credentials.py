from sqlalchemy.orm import Session

from core.config import settings
from queries.settings import TAX_SERVICE_KEY, get_setting
from services.token_store import SyncPrincipal


def resolve_principal(db: Session) -> SyncPrincipal | None:
    """
    Credentials saved by an operator ("tax_service" setting) win over .env ones.
    """
    stored = get_setting(db, TAX_SERVICE_KEY) or {}
    if isinstance(stored, dict) and stored.get("tin") and stored.get("login") and stored.get("password"):
        return SyncPrincipal(
            tenant_id=str(stored["tin"]).strip(),
            username=str(stored["login"]),
            secret=str(stored["password"]),
        )

    if settings.TAX_SERVICE_TIN and settings.TAX_SERVICE_USERNAME and settings.TAX_SERVICE_PASSWORD:
        return SyncPrincipal(
            tenant_id=settings.TAX_SERVICE_TIN.strip(),
            username=settings.TAX_SERVICE_USERNAME,
            secret=settings.TAX_SERVICE_PASSWORD,
        )

    return None
