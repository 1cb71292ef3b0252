# ertha_exchange/integrations/supabase_client.py
import logging
from typing import Any, Dict

import requests

from ertha_exchange.config import get_settings

logger = logging.getLogger(__name__)

SUPABASE_TIMEOUT_SECONDS = 10


def check_supabase() -> Dict[str, Any]:
    """Probe the Supabase REST endpoint; never raises."""
    settings = get_settings()
    if not settings.supabase_configured:
        return {"status": "not_configured"}

    url = f"{settings.supabase_url.rstrip('/')}/rest/v1/"
    headers = {
        "apikey": settings.supabase_service_role_key,
        "Authorization": f"Bearer {settings.supabase_service_role_key}",
    }
    try:
        response = requests.get(url, headers=headers, timeout=SUPABASE_TIMEOUT_SECONDS)
    except requests.RequestException as exc:
        logger.warning("Supabase connectivity check failed: %s", exc)
        return {"status": "unhealthy", "error": "unreachable"}

    if response.status_code >= 500:
        return {"status": "unhealthy", "httpStatus": response.status_code}
    return {"status": "healthy", "httpStatus": response.status_code}
