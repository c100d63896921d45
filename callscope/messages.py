"""Localized user-facing messages keyed by error/notification code."""

from __future__ import annotations

from callscope.types import Language

_CATALOG: dict[str, dict[str, str]] = {
    # Auth
    "invalid_credentials": {
        "es": "Credenciales incorrectas",
        "en": "Incorrect email or password",
    },
    "email_unconfirmed": {
        "es": "Debes confirmar tu email antes de iniciar sesión",
        "en": "Confirm your email before signing in",
    },
    "rate_limited": {
        "es": "Demasiados intentos. Intenta de nuevo más tarde",
        "en": "Too many attempts. Try again later",
    },
    "stale_refresh_token": {
        "es": "Tu sesión anterior no era válida. Inicia sesión de nuevo",
        "en": "Your previous session was invalid. Please sign in again",
    },
    "session_expired": {
        "es": "Sesión expirada. Por favor inicia sesión para continuar",
        "en": "Session expired. Please sign in to continue",
    },
    "session_inactive": {
        "es": "Sesión cerrada por inactividad",
        "en": "Signed out due to inactivity",
    },
    "session_expiring_soon": {
        "es": "Tu sesión está por expirar. ¿Deseas mantenerla activa?",
        "en": "Your session is about to expire. Keep it active?",
    },
    "auth_unavailable": {
        "es": "El servicio de autenticación no responde. Intenta nuevamente",
        "en": "The sign-in service is not responding. Try again",
    },
    "auth_error": {
        "es": "Error al iniciar sesión",
        "en": "Sign-in failed",
    },
    # Scope
    "illegal_all_request": {
        "es": "No tienes acceso a todas las cuentas",
        "en": "You do not have access to all accounts",
    },
    "unassigned_account": {
        "es": "No tienes acceso a esa cuenta",
        "en": "You do not have access to that account",
    },
    "no_accounts": {
        "es": "No tienes cuentas asignadas. Contacta a un administrador",
        "en": "No accounts are assigned to you. Contact an administrator",
    },
    "scope_mismatch": {
        "es": "Los datos no corresponden a la cuenta seleccionada",
        "en": "The data does not belong to the selected account",
    },
    "stale_scope": {
        "es": "La cuenta seleccionada cambió. Vuelve a cargar los datos",
        "en": "The selected account changed. Reload the data",
    },
    "scope_error": {
        "es": "Selección de cuenta no válida",
        "en": "Invalid account selection",
    },
    # Queries
    "network_transient": {
        "es": "Problema de conexión. Intenta nuevamente en unos segundos",
        "en": "Connection problem. Try again in a few seconds",
    },
    "authorization_denied": {
        "es": "No tienes permisos para realizar esta acción",
        "en": "You are not allowed to perform this action",
    },
    "not_found": {
        "es": "El elemento solicitado no existe",
        "en": "The requested item does not exist",
    },
    "query_error": {
        "es": "Error al cargar los datos",
        "en": "Error loading data",
    },
    # Misc
    "validation_error": {
        "es": "Revisa los datos ingresados",
        "en": "Check the data you entered",
    },
    "llm_error": {
        "es": "El asistente no pudo responder. Intenta nuevamente",
        "en": "The assistant could not answer. Try again",
    },
    "config_error": {
        "es": "Error de configuración del servicio",
        "en": "Service configuration error",
    },
    "internal_error": {
        "es": "Error inesperado. Intenta nuevamente",
        "en": "Unexpected error. Try again",
    },
    # Labels
    "all_accounts_label": {
        "es": "Todas las cuentas",
        "en": "All accounts",
    },
    "single_account_label": {
        "es": "Cuenta: {name}",
        "en": "Account: {name}",
    },
    "no_accounts_label": {
        "es": "Sin cuentas asignadas",
        "en": "No accounts assigned",
    },
    "llm_empty_response": {
        "es": "No pude generar una respuesta.",
        "en": "I could not generate an answer.",
    },
}


def translate(code: str, language: str = Language.ES, **params: str) -> str:
    """Return the message for ``code`` in ``language``.

    Falls back to Spanish, then to the generic internal error text.
    """
    entry = _CATALOG.get(code) or _CATALOG["internal_error"]
    text = entry.get(str(language)) or entry[Language.ES]
    return text.format(**params) if params else text


def known_codes() -> frozenset[str]:
    return frozenset(_CATALOG)
