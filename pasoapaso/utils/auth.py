# pasoapaso/utils/auth.py
"""
Identidade do ator fornecida pela camada de autenticação (gateway/JWT
a montante). Aqui só lemos os cabeçalhos confiáveis; nada é reverificado.
"""
from dataclasses import dataclass
from functools import wraps
from typing import Optional

from flask import jsonify, request

from pasoapaso import settings


@dataclass
class Actor:
    id: str
    role: str = "CLIENTE"

    @property
    def is_staff(self) -> bool:
        return self.role in settings.STAFF_ROLES


def current_actor() -> Optional[Actor]:
    user_id = (request.headers.get("X-User-Id") or "").strip()
    if not user_id:
        return None
    role = (request.headers.get("X-User-Role") or "CLIENTE").strip().upper()
    return Actor(id=user_id, role=role)


def require_auth(view):
    @wraps(view)
    def wrapper(*args, **kwargs):
        if current_actor() is None:
            return jsonify({"success": False, "error": "No autenticado"}), 401
        return view(*args, **kwargs)
    return wrapper


def require_staff(view):
    @wraps(view)
    def wrapper(*args, **kwargs):
        actor = current_actor()
        if actor is None:
            return jsonify({"success": False, "error": "No autenticado"}), 401
        if not actor.is_staff:
            return jsonify({"success": False, "error": "Permisos insuficientes"}), 403
        return view(*args, **kwargs)
    return wrapper
