"""
Service HMAC pour la signature des webhooks sortants.

Chaque application possède son propre secret d'intégration. Le script
destinataire (Google Apps Script) recalcule la signature pour vérifier
l'authenticité du payload.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import math
import secrets
from typing import Any, Union

SIGNATURE_PREFIX = "sha256="
SIGNATURE_FIELD = "signature"


# Au-delà, JSON.stringify passe en notation exponentielle
JS_EXPONENT_THRESHOLD = 1e21


def js_numbers(data: Any) -> Any:
    """
    Aligne les nombres sur JSON.stringify.

    Un float entier devient int (1.0 -> 1, 1e3 -> 1000).

    Raises:
        ValueError: Si un nombre est NaN ou infini.
    """
    if isinstance(data, dict):
        return {key: js_numbers(value) for key, value in data.items()}
    if isinstance(data, list):
        return [js_numbers(value) for value in data]
    if isinstance(data, float):
        if not math.isfinite(data):
            raise ValueError(f"Nombre non fini non sérialisable: {data}")
        if data.is_integer() and abs(data) < JS_EXPONENT_THRESHOLD:
            return int(data)
    return data


def canonical_json(data: Any) -> str:
    """
    Sérialise un objet en JSON canonique.

    JSON compact, ordre des clés conservé, caractères non ASCII conservés,
    floats entiers écrits comme des entiers: identique à JSON.stringify
    côté Apps Script.
    """
    return json.dumps(
        js_numbers(data),
        separators=(",", ":"),
        ensure_ascii=False,
        allow_nan=False
    )


class HMACService:
    """
    Service de génération et vérification de signatures HMAC-SHA256.

    Le secret est passé à chaque appel: il dépend du tenant.
    """

    def sign(self, secret: str, data: Union[str, bytes]) -> str:
        """
        Génère une signature HMAC-SHA256.

        Args:
            secret: Secret d'intégration de l'application.
            data: Données à signer.

        Returns:
            Signature hexadécimale.
        """
        if isinstance(data, str):
            data = data.encode("utf-8")
        return hmac.new(secret.encode("utf-8"), data, hashlib.sha256).hexdigest()

    def sign_payload(self, secret: str, payload: dict) -> str:
        """
        Signe un objet JSON.

        Returns:
            Signature au format "sha256=<hex>".
        """
        return SIGNATURE_PREFIX + self.sign(secret, canonical_json(payload))

    def attach_signature(self, secret: str, payload: dict) -> dict:
        """Retourne une copie du payload avec le champ signature ajouté en dernier."""
        signed = dict(payload)
        signed[SIGNATURE_FIELD] = self.sign_payload(secret, payload)
        return signed

    def verify_payload(self, secret: str, payload: dict, signature: str) -> bool:
        """
        Vérifie la signature d'un objet JSON.

        Utilise une comparaison en temps constant.
        """
        if not signature:
            return False
        expected = self.sign_payload(secret, payload)
        return secrets.compare_digest(expected, signature)

    def verify_signed_body(self, secret: str, body: dict) -> bool:
        """
        Vérifie un body reçu contenant son propre champ signature.

        Procédure du destinataire: retirer signature, resérialiser, comparer.
        """
        signature = body.get(SIGNATURE_FIELD)
        if not isinstance(signature, str):
            return False
        unsigned = {k: v for k, v in body.items() if k != SIGNATURE_FIELD}
        return self.verify_payload(secret, unsigned, signature)


# Instance globale pour import direct
hmac_service = HMACService()


def sign_payload(secret: str, payload: dict) -> str:
    """Fonction utilitaire: signature "sha256=<hex>" d'un objet JSON."""
    return hmac_service.sign_payload(secret, payload)


def verify_signature(secret: str, body: dict) -> bool:
    """Fonction utilitaire: vérifie un body signé (champ signature inclus)."""
    return hmac_service.verify_signed_body(secret, body)
