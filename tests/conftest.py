"""
Configuration et fixtures pytest pour FormRelay.

Fournit des fixtures réutilisables pour tous les tests.
"""

import os
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Generator, List, Union

import httpx
import pytest
from fastapi.testclient import TestClient


# Configuration des variables d'environnement pour les tests
os.environ.setdefault("STORAGE_BACKEND", "memory")
os.environ.setdefault("REDIS_URL", "memory://")
os.environ.setdefault("APP_ENV", "development")
os.environ.setdefault("DEBUG", "true")


FIXED_NOW = datetime(2024, 1, 15, 10, 30, 0, tzinfo=timezone.utc)

APP_ID = "app_1"
APP_SECRET = "test_integration_secret_for_hmac"
WEB_APP_URL = "https://script.google.com/macros/s/test-deployment/exec"

WebhookReply = Union[httpx.Response, Exception]


@pytest.fixture(scope="session")
def test_settings():
    """Fixture pour accéder aux settings de test."""
    from formrelay.core.config import Settings
    return Settings()


@pytest.fixture
def fixed_clock() -> Callable[[], datetime]:
    """Horloge figée (UTC)."""
    return lambda: FIXED_NOW


@pytest.fixture
def store(fixed_clock):
    """Store mémoire vide."""
    from formrelay.core.memory_store import InMemoryStore
    return InMemoryStore(clock=fixed_clock)


@pytest.fixture
def seeded_store(store):
    """
    Store avec un tenant complet:
    - app_1 (example.com) avec secret d'intégration
    - règles: example.com /blog/* (rule_blog), example.com /pricing (rule_pricing)
    - form_contact: non lié, intégration Google Sheets active
    - form_pricing: lié à rule_pricing, rendu en section
    """
    from formrelay.models.tenant import (
        Application,
        Form,
        FormField,
        IntegrationConfig,
        UrlRule,
    )

    store.add_application(Application(
        id=APP_ID,
        name="Example",
        hostname="example.com",
        integration_secret=APP_SECRET,
        created_at=FIXED_NOW,
    ))
    store.add_url_rule(UrlRule(
        id="rule_blog",
        application_id=APP_ID,
        hostname="example.com",
        path_pattern="/blog/*",
    ))
    store.add_url_rule(UrlRule(
        id="rule_pricing",
        application_id=APP_ID,
        hostname="example.com",
        path_pattern="/pricing",
    ))
    store.add_form(Form(
        id="form_contact",
        application_id=APP_ID,
        name="Contact Us",
        share_publicly=True,
    ))
    store.add_form(Form(
        id="form_pricing",
        application_id=APP_ID,
        name="Demande de Devis!",
        url_rule_id="rule_pricing",
        render_as_section=True,
    ))
    store.add_form_field(FormField(
        id="field_message",
        form_id="form_contact",
        name="Message",
        key="message",
        type="TEXTAREA",
        position=2,
    ))
    store.add_form_field(FormField(
        id="field_email",
        form_id="form_contact",
        name="Email",
        key="email",
        type="EMAIL",
        required=True,
        placeholder="vous@exemple.fr",
        position=1,
    ))
    store.add_integration_config(IntegrationConfig(
        id="gs_contact",
        form_id="form_contact",
        enabled=True,
        sheet_name="Leads",
        web_app_url=WEB_APP_URL,
    ))
    return store


@pytest.fixture
def webhook_requests() -> List[httpx.Request]:
    """Requêtes reçues par le webhook simulé."""
    return []


@pytest.fixture
def make_http_client(webhook_requests):
    """
    Fabrique un client httpx dont le transport rejoue une séquence de réponses.

    La dernière réponse est répétée une fois la séquence épuisée. Une
    exception dans la séquence est levée à la place de la réponse.
    """
    def factory(*replies: WebhookReply) -> httpx.AsyncClient:
        queue = list(replies) or [httpx.Response(200, json={"success": True})]

        def handler(request: httpx.Request) -> httpx.Response:
            webhook_requests.append(request)
            reply = queue.pop(0) if len(queue) > 1 else queue[0]
            if isinstance(reply, Exception):
                raise reply
            # Nouvelle réponse à chaque appel: une réponse httpx ne se lit qu'une fois
            return httpx.Response(
                reply.status_code,
                headers=reply.headers,
                content=reply.content,
            )

        return httpx.AsyncClient(transport=httpx.MockTransport(handler))

    return factory


@pytest.fixture
def recorded_sleeps() -> List[float]:
    return []


@pytest.fixture
def fake_sleep(recorded_sleeps):
    """Remplace asyncio.sleep: enregistre la durée sans attendre."""
    async def sleep(seconds: float) -> None:
        recorded_sleeps.append(seconds)
    return sleep


@pytest.fixture(autouse=True)
def rate_limiter_reset():
    """Compteurs slowapi remis à zéro entre les tests (limiter global)."""
    from formrelay.core.rate_limit import limiter

    limiter.reset()
    yield
    limiter.reset()


@pytest.fixture
def test_client(seeded_store, make_http_client) -> Generator[TestClient, None, None]:
    """
    Fixture pour le client de test FastAPI.

    Application branchée sur le store mémoire et un webhook qui répond
    {success: true}; scheduler désactivé.
    """
    from formrelay.main import create_app

    app = create_app(
        store=seeded_store,
        http_client=make_http_client(httpx.Response(200, json={"success": True})),
        enable_scheduler=False,
    )
    with TestClient(app) as client:
        yield client


@pytest.fixture
def sample_submit_payload() -> Dict[str, Any]:
    """Payload de soumission valide pour les tests."""
    return {
        "applicationId": APP_ID,
        "formId": "form_contact",
        "hostname": "www.example.com",
        "path": "/blog/my-post",
        "payload": {
            "email": "jean.dupont@example.com",
            "message": "Bonjour, je souhaite un devis.",
        },
    }


# === Markers personnalisés ===

def pytest_configure(config):
    """Configuration des markers pytest."""
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
    config.addinivalue_line(
        "markers", "slow: marks tests as slow running"
    )
    config.addinivalue_line(
        "markers", "security: marks tests as security-related"
    )
