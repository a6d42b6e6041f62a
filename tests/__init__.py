"""
Tests pour FormRelay.

Structure:
- test_matching_utils.py: Hostnames, patterns de chemin, ids de section
- test_form_resolver.py: Résolution des formulaires d'une page
- test_submission_ingestor.py: Ingestion des soumissions
- test_integration_dispatcher.py: Dispatch signé avec retries
- test_dispatch_pool.py: Pool de workers
- test_hmac_service.py: Signatures HMAC
- test_rate_limiter.py: Rate limiting
- test_store_and_scheduler.py: Store mémoire et audit PENDING
- test_public_api.py: Endpoints publics
- conftest.py: Fixtures pytest partagées
"""
