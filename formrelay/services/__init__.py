"""
Services métier pour FormRelay.

Modules:
- form_resolver: Sélection des formulaires pour une page vue
- submission_ingestor: Enregistrement des soumissions
- integration_dispatcher: Livraison signée vers Google Sheets avec retries
- dispatch_pool: File et workers du dispatch
- hmac_service: Signatures HMAC des webhooks sortants
"""
