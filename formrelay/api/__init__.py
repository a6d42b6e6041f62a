"""
API endpoints pour FormRelay.

Modules:
- public: API publique du widget (config, submit, formulaires publics)
- health: Health checks
"""
