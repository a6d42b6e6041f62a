"""
Core components pour FormRelay.

Modules:
- config: Configuration Pydantic Settings
- repository: Interface de persistance (Supabase, mémoire)
- database: Client et store Supabase
- error_handler: Gestion centralisée des erreurs
- scheduler: Audit périodique des soumissions PENDING
- rate_limit: Rate limiting slowapi de l'API publique
- request_context: Identifiant de requête dans les logs
"""

from formrelay.core.config import settings

__all__ = ["settings"]
