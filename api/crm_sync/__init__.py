"""
Servicio de reconciliacion Marketplace <-> CRM.

Mantiene la base local (listings, actores, ofertas) consistente con el CRM
externo mediante sync completo, sync incremental (delta) y webhooks.
"""

__version__ = "1.0.0"
