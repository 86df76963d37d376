"""HybridX API - Route modules."""
