"""HybridX API - Request and response schemas."""
