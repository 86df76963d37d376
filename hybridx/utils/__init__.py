"""HybridX API - Utilities Package."""
