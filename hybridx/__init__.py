"""HybridX API - hybrid/HYROX and running training backend."""
