"""
HybridX API - Services Package.

Business logic: program calendar, session reconciliation, subscription
status, and the Stripe, Strava and Gemini integrations.
"""
