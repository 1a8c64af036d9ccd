"""
API Layer - FastAPI routes and middleware.
"""
