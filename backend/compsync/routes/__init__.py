"""
FastAPI routers: operator control and read-only monitoring.
"""
