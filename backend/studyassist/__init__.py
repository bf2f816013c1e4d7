"""StudyAssist web application package.

This package holds the FastAPI app, the backend clients for auth and
study-session storage, and the in-memory chat views. Individual modules
contain the concrete implementations and documentation.
"""
