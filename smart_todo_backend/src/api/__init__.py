"""
Smart Todo backend package.

Owner-scoped todo storage, the list derivation pipeline and the AI task
extraction / summary endpoints. The FastAPI app lives in ``src.api.main``.
"""
