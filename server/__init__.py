"""HTTP surface for DocAssist. Run with ``uvicorn server.rag_api:app``."""
