"""Vector retrieval for DocAssist: data model, Atlas collection search and multi-collection orchestration."""
