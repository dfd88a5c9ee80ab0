"""RAG (Retrieval-Augmented Generation) pipeline components.

This package contains modules for:
- FAQ record loading
- Document chunking with overlap
- In-memory and FAISS vector indexes
- Semantic retrieval
- Grounded answer generation
"""
