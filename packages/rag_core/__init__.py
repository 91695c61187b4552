"""
Core RAG logic for docqa.

This package contains:
- Data models for documents, chunks and search results
- Recursive chunking with overlap
- Embedding and language-model adapters
- The exact vector store with save/load
- Prompt templates and the retrieval chain
"""
