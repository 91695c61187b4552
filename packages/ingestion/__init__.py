"""
Ingestion and command-line entrypoints for docqa.

This package is responsible for:
- Loading documents from text files, PDFs (via Docling), web pages and directories
- Validated settings read from the environment and `.env`
- The `docqa` CLI for building a store, asking questions and running the agent
"""
