"""Retrieval pipeline: parsing, chunking, vector storage, indexing and search.

Structure-aware chunking for Compact, TypeScript and Markdown sources, a
FAISS-backed vector store, and the orchestrator and query service built on
top of them.
"""
