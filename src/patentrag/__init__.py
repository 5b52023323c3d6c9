"""Patent strategy RAG: chunking, retrieval, prompt budgeting and report generation."""

__version__ = "0.1.0"
