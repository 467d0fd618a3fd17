"""Local retrieval-augmented Q&A over a repository checkout, backed by Ollama."""

__version__ = "0.1.0"
