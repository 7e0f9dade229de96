"""
Embeddings layer for vector retrieval.

Responsibilities:
- Load a lightweight sentence-transformer model on first use.
- Encode visitor interest text into a query vector at request time.
"""
