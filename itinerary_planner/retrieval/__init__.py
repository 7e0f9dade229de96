"""
Candidate retrieval.

Responsibilities:
- Query a vector similarity index with an embedding of the visitor's interests.
- Query a points-of-interest directory once per interest, deduplicating by identity.
- Fall back to a plain relational venue listing when a primary mechanism is unreachable.
- Remember connectivity failures for the rest of the run.
"""
