"""
Candidate fusion and score boosting.

Responsibilities:
- Merge candidate lists from several discovery mechanisms by identity.
- Combine overlapping scores with a commutative rule and union provenance.
- Re-weight candidates with mined association rules.
"""
