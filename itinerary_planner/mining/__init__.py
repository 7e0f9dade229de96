"""
Association-rule mining over historical session/venue interactions.

Responsibilities:
- Group raw interaction rows into per-session venue sets.
- Compute support, confidence and lift for co-occurring venue pairs.
- Publish the rule set as an atomically replaced, versioned snapshot.
"""
