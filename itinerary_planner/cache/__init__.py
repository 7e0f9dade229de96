"""
Content-addressed cache layer.

Responsibilities:
- Build stable keys from a stage context and a canonicalised payload.
- Apply tiered TTLs (short for pipeline intermediates, long for expensive calls).
- Tolerate concurrent readers and writers (last writer wins).
- Support full invalidation by bumping the key prefix.
"""
