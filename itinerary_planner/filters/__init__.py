"""
Constraint filter chain.

Responsibilities:
- Drop candidates that break hard constraints: budget, accessibility,
  operating status and travel time from the visitor's origin.
- Keep candidates by default when the data needed to judge them is missing.
- Apply the non-dropping partner boost.
"""
