"""
Generative reorder layer.

Responsibilities:
- Manage Groq API configuration and credentials.
- Build a bounded prompt from the visitor profile and surviving candidates.
- Call the completion service and validate its structured itinerary.
- Fall back to a deterministic ordering when the service is unavailable or returns invalid output.
"""
