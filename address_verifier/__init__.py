"""
Address Verifier — GPS-backed residential address verification.

Architecture: Applicant workflow → Evaluator (LLM + fallback) → Record store → Report surfaces
Philosophy:  Never block the applicant on a third party. Never lose the final write silently.
"""

__version__ = "1.0.0"
