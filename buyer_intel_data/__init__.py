"""
Buyer Intel Data - Carbon Credit Buyer Intelligence Pipeline

Resolves retirement records from carbon credit registries (Verra, Climate
Action Reserve) into deduplicated, tagged buyer profiles.
"""

__version__ = "0.1.0"
