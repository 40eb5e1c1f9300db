"""
Services Layer

Standings business logic that:
- Accepts domain inputs (IDs, sessions, etc.)
- Returns domain outputs (models, dataclasses)
- Does NOT depend on HTTP request/response objects
- Leaves recalculation scheduling to the caller
"""
