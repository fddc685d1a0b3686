"""Core Layer — pure domain logic, no IO, no async, no DB.

Invariants:
    - No module in core/ imports from services/, api/, infrastructure/, or db/
    - Functions are pure; the only mutable objects (ExecutionContext, ConversationState,
      PhaseStateMachine) are owned by a single run and passed explicitly
"""
