"""TradePilot — LLM tool orchestration core for a phase-gated trading workflow.

Invariants:
    - Package root contains no executable code (import side-effects prohibited)
"""
