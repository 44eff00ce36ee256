"""
Public Pulse
AI module.

Submodules:
    - gateway: LLM Gateway (provider routing, timeout, cost tracking)
    - prompt_registry: prompt templates (built-in defaults + YAML overrides)
    - classifiers: severity and department classifiers
    - issue_analysis: orchestrator with safe-default fallback
"""
