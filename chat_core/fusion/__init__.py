"""Fusion: intent-based model routing.

classify -> extract keywords -> select model -> build system prompt -> invoke,
run as a langgraph StateGraph (orchestrator.build_fusion_graph).
"""
