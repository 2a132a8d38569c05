"""
AI content generation: LLM gateway, prompt composer and conversation manager.
"""
