"""LLM access: Gemini model manager, prompts, generator strategies"""
