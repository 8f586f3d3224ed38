"""System prompt built for the model fusion selected."""

from typing import List, Optional

INTENT_DESCRIPTIONS = {
    "creative_writing": "creative writing and content generation",
    "code_development": "software development and programming",
    "data_analysis": "data analysis and statistics",
    "research": "research and information gathering",
    "image_generation": "image description and generation",
    "conversation": "natural conversation and general assistance",
    "summarization": "summarizing and synthesizing information",
    "translation": "translation and language adaptation",
    "specialized_knowledge": "specialized knowledge and consulting",
}

EXPERTISE_TONES = {
    "beginner": "clear, didactic and accessible, explaining basic concepts",
    "intermediate": "balanced, with moderate depth and some technical references",
    "expert": "technical, detailed and advanced, assuming prior knowledge of the subject",
}
DEFAULT_TONE = "clear and informative, adapting to the context of the question"

INTENT_GUIDANCE = {
    "creative_writing": (
        "Be creative, original and engaging. Adapt tone and style to the requested genre or format."
    ),
    "code_development": (
        "Provide clean, well commented code that follows best practices. Explain the reasoning "
        "behind the solution and keep efficiency and maintainability in mind."
    ),
    "data_analysis": (
        "Be methodical and precise. Explain your reasoning step by step and highlight the key "
        "insights in the data."
    ),
    "research": (
        "Provide accurate, up-to-date and well-founded information. Cite sources when relevant "
        "and consider different perspectives."
    ),
    "image_generation": (
        "Write detailed descriptions that capture the desired visual elements, style, "
        "composition and atmosphere."
    ),
    "summarization": (
        "Be concise and objective. Highlight the main points and keep the essence of the "
        "original content."
    ),
    "translation": (
        "Translate accurately, keeping tone, context and cultural nuances where appropriate."
    ),
}


def build_system_prompt(
    intent: str,
    sub_category: Optional[str] = None,
    keywords: Optional[List[str]] = None,
    expertise_level: Optional[str] = None,
) -> str:
    description = INTENT_DESCRIPTIONS.get(intent, "general assistance")
    prompt = f"You are an assistant specialized in {description}"
    if sub_category:
        prompt += f", with a specific focus on {sub_category}"
    prompt += f". Answer in a way that is {EXPERTISE_TONES.get(expertise_level or '', DEFAULT_TONE)}."
    if keywords:
        prompt += f" Take these key concepts into account: {', '.join(keywords)}."
    guidance = INTENT_GUIDANCE.get(intent)
    if guidance:
        prompt += f" {guidance}"
    return prompt
