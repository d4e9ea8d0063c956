# ------------------------------------------------------------
# Module: h5p_assist/llm/prompts.py
# Purpose: Build content-authoring prompts per H5P content type.
# ------------------------------------------------------------

"""Prompt construction for H5P content suggestions.

Responsibilities
----------------
- Map an H5P content type to short, type-specific guidance (`templatize`).
- Combine content type, user description, and guidance into one prompt.
"""

from __future__ import annotations

CONTENT_TYPE_GUIDANCE: dict[str, str] = {
    "H5P.InteractiveVideo": "Consider: timestamps for interactions, types of questions to ask at each point, visual cues, and branching scenarios.",
    "H5P.Course": "Structure your course with: main topics, subtopics, learning objectives, assessment criteria, and progression rules.",
    "H5P.QuestionSet": "Include variety in question types: multiple choice, true/false, fill in the blanks, matching, and drag-and-drop.",
    "H5P.InteractiveBook": "Plan chapters with: multimedia content, interactive elements, self-assessment, and navigation structure.",
    "H5P.Timeline": "Organize events with: dates, descriptions, media elements, and connections between events.",
    "H5P.BranchingScenario": "Design decision trees with: multiple paths, consequences, feedback, and learning outcomes.",
}

DEFAULT_GUIDANCE = "Consider the best way to present this content interactively."

SECTIONS = (
    "Content Structure",
    "Interactive Elements",
    "Learning Objectives",
    "Assessment Strategies",
    "Technical Implementation Tips",
)


def templatize(content_type: str) -> str:
    """Guidance text for `content_type`; unknown types get a generic hint."""
    return CONTENT_TYPE_GUIDANCE.get(content_type.strip(), DEFAULT_GUIDANCE)


def build_prompt(content_type: str, description: str) -> str:
    """Construct the suggestion prompt sent upstream (once per user request)."""
    numbered = "\n".join(f"{i}. {s}" for i, s in enumerate(SECTIONS, start=1))
    return (
        "As an H5P content creation assistant, help me create "
        f"{content_type} content with the following description: {description.strip()}.\n\n"
        f"{templatize(content_type)}\n\n"
        "Please provide specific suggestions including:\n"
        f"{numbered}\n\n"
        "Format your response in clear sections with bullet points for easy implementation."
    )
